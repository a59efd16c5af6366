"""Tests for the Redis job queue against an in-memory client."""

import pytest

from trade_signals.engine.queue import JOB_KEY, QueuedJob
from trade_signals.utils.constants import STATUS_COMPLETED, STATUS_FAILED, STATUS_NOT_FOUND


def _job(job_id="job-1", **overrides):
    values = dict(job_id=job_id, owner_id="alice", symbol="BTCUSDT", holding="swing", risk="growth")
    values.update(overrides)
    return QueuedJob(**values)


@pytest.mark.asyncio
async def test_enqueue_then_dequeue_round_trip(job_queue, fake_redis):
    job_id = await job_queue.enqueue(_job(image_base64="aGVsbG8="))

    job = await job_queue.dequeue()
    assert job.job_id == job_id
    assert job.symbol == "BTCUSDT"
    assert job.holding == "swing"
    assert job.risk == "growth"
    assert job.owner_id == "alice"
    assert job.image_base64 == "aGVsbG8="
    assert job.status == "pending"
    assert fake_redis.ttls[JOB_KEY.format(job_id)] == 60

    assert await job_queue.dequeue() is None


@pytest.mark.asyncio
async def test_fifo_order(job_queue):
    for i in range(3):
        await job_queue.enqueue(_job(f"job-{i}"))

    seen = [(await job_queue.dequeue()).job_id for _ in range(3)]
    assert seen == ["job-0", "job-1", "job-2"]


@pytest.mark.asyncio
async def test_dequeue_drops_ids_without_metadata(job_queue, fake_redis):
    await fake_redis.lpush("test-queue", "ghost")
    assert await job_queue.dequeue() is None
    assert await job_queue.queue_length() == 0


@pytest.mark.asyncio
async def test_unknown_job_is_not_found(job_queue):
    state = await job_queue.get_result("nope")
    assert state.status == STATUS_NOT_FOUND
    assert not state.found


@pytest.mark.asyncio
async def test_set_result(job_queue):
    await job_queue.enqueue(_job())
    await job_queue.set_result("job-1", {"setup": {"side": "no_trade"}, "confidence": 0.0})

    state = await job_queue.get_result("job-1")
    assert state.status == STATUS_COMPLETED
    assert state.result == {"setup": {"side": "no_trade"}, "confidence": 0.0}
    assert state.error is None


@pytest.mark.asyncio
async def test_set_error(job_queue):
    await job_queue.enqueue(_job())
    await job_queue.set_error("job-1", "Binance API timeout")

    state = await job_queue.get_result("job-1")
    assert state.status == STATUS_FAILED
    assert state.error == "Binance API timeout"
    assert state.result is None


@pytest.mark.asyncio
async def test_terminal_job_redelivery_visible(job_queue):
    await job_queue.enqueue(_job())
    await job_queue.set_result("job-1", {"setup": None})
    await job_queue.redis.lpush("test-queue", "job-1")

    job = await job_queue.dequeue()
    assert job.is_terminal


@pytest.mark.asyncio
async def test_queue_length(job_queue):
    await job_queue.enqueue(_job("a"))
    await job_queue.enqueue(_job("b"))
    assert await job_queue.queue_length() == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("write", ["status", "result", "error"])
async def test_writes_after_expiry_rearm_ttl(job_queue, fake_redis, write):
    await job_queue.enqueue(_job())
    key = JOB_KEY.format("job-1")
    await fake_redis.delete(key)
    assert key not in fake_redis.ttls

    if write == "status":
        await job_queue.update_status("job-1", "processing")
    elif write == "result":
        await job_queue.set_result("job-1", {"setup": None})
    else:
        await job_queue.set_error("job-1", "boom")

    assert fake_redis.ttls[key] == 60
    # A recreated hash lacks the job fields, so it is not handed to workers
    assert await job_queue.get_job("job-1") is None
