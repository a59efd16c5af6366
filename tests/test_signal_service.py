"""Tests for the producer surface shared by the API and the bot."""

import pytest

from trade_signals.engine.pipeline import PipelineResult
from trade_signals.errors import ValidationError
from trade_signals.services.decision_engine import build_trade_setup
from trade_signals.services.signal_service import SignalService, validate_request
from trade_signals.utils.constants import STATUS_COMPLETED, STATUS_NOT_FOUND, STATUS_PENDING


@pytest.fixture
def service(job_queue, repository):
    return SignalService(job_queue, repository)


class TestValidateRequest:
    def test_defaults_and_normalisation(self):
        request = validate_request({"symbol": " btc/usdt "})
        assert request.symbol == "BTCUSDT"
        assert request.holding == "auto"
        assert request.risk == "growth"

    def test_pair_alias_and_data_url(self):
        request = validate_request({"pair": "eth-usdt", "imageBase64": "data:image/png;base64,AAAA"})
        assert request.symbol == "ETHUSDT"
        assert request.image_base64 == "AAAA"

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"symbol": ""},
            {"symbol": "BTC USDT!"},
            {"symbol": "BTCUSDT", "holding": "forever"},
            {"symbol": "BTCUSDT", "risk": "yolo"},
        ],
    )
    def test_invalid_requests(self, payload):
        with pytest.raises(ValidationError, match="Validation error"):
            validate_request(payload)


@pytest.mark.asyncio
async def test_invalid_request_is_never_enqueued(service, job_queue):
    with pytest.raises(ValidationError):
        await service.create_signal_request("alice", {"symbol": "BTCUSDT", "risk": "reckless"})
    assert await job_queue.queue_length() == 0


@pytest.mark.asyncio
async def test_create_signal_request(service, job_queue, repository):
    job_id = await service.create_signal_request("alice", {"symbol": "solusdt", "holding": "scalp"})

    assert repository.get_job(job_id).symbol == "SOLUSDT"
    queued = await job_queue.dequeue()
    assert queued.job_id == job_id
    assert queued.holding == "scalp"

    status = await service.get_signal_status(job_id)
    assert status.status == STATUS_PENDING
    assert status.setup is None


@pytest.mark.asyncio
async def test_unknown_job_not_found(service):
    assert (await service.get_signal_status("missing")).status == STATUS_NOT_FOUND


@pytest.mark.asyncio
async def test_completed_status_from_queue(service, job_queue):
    job_id = await service.create_signal_request("alice", {"symbol": "BTCUSDT"})
    await job_queue.set_result(job_id, {"setup": {"side": "no_trade"}, "metrics": {"atr_percent": 0.4}})

    status = await service.get_signal_status(job_id)
    assert status.status == STATUS_COMPLETED
    assert status.setup == {"side": "no_trade"}
    assert status.metrics == {"atr_percent": 0.4}


@pytest.mark.asyncio
async def test_falls_back_to_database_after_queue_expiry(
    service, job_queue, fake_redis, repository, make_metrics, make_interpretation
):
    job_id = await service.create_signal_request("alice", {"symbol": "BTCUSDT"})
    metrics = make_metrics()
    interpretation = make_interpretation()
    repository.save_result(job_id, PipelineResult(
        setup=build_trade_setup(interpretation, metrics, "growth"),
        metrics=metrics,
        interpretation=interpretation,
    ))
    repository.mark_completed(job_id)
    await fake_redis.delete(f"job:{job_id}")

    status = await service.get_signal_status(job_id)

    assert status.status == STATUS_COMPLETED
    assert status.setup["side"] == "long"
    assert status.setup["entry"] == pytest.approx(95.0)
    assert status.interpretation["bias"] == "bullish"
