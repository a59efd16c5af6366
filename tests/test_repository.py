"""Tests for durable job and result storage."""

import pytest
from sqlmodel import Session, select

from trade_signals.engine.pipeline import PipelineResult
from trade_signals.engine.queue import QueuedJob
from trade_signals.errors import PersistenceError
from trade_signals.models import SignalResult
from trade_signals.services.decision_engine import build_trade_setup, no_trade
from trade_signals.utils.constants import STATUS_COMPLETED, STATUS_FAILED


def test_create_and_get_job(repository):
    job = repository.create_job("alice", "ETHUSDT", "daily", "safe")

    loaded = repository.get_job(job.id)
    assert loaded.symbol == "ETHUSDT"
    assert loaded.status == "pending"
    assert loaded.completed_at is None


def test_update_status_terminal_sets_completion(repository):
    job = repository.create_job("alice", "ETHUSDT", "daily", "safe")

    repository.mark_failed(job.id, "upstream down")

    loaded = repository.get_job(job.id)
    assert loaded.status == STATUS_FAILED
    assert loaded.error == "upstream down"
    assert loaded.completed_at is not None


def test_update_status_unknown_job(repository):
    with pytest.raises(PersistenceError):
        repository.update_status("missing", STATUS_COMPLETED)


def test_ensure_job_recreates_missing_row(repository):
    queued = QueuedJob(job_id="from-queue", owner_id="bob", symbol="SOLUSDT", holding="auto", risk="growth")

    job = repository.ensure_job(queued)
    assert job.id == "from-queue"
    assert repository.ensure_job(queued).id == "from-queue"


def test_list_owner_jobs(repository):
    for symbol in ("BTCUSDT", "ETHUSDT"):
        repository.create_job("alice", symbol, "auto", "growth")
    repository.create_job("bob", "SOLUSDT", "auto", "growth")

    jobs = repository.list_owner_jobs("alice")
    assert {j.symbol for j in jobs} == {"BTCUSDT", "ETHUSDT"}


def test_save_result_is_idempotent(repository, make_metrics, make_interpretation):
    job = repository.create_job("alice", "BTCUSDT", "auto", "growth")
    metrics = make_metrics()
    interpretation = make_interpretation()
    result = PipelineResult(
        setup=build_trade_setup(interpretation, metrics, "growth"),
        metrics=metrics,
        interpretation=interpretation,
    )

    repository.save_result(job.id, result)
    repository.save_result(job.id, result)

    row = repository.get_result(job.id)
    assert row.side == "long"
    assert row.take_profits == pytest.approx([100.13, 103.55, 108.68])
    assert row.market_interpretation["bias"] == "bullish"
    assert row.metrics["atr_percent"] == 2.0

    with Session(repository.engine) as session:
        rows = session.exec(select(SignalResult).where(SignalResult.job_id == job.id)).all()
    assert len(rows) == 1


def test_save_result_replay_overwrites(repository, make_metrics):
    job = repository.create_job("alice", "BTCUSDT", "auto", "growth")
    metrics = make_metrics()

    repository.save_result(job.id, PipelineResult(setup=no_trade("first"), metrics=metrics))
    repository.save_result(job.id, PipelineResult(setup=no_trade("second"), metrics=metrics))

    row = repository.get_result(job.id)
    assert row.reason == "second"
    assert row.entry is None
