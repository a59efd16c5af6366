"""Durable storage for signal jobs and their results.

Every write is keyed by job id so at-least-once redelivery can replay a job
without duplicating rows.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from trade_signals.errors import PersistenceError
from trade_signals.models.signal_job import SignalJob
from trade_signals.models.signal_result import SignalResult
from trade_signals.utils.constants import STATUS_COMPLETED, STATUS_FAILED, STATUS_PENDING

if TYPE_CHECKING:
    from trade_signals.engine.pipeline import PipelineResult
    from trade_signals.engine.queue import QueuedJob

logger = logging.getLogger(__name__)


class SignalRepository:
    def __init__(self, engine: Engine):
        self.engine = engine

    # -- jobs ---------------------------------------------------------------

    def create_job(
        self,
        owner_id: str,
        symbol: str,
        holding: str,
        risk: str,
        image_base64: str | None = None,
        job_id: str | None = None,
    ) -> SignalJob:
        job = SignalJob(
            id=job_id or str(uuid.uuid4()),
            owner_id=owner_id,
            symbol=symbol,
            holding=holding,
            risk=risk,
            image_base64=image_base64,
            status=STATUS_PENDING,
        )
        try:
            with Session(self.engine) as session:
                session.add(job)
                session.commit()
                session.refresh(job)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to create job for {symbol}: {e}") from e
        logger.debug(f"[{job.id}] Job row created ({symbol})")
        return job

    def ensure_job(self, queued: "QueuedJob") -> SignalJob:
        """Return the job row, recreating it from queue metadata if it is missing."""
        existing = self.get_job(queued.job_id)
        if existing is not None:
            return existing
        logger.warning(f"[{queued.job_id}] Job row missing, recreating from queue metadata")
        try:
            return self.create_job(
                owner_id=queued.owner_id,
                symbol=queued.symbol,
                holding=queued.holding,
                risk=queued.risk,
                image_base64=queued.image_base64,
                job_id=queued.job_id,
            )
        except PersistenceError:
            # Another worker inserted it first
            existing = self.get_job(queued.job_id)
            if existing is None:
                raise
            return existing

    def get_job(self, job_id: str) -> SignalJob | None:
        try:
            with Session(self.engine) as session:
                return session.get(SignalJob, job_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load job {job_id}: {e}") from e

    def list_owner_jobs(self, owner_id: str, limit: int = 10) -> list[SignalJob]:
        try:
            with Session(self.engine) as session:
                stmt = (
                    select(SignalJob)
                    .where(SignalJob.owner_id == owner_id)
                    .order_by(SignalJob.created_at.desc())
                    .limit(limit)
                )
                return list(session.exec(stmt).all())
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to list jobs for {owner_id}: {e}") from e

    def update_status(self, job_id: str, status: str, error: str | None = None):
        try:
            with Session(self.engine) as session:
                job = session.get(SignalJob, job_id)
                if job is None:
                    raise PersistenceError(f"Job not found: {job_id}")
                job.status = status
                if status in (STATUS_COMPLETED, STATUS_FAILED):
                    job.completed_at = datetime.now(timezone.utc)
                    job.error = error
                session.add(job)
                session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to update job {job_id} to {status}: {e}") from e
        logger.debug(f"[{job_id}] Job row status -> {status}")

    def mark_completed(self, job_id: str):
        self.update_status(job_id, STATUS_COMPLETED)

    def mark_failed(self, job_id: str, message: str):
        self.update_status(job_id, STATUS_FAILED, error=message)

    # -- results ------------------------------------------------------------

    def save_result(self, job_id: str, result: "PipelineResult") -> SignalResult:
        """Upsert the result row for a job. Replays leave a single row."""
        values = _result_values(result)
        try:
            with Session(self.engine) as session:
                row = session.exec(
                    select(SignalResult).where(SignalResult.job_id == job_id)
                ).first()
                if row is None:
                    row = SignalResult(job_id=job_id, **values)
                else:
                    for key, value in values.items():
                        setattr(row, key, value)
                session.add(row)
                try:
                    session.commit()
                except IntegrityError:
                    # Concurrent redelivery inserted first; keep that row
                    session.rollback()
                    logger.info(f"[{job_id}] Result row already present, ignoring duplicate")
                    row = session.exec(
                        select(SignalResult).where(SignalResult.job_id == job_id)
                    ).one()
                session.refresh(row)
                return row
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to save result for job {job_id}: {e}") from e

    def get_result(self, job_id: str) -> SignalResult | None:
        try:
            with Session(self.engine) as session:
                return session.exec(
                    select(SignalResult).where(SignalResult.job_id == job_id)
                ).first()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load result for job {job_id}: {e}") from e


def _result_values(result: "PipelineResult") -> dict:
    setup = result.setup
    return {
        "side": setup.side,
        "entry": setup.entry if setup.is_trade else None,
        "stop_loss": setup.stop_loss if setup.is_trade else None,
        "take_profits": list(setup.take_profits),
        "risk_reward": setup.risk_reward,
        "confidence": setup.confidence,
        "reason": setup.reason,
        "market_interpretation": (
            result.interpretation.model_dump() if result.interpretation else None
        ),
        "vision_analysis": result.vision.model_dump() if result.vision else None,
        "metrics": result.metrics_dict(),
    }
