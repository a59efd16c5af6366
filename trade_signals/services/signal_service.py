"""Producer surface: create signal requests and poll their status.

Shared by the HTTP API and the Telegram bot.
"""

import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from trade_signals.engine.queue import JobQueue, QueuedJob
from trade_signals.engine.repository import SignalRepository
from trade_signals.errors import ValidationError
from trade_signals.schemas.signal import SignalRequest, SignalStatus
from trade_signals.utils.constants import STATUS_NOT_FOUND

logger = logging.getLogger(__name__)


def validate_request(payload: SignalRequest | dict[str, Any]) -> SignalRequest:
    if isinstance(payload, SignalRequest):
        return payload
    try:
        return SignalRequest.model_validate(payload)
    except PydanticValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'request'}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(f"Validation error: {details}") from e


class SignalService:
    def __init__(self, queue: JobQueue, repository: SignalRepository):
        self.queue = queue
        self.repository = repository

    async def create_signal_request(
        self, owner_id: str, payload: SignalRequest | dict[str, Any]
    ) -> str:
        """Validate, persist and enqueue a request. Returns the job id."""
        request = validate_request(payload)

        job = self.repository.create_job(
            owner_id=owner_id,
            symbol=request.symbol,
            holding=request.holding,
            risk=request.risk,
            image_base64=request.image_base64,
        )
        await self.queue.enqueue(QueuedJob(
            job_id=job.id,
            owner_id=owner_id,
            symbol=request.symbol,
            holding=request.holding,
            risk=request.risk,
            image_base64=request.image_base64,
        ))
        logger.info(f"[{job.id}] Signal request for {request.symbol} enqueued by {owner_id}")
        return job.id

    async def get_signal_status(self, job_id: str) -> SignalStatus:
        """Queue state first; durable storage once the queue entry has expired."""
        state = await self.queue.get_result(job_id)
        if state.found:
            result = state.result or {}
            return SignalStatus(
                job_id=job_id,
                status=state.status,
                setup=result.get("setup"),
                interpretation=result.get("interpretation"),
                metrics=result.get("metrics"),
                error=state.error,
            )

        job = self.repository.get_job(job_id)
        if job is None:
            return SignalStatus(job_id=job_id, status=STATUS_NOT_FOUND)

        row = self.repository.get_result(job_id)
        setup = None
        if row is not None:
            setup = {
                "side": row.side,
                "entry": row.entry or 0.0,
                "stop_loss": row.stop_loss or 0.0,
                "take_profits": list(row.take_profits or []),
                "risk_reward": row.risk_reward,
                "confidence": row.confidence,
                "reason": row.reason or "",
            }
        return SignalStatus(
            job_id=job_id,
            status=job.status,
            setup=setup,
            interpretation=row.market_interpretation if row else None,
            metrics=row.metrics if row else None,
            error=job.error,
        )
