"""Durable FIFO job queue on Redis.

Redis schema
------------
job:<id>                HASH   job metadata, status, result JSON, error (24 h TTL)
<queue name>            LIST   job ids; producers LPUSH, workers BRPOP

Delivery is at-least-once: a worker that dies mid-job leaves the hash in
`processing` and the id may be handed out again, so consumers must be
idempotent per job id.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any

import redis.asyncio as aioredis

from trade_signals.utils.constants import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_NOT_FOUND,
    STATUS_PENDING,
    TERMINAL_STATUSES,
)

logger = logging.getLogger(__name__)

JOB_KEY = "job:{}"


def _now_ms() -> str:
    return str(int(time.time() * 1000))


@dataclass
class QueuedJob:
    """Job metadata as stored in the queue hash."""
    job_id: str
    owner_id: str
    symbol: str
    holding: str
    risk: str
    image_base64: str | None = None
    status: str = STATUS_PENDING
    created_at: int | None = None  # epoch ms

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_mapping(self) -> dict[str, str]:
        mapping = {
            "id": self.job_id,
            "owner_id": self.owner_id,
            "symbol": self.symbol,
            "holding": self.holding,
            "risk": self.risk,
            "status": self.status,
            "created_at": str(self.created_at) if self.created_at else _now_ms(),
        }
        if self.image_base64:
            mapping["image_base64"] = self.image_base64
        return mapping

    @classmethod
    def from_mapping(cls, data: dict[str, str]) -> "QueuedJob":
        created = data.get("created_at")
        return cls(
            job_id=data["id"],
            owner_id=data.get("owner_id", ""),
            symbol=data["symbol"],
            holding=data["holding"],
            risk=data["risk"],
            image_base64=data.get("image_base64") or None,
            status=data.get("status", STATUS_PENDING),
            created_at=int(created) if created and created.isdigit() else None,
        )


@dataclass
class JobState:
    """What a poller sees for a job id."""
    status: str
    result: dict[str, Any] | None = None
    error: str | None = None

    @property
    def found(self) -> bool:
        return self.status != STATUS_NOT_FOUND


class JobQueue:
    """Redis-backed work queue. The client must use decode_responses=True."""

    def __init__(
        self,
        redis: aioredis.Redis,
        queue_name: str = "signal-processing",
        job_ttl: int = 86400,
        dequeue_timeout: float = 30,
    ):
        self.redis = redis
        self.queue_name = queue_name
        self.job_ttl = job_ttl
        self.dequeue_timeout = dequeue_timeout

    async def enqueue(self, job: QueuedJob) -> str:
        """Store metadata and push the id in one transaction. Returns the job id."""
        key = JOB_KEY.format(job.job_id)
        job.status = STATUS_PENDING
        try:
            pipe = self.redis.pipeline()
            pipe.hset(key, mapping=job.to_mapping())
            pipe.expire(key, self.job_ttl)
            pipe.lpush(self.queue_name, job.job_id)
            await pipe.execute()
        except Exception as e:
            logger.error(f"[{job.job_id}] Failed to enqueue job: {e}")
            raise
        logger.debug(f"[{job.job_id}] Enqueued {job.symbol}")
        return job.job_id

    async def dequeue(self) -> QueuedJob | None:
        """Blocking pop with a bounded wait.

        Returns None when the wait times out or when the popped id has no
        metadata left (expired or never written).
        """
        popped = await self.redis.brpop([self.queue_name], timeout=self.dequeue_timeout)
        if not popped:
            return None

        job_id = popped[1] if isinstance(popped, (list, tuple)) else popped
        job = await self.get_job(job_id)
        if job is None:
            logger.warning(f"[{job_id}] Job metadata not found, dropping queue entry")
            return None
        return job

    async def get_job(self, job_id: str) -> QueuedJob | None:
        data = await self.redis.hgetall(JOB_KEY.format(job_id))
        if not data:
            return None
        try:
            return QueuedJob.from_mapping(data)
        except KeyError as e:
            logger.warning(f"[{job_id}] Incomplete job metadata, missing {e}")
            return None

    async def _write(self, job_id: str, mapping: dict[str, str]):
        # HSET on an expired key recreates the hash, so the TTL is always re-armed
        key = JOB_KEY.format(job_id)
        pipe = self.redis.pipeline()
        pipe.hset(key, mapping=mapping)
        pipe.expire(key, self.job_ttl)
        await pipe.execute()

    async def update_status(self, job_id: str, status: str):
        await self._write(job_id, {"status": status, "updated_at": _now_ms()})
        logger.debug(f"[{job_id}] Queue status -> {status}")

    async def set_result(self, job_id: str, result: dict[str, Any]):
        await self._write(
            job_id,
            {
                "result": json.dumps(result),
                "status": STATUS_COMPLETED,
                "completed_at": _now_ms(),
            },
        )
        logger.debug(f"[{job_id}] Result stored")

    async def set_error(self, job_id: str, message: str):
        await self._write(
            job_id,
            {
                "error": message,
                "status": STATUS_FAILED,
                "completed_at": _now_ms(),
            },
        )
        logger.debug(f"[{job_id}] Error stored: {message}")

    async def get_result(self, job_id: str) -> JobState:
        data = await self.redis.hgetall(JOB_KEY.format(job_id))
        if not data:
            return JobState(status=STATUS_NOT_FOUND)
        raw = data.get("result")
        return JobState(
            status=data.get("status", STATUS_PENDING),
            result=json.loads(raw) if raw else None,
            error=data.get("error") or None,
        )

    async def queue_length(self) -> int:
        return int(await self.redis.llen(self.queue_name))
