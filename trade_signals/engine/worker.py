"""Long-running queue consumer.

One job at a time per process; run several processes to scale out. Redis
BRPOP decides which worker gets each job.
"""

import asyncio
import logging
import signal

from trade_signals.engine.pipeline import SignalPipeline
from trade_signals.engine.queue import JobQueue, QueuedJob
from trade_signals.engine.repository import SignalRepository
from trade_signals.utils.constants import STATUS_PROCESSING

logger = logging.getLogger(__name__)


class SignalWorker:
    def __init__(
        self,
        queue: JobQueue,
        repository: SignalRepository,
        pipeline: SignalPipeline,
        error_backoff: float = 5.0,
    ):
        self.queue = queue
        self.repository = repository
        self.pipeline = pipeline
        self.error_backoff = error_backoff
        self._stop = asyncio.Event()

    def stop(self):
        logger.info("Worker stop requested")
        self._stop.set()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    async def run(self):
        """Dequeue and process until stop() is called."""
        logger.info(f"Worker started, listening on '{self.queue.queue_name}'")
        while not self.stopping:
            await self.run_once()
        logger.info("Worker stopped")

    async def run_once(self) -> bool:
        """One dequeue attempt. Returns True if a job was processed."""
        try:
            job = await self.queue.dequeue()
        except Exception as e:
            logger.error(f"Dequeue failed, backing off {self.error_backoff}s: {e}", exc_info=True)
            await self._backoff()
            return False

        if job is None:
            return False

        await self.process_job(job)
        return True

    async def process_job(self, job: QueuedJob):
        """Run the pipeline for one job; failures end up on the job, never here."""
        tag = f"[{job.job_id}]"
        if job.is_terminal:
            logger.info(f"{tag} Already {job.status}, skipping redelivered job")
            return

        logger.info(f"{tag} Processing {job.symbol}")
        try:
            await self.queue.update_status(job.job_id, STATUS_PROCESSING)
            self.repository.ensure_job(job)
            self.repository.update_status(job.job_id, STATUS_PROCESSING)

            result = await self.pipeline.run(job)

            await self.queue.set_result(job.job_id, result.to_dict())
            self.repository.mark_completed(job.job_id)
            logger.info(f"{tag} Completed: {result.setup.side}")
        except Exception as e:
            logger.error(f"{tag} Job failed: {e}", exc_info=True)
            await self._record_failure(job.job_id, _error_message(e))

    async def _record_failure(self, job_id: str, message: str):
        # Each store is updated independently so neither is left in `processing`
        try:
            await self.queue.set_error(job_id, message)
        except Exception as e:
            logger.error(f"[{job_id}] Failed to store error in queue: {e}")
        try:
            self.repository.mark_failed(job_id, message)
        except Exception as e:
            logger.error(f"[{job_id}] Failed to store error in database: {e}")

    async def _backoff(self):
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=self.error_backoff)
        except asyncio.TimeoutError:
            pass


def _error_message(exc: BaseException) -> str:
    text = str(exc).strip()
    return text or exc.__class__.__name__


# ---------------------------------------------------------------------------
# Process entry point
# ---------------------------------------------------------------------------

async def _serve():
    import redis.asyncio as aioredis
    from sqlalchemy import text

    from trade_signals.config import settings
    from trade_signals.database import create_db_and_tables, engine
    from trade_signals.services.interpretation import LLMInterpreter, build_openai_client
    from trade_signals.services.market_data import BinanceCandleSource, MarketDataService
    from trade_signals.services.vision import VisionAnalyzer

    redis_client = aioredis.from_url(settings.redis_url, decode_responses=True)

    # Unreachable stores at boot are fatal
    await redis_client.ping()
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    create_db_and_tables()

    llm_client = build_openai_client(
        settings.llm_provider,
        settings.openai_api_key,
        settings.deepseek_api_key,
        settings.deepseek_base_url,
        settings.llm_timeout,
    )
    model = settings.deepseek_model if settings.llm_provider == "deepseek" else settings.openai_model
    vision_client = build_openai_client(
        "openai", settings.openai_api_key, "", "", settings.vision_timeout
    )

    source = BinanceCandleSource(settings.binance_api_url, timeout=settings.request_timeout)
    repository = SignalRepository(engine)
    queue = JobQueue(
        redis_client,
        queue_name=settings.job_queue_name,
        job_ttl=settings.job_ttl,
        dequeue_timeout=settings.dequeue_timeout,
    )
    pipeline = SignalPipeline(
        market_data=MarketDataService(
            source,
            redis=redis_client,
            cache_ttl=settings.ohlcv_cache_ttl,
            max_retries=settings.max_retries,
            retry_base_delay=settings.candle_retry_base_delay,
        ),
        interpreter=LLMInterpreter(
            llm_client,
            model=model,
            timeout=settings.llm_timeout,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        ),
        vision=VisionAnalyzer(vision_client, settings.vision_model, timeout=settings.vision_timeout),
        repository=repository,
        max_retries=settings.max_retries,
        llm_retry_base_delay=settings.llm_retry_base_delay,
    )
    worker = SignalWorker(queue, repository, pipeline, error_backoff=settings.worker_error_backoff)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, worker.stop)

    try:
        await worker.run()
    finally:
        await source.close()
        await redis_client.aclose()


def main():
    from trade_signals.utils.logging import setup_logging

    setup_logging()
    try:
        asyncio.run(_serve())
    except Exception as e:
        logger.critical(f"Worker startup failed: {e}", exc_info=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
