"""FastAPI application entry point (producer side; workers run separately)."""

from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from trade_signals.config import settings
from trade_signals.database import create_db_and_tables, engine
from trade_signals.engine.queue import JobQueue
from trade_signals.engine.repository import SignalRepository
from trade_signals.services.signal_service import SignalService
from trade_signals.utils.logging import setup_logging
from trade_signals.api import signals, system


def build_signal_service(redis_client: aioredis.Redis) -> SignalService:
    queue = JobQueue(
        redis_client,
        queue_name=settings.job_queue_name,
        job_ttl=settings.job_ttl,
        dequeue_timeout=settings.dequeue_timeout,
    )
    return SignalService(queue, SignalRepository(engine))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    setup_logging()
    create_db_and_tables()

    redis_client = aioredis.from_url(settings.redis_url, decode_responses=True)
    await redis_client.ping()
    app.state.signal_service = build_signal_service(redis_client)

    # Start Telegram bot if configured
    telegram_bot = None
    if settings.telegram_bot_token:
        from trade_signals.services.telegram_bot import init_bot
        telegram_bot = init_bot()
        telegram_bot.start()

    yield

    if telegram_bot:
        telegram_bot.stop()
    await redis_client.aclose()


app = FastAPI(
    title="Trade Signal Service",
    description="Queued LLM market interpretation reduced to risk-managed trade setups",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def _request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed signal requests are a 400, like service-level validation errors."""
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


app.include_router(signals.router)
app.include_router(system.router)
