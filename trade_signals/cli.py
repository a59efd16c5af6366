"""CLI tool for operator tasks.

Usage:
    python -m trade_signals.cli init-db
    python -m trade_signals.cli worker
    python -m trade_signals.cli enqueue SYMBOL [holding] [risk]
"""

import asyncio
import sys

import redis.asyncio as aioredis

from trade_signals.config import settings
from trade_signals.database import create_db_and_tables
from trade_signals.errors import ValidationError
from trade_signals.utils.logging import setup_logging


def init_db():
    """Create the job and result tables."""
    create_db_and_tables()
    print("Database tables created.")


async def _enqueue(payload: dict) -> str:
    from trade_signals.main import build_signal_service

    redis_client = aioredis.from_url(settings.redis_url, decode_responses=True)
    try:
        service = build_signal_service(redis_client)
        return await service.create_signal_request("cli", payload)
    finally:
        await redis_client.aclose()


def enqueue(args: list[str]):
    """Queue a signal request from the command line and print its job id."""
    if not args:
        print("Usage: python -m trade_signals.cli enqueue SYMBOL [holding] [risk]")
        sys.exit(1)

    payload = {"symbol": args[0]}
    if len(args) > 1:
        payload["holding"] = args[1]
    if len(args) > 2:
        payload["risk"] = args[2]

    create_db_and_tables()
    try:
        job_id = asyncio.run(_enqueue(payload))
    except ValidationError as e:
        print(str(e))
        sys.exit(1)

    print(job_id)


def main():
    if len(sys.argv) < 2:
        print("Usage: python -m trade_signals.cli <command>")
        print("Commands: init-db, worker, enqueue")
        sys.exit(1)

    setup_logging()
    command = sys.argv[1]
    if command == "init-db":
        init_db()
    elif command == "worker":
        from trade_signals.engine.worker import main as worker_main
        worker_main()
    elif command == "enqueue":
        enqueue(sys.argv[2:])
    else:
        print(f"Unknown command: {command}")
        sys.exit(1)


if __name__ == "__main__":
    main()
