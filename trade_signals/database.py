"""SQLModel database engine and session management."""

import logging

from sqlalchemy import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from trade_signals.config import settings

logger = logging.getLogger(__name__)


def make_engine(database_url: str) -> Engine:
    """Build an engine; SQLite needs check_same_thread=False, PostgreSQL does not."""
    connect_args = {}
    kwargs = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            # One shared connection, otherwise every session sees an empty database
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True
    return create_engine(database_url, echo=False, connect_args=connect_args, **kwargs)


engine = make_engine(settings.database_url)


def create_db_and_tables(db_engine: Engine | None = None):
    """Create all tables. Called on startup by the API and the worker."""
    import trade_signals.models  # noqa: F401  (register tables on the metadata)

    SQLModel.metadata.create_all(db_engine or engine)
