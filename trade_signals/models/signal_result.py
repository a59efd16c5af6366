"""SignalResult model: audit record of the setup produced for a job."""

from datetime import datetime, timezone
from typing import Any

from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON


class SignalResult(SQLModel, table=True):
    __tablename__ = "signal_result"

    id: int | None = Field(default=None, primary_key=True)
    job_id: str = Field(foreign_key="signal_job.id", unique=True, index=True)
    side: str = Field(index=True)  # "long", "short", "no_trade"
    entry: float | None = None
    stop_loss: float | None = None
    take_profits: list[float] = Field(default_factory=list, sa_column=Column(JSON))
    risk_reward: float = 0.0
    confidence: float = 0.0
    reason: str | None = None
    market_interpretation: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    vision_analysis: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    metrics: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
