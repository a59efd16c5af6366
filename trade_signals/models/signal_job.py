"""SignalJob model: one row per signal request, never expired."""

from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class SignalJob(SQLModel, table=True):
    __tablename__ = "signal_job"

    id: str = Field(primary_key=True, max_length=36)  # uuid4
    owner_id: str = Field(index=True)
    symbol: str = Field(index=True)  # e.g. "BTCUSDT"
    holding: str  # "scalp", "daily", "swing", "auto"
    risk: str  # "safe", "growth", "aggressive"
    image_base64: str | None = None
    status: str = Field(default="pending", index=True)  # pending, processing, completed, failed
    error: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None
