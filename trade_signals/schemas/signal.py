"""Pydantic schemas for the signal request API."""

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator

from trade_signals.utils.constants import Holding, RiskProfile


class SignalRequest(BaseModel):
    symbol: str = Field(
        min_length=1, max_length=20, validation_alias=AliasChoices("symbol", "pair")
    )
    holding: Holding = "auto"
    risk: RiskProfile = "growth"
    image_base64: str | None = Field(
        default=None, validation_alias=AliasChoices("image_base64", "imageBase64")
    )

    @field_validator("symbol")
    @classmethod
    def _normalize_symbol(cls, value: str) -> str:
        text = value.strip().upper().replace("/", "").replace("-", "")
        if not text:
            raise ValueError("must not be empty")
        if not text.isalnum():
            raise ValueError("must be alphanumeric, e.g. BTCUSDT")
        return text

    @field_validator("image_base64")
    @classmethod
    def _strip_data_url(cls, value: str | None) -> str | None:
        if value is None:
            return None
        text = value.strip()
        if text.startswith("data:") and "," in text:
            text = text.split(",", 1)[1]
        return text or None


class SignalCreated(BaseModel):
    job_id: str


class SignalStatus(BaseModel):
    job_id: str
    status: str
    setup: dict[str, Any] | None = None
    interpretation: dict[str, Any] | None = None
    metrics: dict[str, Any] | None = None
    error: str | None = None


class SignalJobRead(BaseModel):
    id: str
    symbol: str
    holding: str
    risk: str
    status: str
    error: str | None
    created_at: datetime
    completed_at: datetime | None

    model_config = {"from_attributes": True}
