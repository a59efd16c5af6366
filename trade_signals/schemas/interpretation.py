"""Pydantic schemas for the untrusted interpretation and vision payloads."""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

# Model-supplied prices: strictly positive and finite
PriceLevel = Annotated[float, Field(gt=0, allow_inf_nan=False)]


class MarketInterpretation(BaseModel):
    """Validated LLM market read. Nothing past the boundary sees raw JSON."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    bias: Literal["bullish", "bearish", "neutral"]
    structure: Literal["trend", "range", "breakout", "reversal"]
    key_levels: list[PriceLevel] = Field(default_factory=list)
    liquidity: Literal["above", "below", "both", "none"]
    volatility: Literal["low", "normal", "high"]
    confidence: float = Field(ge=0, le=1, allow_inf_nan=False)
    reasoning: str


class VisionAnalysis(BaseModel):
    """Levels and patterns read off a user-supplied chart image."""

    model_config = ConfigDict(extra="ignore")

    support_levels: list[PriceLevel] = Field(default_factory=list)
    resistance_levels: list[PriceLevel] = Field(default_factory=list)
    patterns: list[str] = Field(default_factory=list)
    structure: str = "unknown"
    description: str = ""
