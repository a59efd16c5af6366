"""Shared constants and thresholds for the decision pipeline."""

from typing import Literal

Holding = Literal["scalp", "daily", "swing", "auto"]
RiskProfile = Literal["safe", "growth", "aggressive"]

STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_NOT_FOUND = "not_found"
TERMINAL_STATUSES = {STATUS_COMPLETED, STATUS_FAILED}

# Stop distance = ATR value * multiplier; wider stop is more conservative
ATR_MULTIPLIERS: dict[str, float] = {
    "safe": 2.5,
    "growth": 1.8,
    "aggressive": 1.2,
}

MIN_CONFIDENCE: dict[str, float] = {
    "safe": 0.75,
    "growth": 0.65,
    "aggressive": 0.60,
}

# Take-profit targets as multiples of the initial risk R
TAKE_PROFIT_MULTIPLES: tuple[float, ...] = (1.5, 2.5, 4.0)

MIN_RISK_REWARD = 1.2

ATR_PERIOD = 14
LOW_VOLATILITY_ATR_PCT = 1.0
HIGH_VOLATILITY_ATR_PCT = 3.0
MIN_TRADEABLE_RANGE_PCT = 0.5

PRICE_DECIMALS = 8

# Higher-timeframe window the metrics and the prompt are built from
ANALYSIS_INTERVAL = "4h"
ANALYSIS_DAYS_BACK = 7
CANDLE_BUFFER = 50
