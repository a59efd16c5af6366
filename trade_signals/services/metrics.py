"""Market metrics from a candle series.

Pure computation: no I/O, no database access. The pipeline calls
`calculate_metrics` once per job and `is_market_tradeable` before spending an
interpretation call.
"""

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from trade_signals.services.market_data import Candle
from trade_signals.utils import math as m
from trade_signals.utils.constants import (
    ATR_PERIOD,
    HIGH_VOLATILITY_ATR_PCT,
    LOW_VOLATILITY_ATR_PCT,
    MIN_TRADEABLE_RANGE_PCT,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MarketMetrics:
    """Volatility and trend snapshot for the latest candle."""
    current_price: float
    atr_percent: float
    range_24h: float
    trend_regime: str  # "uptrend", "downtrend", "sideways"
    volatility_regime: str  # "low", "normal", "high"
    sma20: float | None = None
    sma50: float | None = None


def _columns(candles: Sequence[Candle]) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    highs = np.array([c.high for c in candles], dtype=float)
    lows = np.array([c.low for c in candles], dtype=float)
    closes = np.array([c.close for c in candles], dtype=float)
    return highs, lows, closes


def calculate_atr_percent(candles: Sequence[Candle], period: int = ATR_PERIOD) -> float:
    """ATR over the last `period` true ranges, as a percent of the last close.

    Returns 0 with fewer than `period` candles, which reads as low volatility.
    """
    if len(candles) < period:
        return 0.0
    highs, lows, closes = _columns(candles)
    atr = float(np.mean(m.true_ranges(highs, lows, closes)[-period:]))
    last_close = closes[-1]
    if last_close == 0:
        return 0.0
    return atr / last_close * 100


def calculate_range_percent(candles: Sequence[Candle]) -> float:
    """(max high - min low) / current price * 100 over the supplied window."""
    if not candles:
        return 0.0
    highs, lows, closes = _columns(candles)
    current = closes[-1]
    if current == 0:
        return 0.0
    return float((highs.max() - lows.min()) / current * 100)


def detect_trend_regime(candles: Sequence[Candle]) -> str:
    if len(candles) < 3:
        return "sideways"
    closes = np.array([c.close for c in candles[-3:]], dtype=float)
    if m.is_trending_up(closes):
        return "uptrend"
    if m.is_trending_down(closes):
        return "downtrend"
    return "sideways"


def detect_volatility_regime(atr_percent: float) -> str:
    if atr_percent < LOW_VOLATILITY_ATR_PCT:
        return "low"
    if atr_percent < HIGH_VOLATILITY_ATR_PCT:
        return "normal"
    return "high"


def calculate_metrics(candles: Sequence[Candle]) -> MarketMetrics:
    """Compute every metric for a chronological candle series."""
    if not candles:
        raise ValueError("No candles provided")

    closes = np.array([c.close for c in candles], dtype=float)
    atr_percent = calculate_atr_percent(candles)

    metrics = MarketMetrics(
        current_price=float(closes[-1]),
        atr_percent=atr_percent,
        range_24h=calculate_range_percent(candles),
        trend_regime=detect_trend_regime(candles),
        volatility_regime=detect_volatility_regime(atr_percent),
        sma20=m.sma(closes, 20),
        sma50=m.sma(closes, 50),
    )
    logger.debug(f"Metrics: {metrics}")
    return metrics


def is_market_tradeable(metrics: MarketMetrics) -> bool:
    """Low volatility or a very tight range is not worth an interpretation call."""
    if metrics.volatility_regime == "low":
        return False
    if metrics.range_24h < MIN_TRADEABLE_RANGE_PCT:
        return False
    return True
