"""Small numeric helpers shared by the metrics calculator and the risk manager."""

import numpy as np


def round_to(value: float, decimals: int) -> float:
    return float(round(value, decimals))


def risk_reward(entry: float, stop_loss: float, take_profit: float) -> float:
    """Reward distance / risk distance. 0 when there is no risk distance."""
    risk = abs(entry - stop_loss)
    if risk == 0:
        return 0.0
    return abs(take_profit - entry) / risk


def percentage_change(old: float, new: float) -> float:
    if old == 0:
        return 0.0
    return (new - old) / old * 100


def sma(values: np.ndarray, period: int) -> float | None:
    """Mean of the last `period` values, or None with insufficient history."""
    if period <= 0 or len(values) < period:
        return None
    return float(np.mean(values[-period:]))


def true_ranges(highs: np.ndarray, lows: np.ndarray, closes: np.ndarray) -> np.ndarray:
    """Per-candle true range. The first candle uses its own close as prevClose."""
    prev_close = np.concatenate((closes[:1], closes[:-1]))
    return np.maximum.reduce([
        highs - lows,
        np.abs(highs - prev_close),
        np.abs(lows - prev_close),
    ])


def is_trending_up(closes: np.ndarray) -> bool:
    if len(closes) < 3:
        return False
    a, b, c = closes[-3:]
    return bool(b > a and c > b)


def is_trending_down(closes: np.ndarray) -> bool:
    if len(closes) < 3:
        return False
    a, b, c = closes[-3:]
    return bool(b < a and c < b)
