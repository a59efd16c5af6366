"""Candle interval helpers."""

import math

_UNIT_SECONDS = {"m": 60, "h": 3600, "d": 86400, "w": 604800}


def interval_to_seconds(interval: str) -> int:
    unit = interval[-1]
    value = interval[:-1]
    if unit not in _UNIT_SECONDS or not value.isdigit():
        raise ValueError(f"Unknown interval: {interval}")
    return int(value) * _UNIT_SECONDS[unit]


def candle_count(interval: str, days_back: int = 7, buffer: int = 50) -> int:
    """Number of candles covering `days_back` days plus a warm-up buffer."""
    total = days_back * 86400
    return math.ceil(total / interval_to_seconds(interval)) + buffer
