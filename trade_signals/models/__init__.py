"""Database models."""

from trade_signals.models.signal_job import SignalJob
from trade_signals.models.signal_result import SignalResult

__all__ = [
    "SignalJob",
    "SignalResult",
]
