"""Stop-loss and take-profit placement from ATR and risk profile.

Never rejects a trade; rejection policy lives in the decision engine.
"""

import logging
from dataclasses import dataclass

from trade_signals.services.metrics import MarketMetrics
from trade_signals.utils.constants import ATR_MULTIPLIERS, PRICE_DECIMALS, TAKE_PROFIT_MULTIPLES
from trade_signals.utils.math import risk_reward, round_to

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RiskCalculation:
    entry: float
    stop_loss: float
    take_profits: tuple[float, ...]
    risk_reward: float


def get_atr_multiplier(risk: str) -> float:
    try:
        return ATR_MULTIPLIERS[risk]
    except KeyError:
        raise ValueError(f"Unknown risk profile: {risk}") from None


def _direction(side: str) -> int:
    if side == "long":
        return 1
    if side == "short":
        return -1
    raise ValueError(f"Risk can only be computed for long/short, got {side!r}")


def calculate_stop_loss(entry: float, metrics: MarketMetrics, risk: str, side: str) -> float:
    """Stop placed `ATR * multiplier` away from entry, against the trade."""
    atr_value = metrics.atr_percent / 100 * entry
    distance = atr_value * get_atr_multiplier(risk)
    return round_to(entry - _direction(side) * distance, PRICE_DECIMALS)


def calculate_take_profits(entry: float, stop_loss: float, side: str) -> tuple[float, ...]:
    """Targets at 1.5R, 2.5R and 4R, mirrored about entry for shorts."""
    r = abs(entry - stop_loss)
    direction = _direction(side)
    return tuple(
        round_to(entry + direction * r * multiple, PRICE_DECIMALS)
        for multiple in TAKE_PROFIT_MULTIPLES
    )


def calculate_risk(entry: float, metrics: MarketMetrics, risk: str, side: str) -> RiskCalculation:
    """Stop, targets and first-target risk/reward for a candidate entry."""
    entry = round_to(entry, PRICE_DECIMALS)
    stop_loss = calculate_stop_loss(entry, metrics, risk, side)
    take_profits = calculate_take_profits(entry, stop_loss, side)
    rr = risk_reward(entry, stop_loss, take_profits[0])

    logger.debug(
        f"Risk {side}/{risk}: entry={entry} sl={stop_loss} tps={list(take_profits)} rr={rr:.2f}"
    )
    return RiskCalculation(
        entry=entry,
        stop_loss=stop_loss,
        take_profits=take_profits,
        risk_reward=rr,
    )
