"""Deterministic trade-setup construction.

Turns a validated market interpretation plus computed metrics into either a
populated TradeSetup or a `no_trade` verdict. Rules are evaluated in order and
the first rejection wins. Same inputs always give the same setup.
"""

import logging
from dataclasses import asdict, dataclass, field

from trade_signals.schemas.interpretation import MarketInterpretation
from trade_signals.services.metrics import MarketMetrics
from trade_signals.services.risk_manager import calculate_risk
from trade_signals.utils.constants import MIN_CONFIDENCE, MIN_RISK_REWARD

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TradeSetup:
    """Final decision for one job."""
    side: str  # "long", "short", "no_trade"
    entry: float = 0.0
    stop_loss: float = 0.0
    take_profits: tuple[float, ...] = field(default_factory=tuple)
    risk_reward: float = 0.0
    confidence: float = 0.0
    reason: str = ""

    @property
    def is_trade(self) -> bool:
        return self.side != "no_trade"

    def to_dict(self) -> dict:
        data = asdict(self)
        data["take_profits"] = list(self.take_profits)
        return data


def no_trade(reason: str, confidence: float = 0.0) -> TradeSetup:
    return TradeSetup(side="no_trade", confidence=confidence, reason=reason)


def get_min_confidence(risk: str) -> float:
    try:
        return MIN_CONFIDENCE[risk]
    except KeyError:
        raise ValueError(f"Unknown risk profile: {risk}") from None


def _resolve_side_and_entry(
    interpretation: MarketInterpretation,
    current_price: float,
) -> tuple[str, float] | None:
    """Map bias to side and candidate entry. None for a neutral bias."""
    levels = interpretation.key_levels
    if interpretation.bias == "bullish":
        # Buy the pullback to support if it sits below price
        entry = min(current_price, min(levels)) if levels else current_price
        return "long", entry
    if interpretation.bias == "bearish":
        entry = max(current_price, max(levels)) if levels else current_price
        return "short", entry
    return None


def build_trade_setup(
    interpretation: MarketInterpretation,
    metrics: MarketMetrics,
    risk: str,
) -> TradeSetup:
    """Apply the ordered business rules and return a validated setup."""
    confidence = interpretation.confidence

    # Rule 1: volatility gate
    if metrics.volatility_regime == "low":
        logger.info("Rejecting trade: low volatility regime")
        return no_trade("low volatility regime", confidence)

    # Rule 2: confidence gate
    min_confidence = get_min_confidence(risk)
    if confidence < min_confidence:
        logger.info(f"Rejecting trade: confidence {confidence:.2f} < {min_confidence}")
        return no_trade(f"low confidence: {confidence:.2f} < {min_confidence:.2f}", confidence)

    # Rule 3: bias resolution
    resolved = _resolve_side_and_entry(interpretation, metrics.current_price)
    if resolved is None:
        logger.info("Rejecting trade: neutral bias")
        return no_trade("no directional conviction", confidence)
    side, entry = resolved

    # Rule 4: stop / targets
    calc = calculate_risk(entry, metrics, risk, side)

    # Rule 5: risk/reward gate
    if calc.risk_reward < MIN_RISK_REWARD:
        logger.info(f"Rejecting trade: R:R {calc.risk_reward:.2f} < {MIN_RISK_REWARD}")
        return no_trade(
            f"poor risk/reward: {calc.risk_reward:.2f} < {MIN_RISK_REWARD:.2f}", confidence
        )

    setup = TradeSetup(
        side=side,
        entry=calc.entry,
        stop_loss=calc.stop_loss,
        take_profits=calc.take_profits,
        risk_reward=calc.risk_reward,
        confidence=confidence,
        reason=(
            f"{side.upper()} setup: {interpretation.bias} bias, "
            f"structure {interpretation.structure}, R:R {calc.risk_reward:.2f}"
        ),
    )

    if not validate_trade_setup(setup):
        return no_trade("setup validation failed", confidence)

    logger.info(f"Trade setup: {setup.side} entry={setup.entry} sl={setup.stop_loss} rr={setup.risk_reward:.2f}")
    return setup


def validate_trade_setup(setup: TradeSetup) -> bool:
    """Re-check the ordering invariants of a constructed setup."""
    if not setup.is_trade:
        return True

    if not setup.take_profits:
        logger.warning(f"Invalid setup, no take-profits: {setup}")
        return False

    if setup.side == "long":
        ordered = setup.stop_loss < setup.entry and all(tp > setup.entry for tp in setup.take_profits)
    elif setup.side == "short":
        ordered = setup.stop_loss > setup.entry and all(tp < setup.entry for tp in setup.take_profits)
    else:
        logger.warning(f"Invalid setup side: {setup.side!r}")
        return False

    if not ordered:
        logger.warning(f"Invalid {setup.side} setup ordering: {setup}")
        return False

    if setup.risk_reward < MIN_RISK_REWARD:
        logger.warning(f"Invalid setup, R:R below minimum: {setup}")
        return False

    return True
