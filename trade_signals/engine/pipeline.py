"""Per-job signal pipeline.

This is what the worker runs for every dequeued job. It orchestrates:
candle fetch -> metrics -> tradeability gate -> vision (optional) ->
interpretation -> decision engine -> result persistence.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any

from trade_signals.engine.queue import QueuedJob
from trade_signals.engine.repository import SignalRepository
from trade_signals.errors import is_retryable_interpretation
from trade_signals.schemas.interpretation import MarketInterpretation, VisionAnalysis
from trade_signals.services.decision_engine import TradeSetup, build_trade_setup, no_trade
from trade_signals.services.interpretation import InterpretationContext, LLMInterpreter
from trade_signals.services.market_data import MarketDataService
from trade_signals.services.metrics import MarketMetrics, calculate_metrics, is_market_tradeable
from trade_signals.services.vision import VisionAnalyzer
from trade_signals.utils.retry import retry_async

logger = logging.getLogger(__name__)

UNTRADEABLE_REASON = "market not tradeable - low volatility/range"


@dataclass(frozen=True)
class PipelineResult:
    setup: TradeSetup
    metrics: MarketMetrics
    interpretation: MarketInterpretation | None = None
    vision: VisionAnalysis | None = None

    def metrics_dict(self) -> dict[str, Any]:
        return asdict(self.metrics)

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe payload stored on the queue hash for pollers."""
        return {
            "setup": self.setup.to_dict(),
            "confidence": self.setup.confidence,
            "metrics": self.metrics_dict(),
            "interpretation": self.interpretation.model_dump() if self.interpretation else None,
            "vision": self.vision.model_dump() if self.vision else None,
        }


class SignalPipeline:
    def __init__(
        self,
        market_data: MarketDataService,
        interpreter: LLMInterpreter,
        vision: VisionAnalyzer | None,
        repository: SignalRepository,
        max_retries: int = 3,
        llm_retry_base_delay: float = 1.0,
    ):
        self.market_data = market_data
        self.interpreter = interpreter
        self.vision = vision
        self.repository = repository
        self.max_retries = max_retries
        self.llm_retry_base_delay = llm_retry_base_delay

    async def run(self, job: QueuedJob) -> PipelineResult:
        """Run one job end-to-end. Errors propagate to the worker."""
        tag = f"[{job.job_id}]"
        logger.info(f"{tag} Starting pipeline for {job.symbol} ({job.holding}/{job.risk})")

        # Step 1: market data
        candles = await self.market_data.get_candles(job.symbol)
        metrics = calculate_metrics(candles)
        logger.info(
            f"{tag} atr={metrics.atr_percent:.2f}% range={metrics.range_24h:.2f}% "
            f"trend={metrics.trend_regime} vol={metrics.volatility_regime}"
        )

        # Step 2: tradeability gate, before paying for a model call
        if not is_market_tradeable(metrics):
            logger.info(f"{tag} Market not tradeable, skipping interpretation")
            result = PipelineResult(setup=no_trade(UNTRADEABLE_REASON), metrics=metrics)
            self.repository.save_result(job.job_id, result)
            return result

        # Step 3: optional chart analysis
        vision = await self._analyze_image(job)

        # Step 4: interpretation
        ctx = InterpretationContext(
            symbol=job.symbol,
            holding=job.holding,
            metrics=metrics,
            candles=candles,
            vision=vision,
        )
        interpretation = await retry_async(
            lambda: self.interpreter.interpret(ctx),
            attempts=self.max_retries,
            base_delay=self.llm_retry_base_delay,
            is_retryable=is_retryable_interpretation,
            description=f"interpretation {job.symbol}",
        )

        # Step 5: decision
        setup = build_trade_setup(interpretation, metrics, job.risk)
        result = PipelineResult(
            setup=setup, metrics=metrics, interpretation=interpretation, vision=vision
        )

        # Step 6: persist
        self.repository.save_result(job.job_id, result)
        logger.info(f"{tag} Pipeline complete: {setup.side} ({setup.reason})")
        return result

    async def _analyze_image(self, job: QueuedJob) -> VisionAnalysis | None:
        if not job.image_base64 or self.vision is None:
            return None
        try:
            return await self.vision.analyze_image(job.image_base64)
        except Exception as e:
            logger.warning(f"[{job.job_id}] Vision analysis failed, continuing without it: {e}")
            return None
