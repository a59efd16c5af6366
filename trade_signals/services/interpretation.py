"""Market interpretation via an OpenAI-compatible chat model.

The model answer is untrusted: `parse_interpretation` extracts the JSON object
and validates it against `MarketInterpretation` before anything downstream
sees it.
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import Sequence

import openai
from openai import AsyncOpenAI
from pydantic import ValidationError as PydanticValidationError

from trade_signals.errors import ParseError, UpstreamError, UpstreamTimeoutError
from trade_signals.schemas.interpretation import MarketInterpretation, VisionAnalysis
from trade_signals.services.market_data import Candle
from trade_signals.services.metrics import MarketMetrics
from trade_signals.utils.math import percentage_change

logger = logging.getLogger(__name__)

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)

SYSTEM_PROMPT = (
    "You are an expert crypto trading analyst with 10+ years of experience. "
    "Analyze market structure and provide unbiased technical analysis: trend, "
    "support/resistance and market regime. Your output is consumed by a "
    "deterministic trading engine, so answer with JSON only."
)


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class InterpretationContext:
    """Everything the model is shown for one job."""
    symbol: str
    holding: str
    metrics: MarketMetrics
    candles: Sequence[Candle]
    vision: VisionAnalysis | None = None


def _fmt_price(value: float | None) -> str:
    return f"${value:.2f}" if value is not None else "N/A"


def build_market_analysis_prompt(ctx: InterpretationContext) -> str:
    metrics = ctx.metrics
    candles = list(ctx.candles)
    last = candles[-1]
    prev = candles[-2] if len(candles) > 1 else last
    change = percentage_change(prev.close, last.close)

    lines = [
        "Analyze the following market data and answer with a structured JSON object.",
        "",
        f"Trading pair: {ctx.symbol}",
        f"Holding horizon: {ctx.holding}",
        f"Current price: {_fmt_price(last.close)}",
        f"Price change (last candle): {change:+.2f}%",
        f"ATR volatility: {metrics.atr_percent:.2f}%",
        f"Range over window: {metrics.range_24h:.2f}%",
        f"Trend regime: {metrics.trend_regime}",
        f"Volatility regime: {metrics.volatility_regime}",
        f"SMA20: {_fmt_price(metrics.sma20)}",
        f"SMA50: {_fmt_price(metrics.sma50)}",
        "",
        "Recent price action (last 5 candles):",
    ]
    for i, c in enumerate(candles[-5:], start=1):
        lines.append(
            f"{i}. O: {c.open:.2f} H: {c.high:.2f} L: {c.low:.2f} C: {c.close:.2f}"
        )

    if ctx.vision is not None:
        v = ctx.vision
        lines += [
            "",
            "Chart analysis (from user image):",
            f"Support levels: {', '.join(str(x) for x in v.support_levels) or 'none'}",
            f"Resistance levels: {', '.join(str(x) for x in v.resistance_levels) or 'none'}",
            f"Patterns: {', '.join(v.patterns) or 'none'}",
            f"Structure: {v.structure}",
            f"Description: {v.description}",
        ]

    lines += [
        "",
        "Respond with JSON of exactly this shape:",
        "{",
        '  "bias": "bullish|bearish|neutral",',
        '  "structure": "trend|range|breakout|reversal",',
        '  "key_levels": [numbers, key support/resistance levels],',
        '  "liquidity": "above|below|both|none",',
        '  "volatility": "low|normal|high",',
        '  "confidence": 0.0 to 1.0,',
        '  "reasoning": "brief explanation"',
        "}",
        "Confidence should reflect your conviction in the bias. Only respond with valid JSON.",
    ]
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Boundary validation
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class InterpretationResult:
    """Either a validated interpretation or the reason it was rejected."""
    interpretation: MarketInterpretation | None = None
    error: ParseError | None = None

    @property
    def ok(self) -> bool:
        return self.interpretation is not None

    def unwrap(self) -> MarketInterpretation:
        if self.interpretation is None:
            raise self.error or ParseError("empty interpretation")
        return self.interpretation


def extract_json_object(content: str) -> dict:
    """Return the first {...} block of a model answer as a dict."""
    match = _JSON_OBJECT.search(content or "")
    if not match:
        raise ParseError("Could not extract JSON from model response")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ParseError(f"Malformed JSON in model response: {e}") from e
    if not isinstance(data, dict):
        raise ParseError("Model response JSON is not an object")
    return data


def parse_interpretation(content: str | None) -> InterpretationResult:
    if not content:
        return InterpretationResult(error=ParseError("No response from model"))
    try:
        data = extract_json_object(content)
    except ParseError as e:
        return InterpretationResult(error=e)
    try:
        return InterpretationResult(interpretation=MarketInterpretation.model_validate(data))
    except PydanticValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        return InterpretationResult(error=ParseError(f"Interpretation failed validation: {fields}"))


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

def build_openai_client(provider: str, openai_api_key: str, deepseek_api_key: str,
                        deepseek_base_url: str, timeout: float) -> AsyncOpenAI | None:
    """Return a client for the configured provider, or None without credentials."""
    if provider == "deepseek":
        if not deepseek_api_key:
            return None
        return AsyncOpenAI(api_key=deepseek_api_key, base_url=deepseek_base_url,
                           timeout=timeout, max_retries=0)
    if not openai_api_key:
        return None
    return AsyncOpenAI(api_key=openai_api_key, timeout=timeout, max_retries=0)


class LLMInterpreter:
    """One chat completion per call; retries are the caller's business."""

    def __init__(
        self,
        client: AsyncOpenAI | None,
        model: str,
        timeout: float = 45.0,
        temperature: float = 0.7,
        max_tokens: int = 500,
    ):
        self.client = client
        self.model = model
        self.timeout = timeout
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def interpret(self, ctx: InterpretationContext) -> MarketInterpretation:
        if self.client is None:
            raise UpstreamError("Interpretation model API key not configured")

        content = await self._complete(build_market_analysis_prompt(ctx))
        interpretation = parse_interpretation(content).unwrap()
        logger.debug(
            f"{ctx.symbol}: bias={interpretation.bias} confidence={interpretation.confidence:.2f}"
        )
        return interpretation

    async def _complete(self, prompt: str) -> str | None:
        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": prompt},
                    ],
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                ),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, openai.APITimeoutError):
            raise UpstreamTimeoutError(f"Interpretation timeout after {self.timeout}s") from None
        except openai.APIError as e:
            raise UpstreamError(f"Interpretation request failed: {e}") from e

        if not response.choices:
            return None
        return response.choices[0].message.content
