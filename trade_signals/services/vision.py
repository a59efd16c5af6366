"""Chart image analysis via an OpenAI vision model.

Optional context for the interpretation prompt; the pipeline treats any
failure here as non-fatal.
"""

import asyncio
import logging

import openai
from openai import AsyncOpenAI
from pydantic import ValidationError as PydanticValidationError

from trade_signals.errors import ParseError, UpstreamError, UpstreamTimeoutError
from trade_signals.schemas.interpretation import VisionAnalysis
from trade_signals.services.interpretation import extract_json_object

logger = logging.getLogger(__name__)

VISION_PROMPT = """Analyze this trading chart image and answer with JSON of this structure:
{
  "support_levels": [support levels read from the chart],
  "resistance_levels": [resistance levels read from the chart],
  "patterns": ["pattern names, e.g. 'head and shoulders', 'double bottom'"],
  "structure": "trend|range|breakout|reversal",
  "description": "brief analysis of what you see"
}
Be precise with numbers. Only respond with valid JSON."""


class VisionAnalyzer:
    def __init__(self, client: AsyncOpenAI | None, model: str, timeout: float = 30.0,
                 max_tokens: int = 500):
        self.client = client
        self.model = model
        self.timeout = timeout
        self.max_tokens = max_tokens

    async def analyze_image(self, image_base64: str) -> VisionAnalysis:
        if self.client is None:
            logger.warning("Vision API key not configured, skipping chart analysis")
            return VisionAnalysis(description="Vision analysis skipped - no API key")

        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=[{
                        "role": "user",
                        "content": [
                            {"type": "text", "text": VISION_PROMPT},
                            {"type": "image_url",
                             "image_url": {"url": f"data:image/png;base64,{image_base64}"}},
                        ],
                    }],
                    max_tokens=self.max_tokens,
                ),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, openai.APITimeoutError):
            raise UpstreamTimeoutError(f"Vision analysis timeout after {self.timeout}s") from None
        except openai.APIError as e:
            raise UpstreamError(f"Vision request failed: {e}") from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ParseError("No response from vision model")

        try:
            analysis = VisionAnalysis.model_validate(extract_json_object(content))
        except PydanticValidationError as e:
            raise ParseError(f"Vision response failed validation: {e.error_count()} errors") from e

        logger.debug(f"Vision analysis: {analysis.structure}, {len(analysis.patterns)} patterns")
        return analysis
