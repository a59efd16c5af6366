"""Trade signal service: queued LLM market interpretation reduced to risk-managed setups."""

__version__ = "0.1.0"
