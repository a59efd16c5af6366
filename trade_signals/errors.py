"""Error taxonomy shared by the pipeline, the queue and the producer surfaces."""


class SignalServiceError(Exception):
    """Base class for every error raised on purpose by this package."""


class ValidationError(SignalServiceError):
    """Malformed signal request. Raised before anything is enqueued."""


class UpstreamError(SignalServiceError):
    """Candle, interpretation or vision source unavailable or non-2xx."""


class UpstreamTimeoutError(UpstreamError):
    """Per-call deadline exceeded; retryable like any other upstream failure."""


class ParseError(SignalServiceError):
    """Interpretation response failed schema validation."""


class PersistenceError(SignalServiceError):
    """Durable-storage read or write failed."""


def is_retryable_upstream(exc: BaseException) -> bool:
    """Candle fetches retry on upstream failures (timeouts included)."""
    return isinstance(exc, UpstreamError)


def is_retryable_interpretation(exc: BaseException) -> bool:
    """A fresh model call may succeed where the previous answer failed to parse."""
    return isinstance(exc, (UpstreamError, ParseError))
