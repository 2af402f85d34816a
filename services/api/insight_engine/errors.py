from __future__ import annotations


class InsightEngineError(Exception):
    """Base class for errors raised by the insight engine."""


class ExternalUnavailable(InsightEngineError):
    """The remote advice source cannot be called (disabled, no key)."""


class LocalEngineError(InsightEngineError):
    """The local engine failed to synthesize an answer."""

    def __init__(self, message: str, retry_count: int = 0, retry_after: float = 0.0):
        super().__init__(message)
        self.retry_count = retry_count
        self.retry_after = retry_after


class ResolutionSuperseded(InsightEngineError):
    """A newer question replaced this one before the external answer arrived."""
