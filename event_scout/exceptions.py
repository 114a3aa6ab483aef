"""Error types raised by the ingestion pipeline."""

from __future__ import annotations


class ExtractionError(RuntimeError):
    """Model output for a source could not be validated after all attempts."""

    def __init__(self, message: str, source_name: str = "") -> None:
        super().__init__(message)
        self.source_name = source_name


class RateLimitError(RuntimeError):
    """The extraction backend kept rate-limiting us after every backoff step."""

    def __init__(self, message: str, original_error: BaseException | None = None) -> None:
        super().__init__(message)
        self.original_error = original_error


class RunInProgressError(RuntimeError):
    """Another run of the same agent is still active."""


__all__ = ["ExtractionError", "RateLimitError", "RunInProgressError"]
