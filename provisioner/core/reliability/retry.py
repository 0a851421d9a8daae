"""
Retry policy — bounded attempts with linear backoff.

Delay before attempt ``n + 1`` is ``backoff * n`` seconds: 2s, 4s, ...
with the defaults. Only errors whose ``retryable`` flag is set are
retried; everything else fails on the first attempt.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RetryPolicy:
    """How often, and how patiently, a retryable step is re-attempted."""

    max_attempts: int = 3
    backoff: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.backoff < 0:
            raise ValueError("backoff must not be negative")

    def delay(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        return self.backoff * attempt

    def should_retry(self, attempt: int, error: BaseException) -> bool:
        return attempt < self.max_attempts and bool(getattr(error, "retryable", False))

    @classmethod
    def none(cls) -> RetryPolicy:
        return cls(max_attempts=1, backoff=0.0)
