"""
Retry policy for rendered scrape attempts.

Shared by:
- ScrapeOrchestrator.advanced_scrape (preview rendering)
- ScrapeOrchestrator.reader_scrape (reader rendering)

A blocked response waits (attempt + 1) * step seconds before the next try.
A timed-out attempt is retried immediately.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry with linear backoff on blocking.

    Attributes:
        max_retries: Retries after the first attempt (total attempts = max_retries + 1).
        blocked_step: Backoff step in seconds applied after a blocked attempt.

    Example:
        >>> policy = RetryPolicy(max_retries=2, blocked_step=5.0)
        >>> policy.blocked_delay(0), policy.blocked_delay(1)
        (5.0, 10.0)
    """

    max_retries: int = 2
    blocked_step: float = 5.0

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if self.blocked_step < 0:
            raise ValueError("blocked_step must be non-negative")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def has_retry_left(self, attempt: int) -> bool:
        """Whether another attempt may follow the 0-indexed ``attempt``."""
        return attempt < self.max_retries

    def blocked_delay(self, attempt: int) -> float:
        """Delay before retrying after a blocked result on ``attempt``.

        Args:
            attempt: Attempt number (0-indexed, 0 = first attempt).

        Returns:
            Delay in seconds.
        """
        if attempt < 0:
            raise ValueError("attempt must be non-negative")
        return (attempt + 1) * self.blocked_step
