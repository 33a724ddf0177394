# src/promptbatch/plugins/llm/retry.py
"""Exponential backoff policy for provider requests."""

from dataclasses import dataclass

MAX_BACKOFF_SECONDS = 10.0


def backoff_delay(attempt: int, interval: float, cap: float = MAX_BACKOFF_SECONDS) -> float:
    """Delay after failed attempt number `attempt` (0-based).

    delay = min(2**attempt * interval, cap)
    """
    if attempt < 0:
        raise ValueError(f"attempt must be >= 0, got {attempt}")
    return min((2**attempt) * interval, cap)


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and backoff for one provider.

    max_attempts counts every request, the first one included.
    """

    max_attempts: int
    interval: float
    cap: float = MAX_BACKOFF_SECONDS

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.interval < 0:
            raise ValueError(f"interval must be >= 0, got {self.interval}")

    def delay_for(self, attempt: int) -> float:
        return backoff_delay(attempt, self.interval, self.cap)

    def should_retry(self, attempt: int) -> bool:
        """Whether another request may follow failed attempt `attempt`."""
        return attempt + 1 < self.max_attempts
