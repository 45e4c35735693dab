"""
Retry utilities with exponential backoff for outbound API calls.
"""
import random
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

# Responses meaning the provider did not process the request. 500/502/504 are
# excluded: the message may already have been accepted upstream.
RETRYABLE_STATUS_CODES: Tuple[int, ...] = (429, 503)


@dataclass
class RetryStats:
    """Tracks retry statistics for a single operation."""
    attempts: int = 0
    total_delay_seconds: float = 0.0
    last_error: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    success: bool = False

    def record_attempt(self, error: Optional[str] = None, delay: float = 0.0):
        """Record a delivery attempt."""
        self.attempts += 1
        self.total_delay_seconds += delay
        if error:
            self.last_error = error
            self.errors.append(error)

    def mark_success(self):
        self.success = True

    def to_dict(self) -> dict:
        """Convert to dictionary for logging/storage."""
        return {
            "attempts": self.attempts,
            "total_delay_seconds": round(self.total_delay_seconds, 2),
            "success": self.success,
            "last_error": self.last_error,
            "errors": self.errors[:5]  # Cap at 5 errors
        }


def calculate_backoff(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True
) -> float:
    """
    Calculate delay for exponential backoff.

    Args:
        attempt: Current attempt number (1-indexed)
        base_delay: Initial delay in seconds
        max_delay: Maximum delay cap
        exponential_base: Base for exponential calculation
        jitter: Add 0-25% randomness to prevent thundering herd

    Returns:
        Delay in seconds
    """
    delay = base_delay * (exponential_base ** (attempt - 1))
    delay = min(delay, max_delay)

    if jitter:
        delay += delay * random.uniform(0, 0.25)

    return delay


def is_retryable_status(status: int) -> bool:
    """Rate limits and explicit unavailability are retried; everything else is final."""
    return status in RETRYABLE_STATUS_CODES
