"""
Retry policy for dialing a peer
"""
from remotesync import config


class RetryPolicy:
    """Bounded attempts, each with a timeout, separated by a delay.

    The delay is fixed by default (backoff_multiplier=1.0); a multiplier
    above 1 gives exponential backoff capped at max_delay.
    """

    def __init__(
        self,
        max_attempts: int = config.CONNECT_MAX_ATTEMPTS,
        attempt_timeout: float = config.CONNECT_TIMEOUT,
        initial_delay: float = config.CONNECT_RETRY_DELAY,
        max_delay: float = 30.0,
        backoff_multiplier: float = 1.0
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.attempt_timeout = attempt_timeout
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.backoff_multiplier = backoff_multiplier

    def get_delay(self, attempt: int) -> float:
        """Get delay after the given failed attempt (1-indexed)"""
        delay = self.initial_delay * (self.backoff_multiplier ** (attempt - 1))
        return min(delay, self.max_delay)

    def should_retry(self, attempt: int) -> bool:
        """Check if another attempt follows the given one (1-indexed)"""
        return attempt < self.max_attempts

    def worst_case_duration(self) -> float:
        """Upper bound on the time spent by a failing dial sequence"""
        return sum(
            self.attempt_timeout + (self.get_delay(n) if self.should_retry(n) else 0.0)
            for n in range(1, self.max_attempts + 1)
        )

    def __repr__(self) -> str:
        return (f"RetryPolicy(max_attempts={self.max_attempts}, "
                f"attempt_timeout={self.attempt_timeout}, initial_delay={self.initial_delay})")
