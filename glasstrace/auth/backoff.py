"""
Retry policy for session renewal.

An explicit state object instead of recursive timers: the manager asks
it for the next delay after every failure and arms that delay on its
renewal line.  The counter is shared across consecutive renewal
attempts and resets on the first success.
"""

from dataclasses import dataclass

MAX_RENEWAL_ATTEMPTS = 3
BACKOFF_BASE_SECONDS = 2.0


@dataclass
class Backoff:
    max_attempts: int = MAX_RENEWAL_ATTEMPTS
    base: float = BACKOFF_BASE_SECONDS
    attempt: int = 0
    next_delay: float | None = None

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_attempts

    def record_failure(self) -> float | None:
        """Count a failure; return the retry delay, or None once the cap is hit."""
        self.attempt += 1
        if self.exhausted:
            self.next_delay = None
        else:
            self.next_delay = self.base ** self.attempt
        return self.next_delay

    def reset(self) -> None:
        self.attempt = 0
        self.next_delay = None
