"""Exponential backoff for reconnection attempts."""
from __future__ import annotations

from live_coach.config import get_settings


class RetryStrategy:
    """
    delay = min(base * 2**attempts, max_delay); at most max_attempts delays.
    With the defaults: 2000, 4000, 8000 ms.
    """

    def __init__(
        self,
        max_attempts: int | None = None,
        base_delay_ms: int | None = None,
        max_delay_ms: int | None = None,
    ) -> None:
        settings = get_settings()
        self.max_attempts = max_attempts if max_attempts is not None else settings.RECONNECT_MAX_ATTEMPTS
        self.base_delay_ms = base_delay_ms if base_delay_ms is not None else settings.RECONNECT_BASE_DELAY_MS
        self.max_delay_ms = max_delay_ms if max_delay_ms is not None else settings.RECONNECT_MAX_DELAY_MS
        self.attempts = 0

    def next_delay(self) -> int:
        delay = min(self.base_delay_ms * (2 ** self.attempts), self.max_delay_ms)
        self.attempts += 1
        return delay

    def should_retry(self) -> bool:
        return self.attempts < self.max_attempts

    def exhaust(self) -> None:
        self.attempts = self.max_attempts

    def reset(self) -> None:
        self.attempts = 0
