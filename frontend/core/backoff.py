"""Exponential backoff between retry attempts."""

import os

DEFAULT_BASE_DELAY_MS = int(os.environ.get("CHAT_BACKOFF_BASE_MS", "1000"))


class BackoffPolicy:
    """Maps a retry attempt number to how long to wait before it.

    Attempt 1 waits ``base_delay_ms``, each later attempt doubles the wait.
    """

    def __init__(self, base_delay_ms: int | None = None):
        self.base_delay_ms = DEFAULT_BASE_DELAY_MS if base_delay_ms is None else base_delay_ms

    def delay_for_attempt(self, attempt: int) -> int:
        """Return the wait in milliseconds before retry number ``attempt``.

        Args:
            attempt: 1-based retry number.

        Returns:
            ``base_delay_ms * 2 ** (attempt - 1)``.

        Raises:
            ValueError: If attempt is below 1 (the first try never waits).
        """
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")
        return self.base_delay_ms * 2 ** (attempt - 1)

    def seconds_for_attempt(self, attempt: int) -> float:
        """Same as delay_for_attempt, in seconds for asyncio."""
        return self.delay_for_attempt(attempt) / 1000
