"""Async rate limiting for generation attempts."""

from __future__ import annotations

import asyncio
from collections import deque
import time

WINDOW_SECONDS = 60.0


class AsyncRateLimiter:
    """Requests-per-minute limiter over a rolling 60-second window.

    ``rpm <= 0`` disables limiting.
    """

    def __init__(self, rpm: int = 0, *, window_seconds: float = WINDOW_SECONDS) -> None:
        self.rpm = rpm
        self.window_seconds = window_seconds
        self._calls: deque[float] = deque()
        self._lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return self.rpm > 0

    async def acquire(self) -> None:
        """Wait until a call slot is available in the current window."""
        if not self.enabled:
            return

        async with self._lock:
            while True:
                now = time.monotonic()
                while self._calls and now - self._calls[0] > self.window_seconds:
                    self._calls.popleft()

                if len(self._calls) < self.rpm:
                    self._calls.append(now)
                    return

                wait_seconds = max(0.01, self.window_seconds - (now - self._calls[0]))
                await asyncio.sleep(wait_seconds)
