"""
Fixed-window rate limiting for authentication endpoints.

The limiter is an ordinary object owned by the application (``app.state``)
and handed to routes through a dependency, so tests can swap it for one with
a fake clock or a different budget.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger

from homeledger.core.errors import RateLimitExceededError


@dataclass
class WindowState:
    count: int
    reset_at: float


class FixedWindowRateLimiter:
    """
    Allow at most ``max_attempts`` hits per key inside ``window_seconds``.

    A key's window starts at its first hit and is discarded once it expires;
    ``reset`` and ``reset_all`` clear state explicitly.
    """

    def __init__(
        self,
        max_attempts: int = 10,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, WindowState] = {}
        self._lock = threading.Lock()

    def hit(self, key: str) -> None:
        """Record an attempt for ``key``; raise if the budget is exhausted."""
        now = self._clock()
        with self._lock:
            self._prune(now)
            state = self._windows.get(key)
            if state is None:
                state = WindowState(count=0, reset_at=now + self.window_seconds)
                self._windows[key] = state

            if state.count >= self.max_attempts:
                retry_after = max(0.0, state.reset_at - now)
                logger.warning("Rate limit exceeded", key=key, retry_after=retry_after)
                raise RateLimitExceededError(
                    "Too many attempts. Try again in a minute.", retry_after=retry_after
                )
            state.count += 1

    def remaining(self, key: str) -> int:
        now = self._clock()
        with self._lock:
            state = self._windows.get(key)
            if state is None or now >= state.reset_at:
                return self.max_attempts
            return self.max_attempts - state.count

    def reset(self, key: str) -> None:
        with self._lock:
            self._windows.pop(key, None)

    def reset_all(self) -> None:
        with self._lock:
            self._windows.clear()

    def _prune(self, now: float) -> None:
        expired = [key for key, state in self._windows.items() if now >= state.reset_at]
        for key in expired:
            del self._windows[key]
