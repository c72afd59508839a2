"""In-memory fixed window request gate."""

from __future__ import annotations

import time
from threading import Lock
from typing import Callable, Protocol


class RequestGate(Protocol):
    def allow(self, key: str) -> bool:
        ...


class FixedWindowRateLimiter:
    """Thread-safe per-key counter reset at the start of every window."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialise limiter parameters and per-key window state."""
        if max_requests < 1 or window_seconds < 1:
            raise ValueError("max_requests and window_seconds must be positive")
        self._max_requests = max_requests
        self._window = window_seconds
        self._clock = clock
        # key -> (window start, hits in window)
        self._windows: dict[str, tuple[float, int]] = {}
        self._lock = Lock()

    def allow(self, key: str) -> bool:
        """Return ``True`` when ``key`` still has budget in the current window."""
        now = self._clock()
        with self._lock:
            started, hits = self._windows.get(key, (now, 0))
            if now - started >= self._window:
                started, hits = now, 0
            if hits >= self._max_requests:
                return False
            self._windows[key] = (started, hits + 1)
            self._evict_stale(now)
            return True

    def _evict_stale(self, now: float) -> None:
        if len(self._windows) < 10_000:
            return
        for key in [k for k, (started, _) in self._windows.items() if now - started >= self._window]:
            del self._windows[key]
