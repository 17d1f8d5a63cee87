"""
FormSentry State Manager

Thread-safe, in-memory sliding-window rate limiter keyed by client origin.
This is the only mutable state shared between concurrent evaluations.

Usage:
    limiter = RateLimiter(window=60.0, max_origins=100_000)
    count = limiter.admit("203.0.113.7", time.time())
    # count > max requests per window => the engine applies a penalty
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import List, Optional


class RateLimiter:
    """
    Per-origin sliding window of request timestamps.

    Entries older than `window` seconds are pruned lazily, on each access
    for that origin. The map itself is bounded by `max_origins`: the least
    recently admitted origin is evicted once the bound is exceeded.

    The limiter never rejects anything. It only reports how many requests
    the origin made inside the current window.

    Attributes:
        window: Window length in seconds.
        max_origins: Upper bound on tracked origins (LRU eviction).
    """

    def __init__(self, window: float = 60.0, max_origins: int = 100_000) -> None:
        self.window = window
        self.max_origins = max_origins

        self._hits: OrderedDict[str, List[float]] = OrderedDict()
        self._lock: threading.Lock = threading.Lock()

    def admit(self, origin: str, now: Optional[float] = None) -> int:
        """
        Record a request and return the origin's count inside the window.

        Args:
            origin: Client network identity.
            now: Request time in seconds (defaults to time.time()).

        Returns:
            Number of requests in [now - window, now], including this one.
        """
        if now is None:
            now = time.time()
        cutoff = now - self.window

        with self._lock:
            recent = [t for t in self._hits.get(origin, ()) if t >= cutoff]
            recent.append(now)
            self._hits[origin] = recent
            self._hits.move_to_end(origin)

            while len(self._hits) > self.max_origins:
                self._hits.popitem(last=False)

            return len(recent)

    def count(self, origin: str, now: Optional[float] = None) -> int:
        """Requests currently inside the window for an origin, without recording one."""
        if now is None:
            now = time.time()
        cutoff = now - self.window

        with self._lock:
            return sum(1 for t in self._hits.get(origin, ()) if t >= cutoff)

    def sweep(self, now: Optional[float] = None) -> int:
        """
        Drop origins whose newest timestamp has left the window.

        Returns:
            Number of origins removed.
        """
        if now is None:
            now = time.time()
        cutoff = now - self.window

        with self._lock:
            stale = [origin for origin, hits in self._hits.items() if not hits or hits[-1] < cutoff]
            for origin in stale:
                del self._hits[origin]
            return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._hits)

    def reset(self) -> None:
        """Forget every origin. Primarily useful for tests."""
        with self._lock:
            self._hits.clear()
