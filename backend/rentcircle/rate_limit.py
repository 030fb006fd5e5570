from __future__ import annotations

import time
from collections import defaultdict, deque
from threading import Lock

from rentcircle.errors import RateLimited


class RateLimiter:
    """
    Sliding-window limiter kept in process memory.

    Multi-instance deployments get one window per process; swap for a shared
    store (e.g. Redis) if that matters.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._events: dict[str, deque[float]] = defaultdict(deque)

    def hit(self, *, key: str, limit: int, window_seconds: int, detail: str = "Too many requests") -> None:
        now = time.monotonic()
        win_start = now - float(window_seconds)
        with self._lock:
            q = self._events[key]
            while q and q[0] < win_start:
                q.popleft()
            if len(q) >= int(limit):
                retry_after = max(1, int(q[0] - win_start) + 1)
                raise RateLimited(detail, retry_after=retry_after)
            q.append(now)

    def reset(self) -> None:
        with self._lock:
            self._events.clear()


limiter = RateLimiter()
