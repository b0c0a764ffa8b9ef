import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Hashable, Optional


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    retry_after: int  # seconds until the current window resets


@dataclass
class _Window:
    started: float
    expires: float
    count: int


class RateLimiter:
    """
    Fixed-window request counter keyed by (client identifier, route path).

    State is process-local and lost on restart. Expired windows are evicted
    at most once per `cleanup_interval` seconds so memory stays bounded by the
    number of clients seen within one window. A distributed store can replace
    this class as long as it offers `hit` and `reset`.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, cleanup_interval: float = 60.0):
        self._clock = clock
        self._cleanup_interval = cleanup_interval
        self._last_cleanup = clock()
        self._windows: Dict[Hashable, _Window] = {}
        self._lock = threading.Lock()

    def hit(self, key: Hashable, limit: int, window_seconds: float) -> RateLimitResult:
        now = self._clock()
        with self._lock:
            self._evict_expired(now)
            w = self._windows.get(key)
            if w is None or now >= w.expires:
                self._windows[key] = _Window(started=now, expires=now + window_seconds, count=1)
                return RateLimitResult(True, limit, max(0, limit - 1), int(window_seconds))

            retry_after = max(1, int(round(w.expires - now)))
            if w.count >= limit:
                return RateLimitResult(False, limit, 0, retry_after)
            w.count += 1
            return RateLimitResult(True, limit, limit - w.count, retry_after)

    def reset(self, key: Optional[Hashable] = None):
        with self._lock:
            if key is None:
                self._windows.clear()
            else:
                self._windows.pop(key, None)

    def __len__(self):
        return len(self._windows)

    def _evict_expired(self, now: float):
        if now - self._last_cleanup < self._cleanup_interval:
            return
        self._last_cleanup = now
        for k in [k for k, w in self._windows.items() if now >= w.expires]:
            del self._windows[k]
