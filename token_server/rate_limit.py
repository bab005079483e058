"""
In-memory sliding window rate limit per key (client IP). Guards POST /oauth2/token,
where every request costs an upstream identity call.
"""
import math
import threading
import time

_WINDOW_SECONDS = 60


class SlidingWindowLimiter:
    def __init__(self, limit: int, window_seconds: int = _WINDOW_SECONDS, clock=time.monotonic):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, list[float]] = {}
        self._last_sweep = clock()
        self._lock = threading.Lock()

    def check_and_consume(self, key: str) -> tuple[bool, int | None]:
        """
        Record a request for key if it is under the limit.
        Returns (allowed, retry_after_seconds); retry_after is >= 1 when not allowed.
        """
        if self.limit <= 0:
            return True, None
        now = self._clock()
        cutoff = now - self.window_seconds
        with self._lock:
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(cutoff)
                self._last_sweep = now
            timestamps = [t for t in self._hits.get(key, ()) if t > cutoff]
            if len(timestamps) >= self.limit:
                self._hits[key] = timestamps
                retry_after = max(1, math.ceil(self.window_seconds - (now - timestamps[0])))
                return False, retry_after
            timestamps.append(now)
            self._hits[key] = timestamps
            return True, None

    def _sweep(self, cutoff: float) -> None:
        # Keys with no hit inside the window carry no state
        for key in [k for k, hits in self._hits.items() if not hits or hits[-1] <= cutoff]:
            del self._hits[key]

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
