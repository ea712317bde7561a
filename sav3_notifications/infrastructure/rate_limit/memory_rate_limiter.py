import threading
import time
from collections import deque
from typing import Callable, Deque, Dict

from ...application.ports.rate_limiter import RateLimiter


class InMemoryRateLimiter(RateLimiter):
    """Sliding-window limiter; one timestamp deque per key."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._store: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def _prune(self, key: str, window_seconds: int, now: float) -> Deque[float]:
        times = self._store.get(key) or deque()
        window_start = now - window_seconds
        while times and times[0] <= window_start:
            times.popleft()
        if not times:
            self._store.pop(key, None)
        return times

    def allow(self, key: str, max_requests: int, window_seconds: int) -> bool:
        now = self._clock()
        with self._lock:
            times = self._prune(key, window_seconds, now)
            if len(times) >= max_requests:
                return False
            times.append(now)
            self._store[key] = times
            return True

    def retry_after(self, key: str, window_seconds: int) -> int:
        now = self._clock()
        with self._lock:
            times = self._prune(key, window_seconds, now)
            if not times:
                return 0
            return max(1, int(times[0] + window_seconds - now + 0.999))
