"""
Rate Limiting Module

Sliding-window request limiter keyed by caller (usually client address).
Constructed once at process start and injected where it is needed; the
number of tracked keys is bounded by evicting the least recently seen key.
"""

import threading
import time
from collections import OrderedDict, deque
from typing import Callable, Deque


class RateLimiter:
    """Allow at most ``max_requests`` per key within ``window_seconds``"""

    def __init__(
        self,
        max_requests: int = 60,
        window_seconds: float = 60.0,
        max_keys: int = 10000,
        clock: Callable[[], float] = time.monotonic
    ):
        if max_requests <= 0 or window_seconds <= 0 or max_keys <= 0:
            raise ValueError("Rate limiter parameters must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.max_keys = max_keys
        self._clock = clock
        self._requests: 'OrderedDict[str, Deque[float]]' = OrderedDict()
        self._lock = threading.Lock()

    def allow(self, key: str) -> bool:
        """Record a request for ``key`` and report whether it is within the limit"""
        now = self._clock()
        with self._lock:
            hits = self._requests.get(key)
            if hits is None:
                hits = deque()
                self._requests[key] = hits
                if len(self._requests) > self.max_keys:
                    self._requests.popitem(last=False)
            else:
                self._requests.move_to_end(key)

            # Clean old entries
            while hits and now - hits[0] >= self.window_seconds:
                hits.popleft()

            if len(hits) >= self.max_requests:
                return False
            hits.append(now)
            return True

    def remaining(self, key: str) -> int:
        """Requests still allowed for ``key`` in the current window"""
        now = self._clock()
        with self._lock:
            hits = self._requests.get(key)
            if not hits:
                return self.max_requests
            recent = sum(1 for t in hits if now - t < self.window_seconds)
            return max(self.max_requests - recent, 0)

    def reset(self) -> None:
        """Forget every tracked key"""
        with self._lock:
            self._requests.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._requests)
