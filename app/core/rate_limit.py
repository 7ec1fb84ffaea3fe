"""In-process token bucket rate limiting.

Each limiter keeps one bucket per client identifier. A bucket holds up to
``limit`` tokens and refills ``limit`` tokens per ``interval`` seconds. Buckets
are per worker process; deployments with several workers get ``limit`` per
worker.
"""
import math
import threading
import time
from dataclasses import dataclass


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    retry_after: int  # seconds until one token is available again


class RateLimiter:
    def __init__(self, limit: int, interval: float = 60.0, clock=time.monotonic):
        self.limit = limit
        self.interval = interval
        self._clock = clock
        self._buckets: dict[str, tuple[float, float]] = {}  # identifier -> (tokens, last_refill)
        self._lock = threading.Lock()
        self._last_cleanup = clock()

    def check(self, identifier: str) -> RateLimitResult:
        now = self._clock()
        if now - self._last_cleanup > self.interval * 2:
            self.cleanup()
        with self._lock:
            tokens, last = self._buckets.get(identifier, (float(self.limit), now))
            rate = self.limit / self.interval
            tokens = min(float(self.limit), tokens + (now - last) * rate)
            if tokens >= 1:
                tokens -= 1
                self._buckets[identifier] = (tokens, now)
                return RateLimitResult(True, self.limit, int(tokens), 0)
            self._buckets[identifier] = (tokens, now)
            retry_after = max(1, math.ceil((1 - tokens) / rate))
            return RateLimitResult(False, self.limit, 0, retry_after)

    def cleanup(self) -> None:
        """Drop buckets idle for more than two intervals."""
        now = self._clock()
        with self._lock:
            stale = [k for k, (_, last) in self._buckets.items() if now - last > self.interval * 2]
            for k in stale:
                del self._buckets[k]
            self._last_cleanup = now

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()
