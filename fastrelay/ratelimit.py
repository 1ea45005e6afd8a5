import threading
import time

from fastrelay.exceptions import ConfigurationError
from fastrelay.types import Clock


class RateBudget:
    """A token bucket bounding how many poll cycles may run per interval.

    The bucket starts full. Tokens refill continuously at
    ``limit / interval_secs`` per second, up to ``limit``.
    """

    def __init__(self, limit: int = 10, interval_secs: float = 1.0, clock: Clock = time.monotonic):
        if limit <= 0 or interval_secs <= 0:
            raise ConfigurationError(
                f"rate limit ({limit}) and interval ({interval_secs}) must be positive"
            )

        self.capacity = float(limit)
        self.refill_per_sec = limit / interval_secs
        self._clock = clock
        self._tokens = self.capacity
        self._last_refill = clock()
        self._lock = threading.Lock()

    def try_acquire(self, cost: float = 1.0) -> bool:
        with self._lock:
            self._refill()
            if self._tokens >= cost:
                self._tokens -= cost
                return True
            return False

    @property
    def available(self) -> float:
        with self._lock:
            self._refill()
            return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed > 0:
            self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_per_sec)
            self._last_refill = now
