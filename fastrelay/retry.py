"""In-memory retry accounting shared by every in-flight message."""

import threading

from fastrelay.exceptions import ConfigurationError
from fastrelay.logger import logger


class RetryTracker:
    """Counts failed attempts per message id.

    An id that is not tracked has a count of zero. Every operation holds
    the same lock, so concurrent increments on one id are never lost.
    """

    def __init__(self, max_retries: int = 3) -> None:
        if max_retries < 0:
            raise ConfigurationError(f"max_retries must be >= 0, got {max_retries}")

        self.max_retries = max_retries
        self._counts: dict[str, int] = {}
        self._lock = threading.Lock()

    def should_retry(self, message_id: str) -> bool:
        return self.get_retry_count(message_id) < self.max_retries

    def increment_retry_count(self, message_id: str) -> int:
        with self._lock:
            count = self._counts.get(message_id, 0) + 1
            self._counts[message_id] = count

        logger.debug(f"Incremented retry count for message {message_id} to {count}")
        return count

    def get_retry_count(self, message_id: str) -> int:
        with self._lock:
            return self._counts.get(message_id, 0)

    def clear_retry_count(self, message_id: str) -> None:
        with self._lock:
            self._counts.pop(message_id, None)

        logger.debug(f"Cleared retry count for message {message_id}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._counts)
