"""Failed-attempt limiter for the login and register endpoints."""
import threading

from cachetools import TTLCache

from .core.logging_config import get_logger
from .errors import RateLimited

logger = get_logger(__name__)


class AuthRateLimiter:
    """Counts failed attempts per client inside a TTL window.

    Successful requests are not counted, so a user who mistypes a password
    once is not penalised after logging in.
    """

    def __init__(self, max_attempts: int, window_seconds: int, maxsize: int = 10000):
        self.max_attempts = max_attempts
        self._failures: TTLCache = TTLCache(maxsize=maxsize, ttl=window_seconds)
        self._lock = threading.Lock()

    def check(self, client: str) -> None:
        with self._lock:
            failures = self._failures.get(client, 0)
        if failures >= self.max_attempts:
            logger.warning(
                "Authentication rate limit exceeded",
                extra={'extra_fields': {'client': client, 'failures': failures}},
            )
            raise RateLimited()

    def record_failure(self, client: str) -> None:
        with self._lock:
            self._failures[client] = self._failures.get(client, 0) + 1

    def reset(self, client: str) -> None:
        with self._lock:
            self._failures.pop(client, None)
