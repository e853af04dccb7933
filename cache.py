# cache.py
"""TTL cache for read-only reference data (time slots, rooms, courses)."""
import logging
import threading
import time
from typing import Any, Callable, Optional

from config import settings

logger = logging.getLogger(__name__)


class TTLCache:
    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.clock = clock
        self._data = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self.clock() >= expires_at:
                del self._data[key]
                return None
            return value

    def set(self, key: str, value: Any):
        with self._lock:
            self._data[key] = (self.clock() + self.ttl, value)

    def get_or_load(self, key: str, loader: Callable[[], Any]) -> Any:
        value = self.get(key)
        if value is None:
            value = loader()
            self.set(key, value)
        return value

    def invalidate(self, prefix: str = ""):
        """Drop every key starting with ``prefix`` (all keys when empty)."""
        with self._lock:
            for key in [k for k in self._data if k.startswith(prefix)]:
                del self._data[key]
        logger.debug("Reference cache invalidated: %r", prefix or "*")

    def __len__(self):
        with self._lock:
            return len(self._data)


_reference_cache = TTLCache(settings.REFERENCE_CACHE_TTL)


def get_reference_cache() -> TTLCache:
    return _reference_cache
