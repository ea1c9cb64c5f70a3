"""Result caches.

``AnalysisCache`` persists results with diskcache (SQLite-backed, safe for
concurrent threads and processes). ``MemoryCache`` keeps them in-process.
Both return None on a miss.
"""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Protocol

from diskcache import Cache

from .domain import AnalysisResult
from .logging_config import get_logger

logger = get_logger(__name__)


class ResultCache(Protocol):
    def get(self, key: str) -> AnalysisResult | None: ...

    def set(self, key: str, result: AnalysisResult, ttl: int) -> None: ...


class AnalysisCache:
    """Disk-backed cache for analysis results."""

    def __init__(self, cache_dir: str | Path = ".devassist-cache"):
        self.cache_dir = Path(cache_dir)
        self.cache = Cache(str(self.cache_dir))
        logger.debug("Cache initialized at %s", self.cache_dir)

    def get(self, key: str) -> AnalysisResult | None:
        value = self.cache.get(key)
        if isinstance(value, AnalysisResult):
            return value
        return None

    def set(self, key: str, result: AnalysisResult, ttl: int) -> None:
        self.cache.set(key, result, expire=ttl)

    def close(self) -> None:
        self.cache.close()


class MemoryCache:
    """In-process cache with per-entry expiry."""

    def __init__(self):
        self._entries: dict[str, tuple[float, AnalysisResult]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> AnalysisResult | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, result = entry
            if expires_at < time.monotonic():
                del self._entries[key]
                return None
            return result

    def set(self, key: str, result: AnalysisResult, ttl: int) -> None:
        with self._lock:
            self._entries[key] = (time.monotonic() + ttl, result)

    def __len__(self) -> int:
        return len(self._entries)
