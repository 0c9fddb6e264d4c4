"""Persisted, time-limited cache for the category counts.

The entry is stored as JSON ``{"data": ..., "timestamp": epoch_ms}`` under a
fixed key of an injected key-value store. It never expires in storage;
staleness is decided when it is read.
"""

import logging
import time
from typing import Awaitable, Callable, Optional

from pydantic import ValidationError

from .models import CacheEntry, CategorySummary

logger = logging.getLogger(__name__)

DEFAULT_CACHE_KEY = "videoCategoryCache"
DEFAULT_TTL_MS = 60 * 60 * 1000


def epoch_millis() -> int:
    return int(time.time() * 1000)


class FreshnessCache:
    def __init__(
        self,
        kv_store,
        compute: Callable[[], Awaitable[CategorySummary]],
        key: str = DEFAULT_CACHE_KEY,
        ttl_ms: int = DEFAULT_TTL_MS,
        clock: Callable[[], int] = epoch_millis,
    ):
        self.kv_store = kv_store
        self.compute = compute
        self.key = key
        self.ttl_ms = ttl_ms
        self.clock = clock

    def read(self) -> Optional[CategorySummary]:
        """Cached summary while ``now - timestamp < ttl``, else ``None``."""
        raw = self.kv_store.get(self.key)
        if raw is None:
            return None
        try:
            entry = CacheEntry.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable cache entry %s", self.key)
            return None
        if self.clock() - entry.timestamp < self.ttl_ms:
            logger.info("Category counts served from cache")
            return entry.data
        logger.info("Category cache is stale")
        return None

    def write(self, summary: CategorySummary) -> None:
        entry = CacheEntry(data=summary, timestamp=self.clock())
        self.kv_store.set(self.key, entry.model_dump_json())

    def invalidate(self) -> None:
        self.kv_store.delete(self.key)
        logger.info("Category cache invalidated")

    async def get_or_refresh(self) -> CategorySummary:
        cached = self.read()
        if cached is not None:
            return cached
        summary = await self.compute()
        self.write(summary)
        logger.info("Category counts computed and cached (%d categories)", len(summary))
        return summary

    async def refresh(self) -> CategorySummary:
        self.invalidate()
        return await self.get_or_refresh()
