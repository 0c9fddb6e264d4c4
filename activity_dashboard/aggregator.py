import logging
from typing import Iterable

from .models import CategorySummary

logger = logging.getLogger(__name__)

UNKNOWN_CATEGORY = "Unknown"


def count_categories(records: Iterable[dict]) -> CategorySummary:
    counts: CategorySummary = {}
    for record in records:
        category = str(record.get("category") or UNKNOWN_CATEGORY)
        counts[category] = counts.get(category, 0) + 1
    return counts


class CategoryAggregator:
    """Counts videos per category by reading the whole video collection.

    Cost grows with the collection; callers are expected to put a
    FreshnessCache in front of it. Keeping per-category counters updated
    on write would remove the scan.
    """

    def __init__(self, store):
        self.store = store

    async def count(self) -> CategorySummary:
        records = await self.store.scan_videos()
        logger.warning("Full scan of video collection for category counts (%d records)", len(records))
        return count_categories(records)
