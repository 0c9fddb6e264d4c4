"""Join interactions with video metadata through bounded ``in`` lookups."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Hashable, Iterable, List, Sequence

from .interactions import decode_details
from .models import ContentRecord, Interaction, JoinedInteraction
from .storage import MAX_IN_VALUES

logger = logging.getLogger(__name__)

QueryFn = Callable[[List[Any]], Awaitable[Iterable[Any]]]


def _record_id(record: dict) -> Any:
    return record.get("id")


async def batched_lookup(
    ids: Iterable[Hashable],
    batch_size: int,
    query_fn: QueryFn,
    key: Callable[[Any], Any] = _record_id,
) -> Dict[Any, Any]:
    """Resolve ``ids`` with one ``query_fn`` call per batch of ``batch_size``.

    Duplicates are dropped first. Every batch is started before any is
    awaited, so latency follows the slowest batch rather than their sum.
    If one batch fails the others are cancelled and the error propagates;
    a partial mapping would read as "not found" instead of "failed".
    Records whose key was not requested are ignored.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be a positive integer")
    unique = list(dict.fromkeys(ids))
    if not unique:
        return {}
    batches = [unique[i:i + batch_size] for i in range(0, len(unique), batch_size)]
    tasks = [asyncio.ensure_future(query_fn(batch)) for batch in batches]
    try:
        results = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        raise

    wanted = set(unique)
    mapping: Dict[Any, Any] = {}
    for records in results:
        for record in records:
            record_key = key(record)
            if record_key in wanted:
                mapping[record_key] = record
    return mapping


class VideoJoiner:
    def __init__(self, store, batch_size: int = MAX_IN_VALUES, json_activities: Sequence[str] = ("view",)):
        self.store = store
        self.batch_size = batch_size
        self.json_activities = tuple(json_activities)

    async def lookup(self, video_ids: Iterable[str]) -> Dict[str, ContentRecord]:
        records = await batched_lookup(video_ids, self.batch_size, self.store.find_videos)
        return {vid: ContentRecord(**doc) for vid, doc in records.items()}

    async def join(self, interactions: Sequence[Interaction]) -> List[JoinedInteraction]:
        # document ids are strings; anything else cannot reference a video
        video_ids = [i.videoId for i in interactions if isinstance(i.videoId, str) and i.videoId]
        videos = await self.lookup(video_ids)
        logger.debug("Resolved %d of %d distinct videos", len(videos), len(set(video_ids)))
        joined = []
        for inter in interactions:
            data = inter.model_dump()
            data["video"] = videos.get(inter.videoId) if isinstance(inter.videoId, str) else None
            data["details"] = decode_details(inter, self.json_activities)
            joined.append(JoinedInteraction(**data))
        return joined
