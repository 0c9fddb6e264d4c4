import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from .models import ActivitySummary, Interaction, JoinedInteraction, User

logger = logging.getLogger(__name__)


def display_name(doc: dict, fields: Sequence[str]) -> str:
    for name in fields:
        value = doc.get(name)
        if value:
            return str(value)
    return str(doc["id"])


async def list_users(store, display_name_fields: Sequence[str] = ("email", "displayName")) -> List[User]:
    docs = await store.list_users()
    return [User(userId=str(d["id"]), displayName=display_name(d, display_name_fields)) for d in docs]


async def fetch_recent_interactions(store, user_id: str, limit: int = 20) -> List[Interaction]:
    """Most recent ``limit`` interactions of a user, newest first.

    An unknown or inactive user yields an empty list.
    """
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise ValueError(f"limit must be a positive integer, got {limit!r}")
    docs = await store.recent_interactions(user_id, limit)
    return [Interaction(**d) for d in docs]


async def fetch_joined_interactions(store, joiner, user_id: str, limit: int = 20) -> List[JoinedInteraction]:
    interactions = await fetch_recent_interactions(store, user_id, limit)
    joined = await joiner.join(interactions)
    logger.info(
        "Joined %d interactions for user %s (%d with video)",
        len(joined), user_id, sum(1 for j in joined if j.video is not None),
    )
    return joined


async def summarize_activities(store, user_id: str) -> ActivitySummary:
    summary: ActivitySummary = {}
    for doc in await store.all_interactions(user_id):
        activity = doc.get("activity")
        if activity:
            activity = str(activity)
            summary[activity] = summary.get(activity, 0) + 1
    return summary


def decode_details(interaction: Interaction, json_activities: Sequence[str]) -> Optional[Dict[str, Any]]:
    """Parsed ``content`` for activities that store JSON there.

    Content that is not a JSON object becomes a decode-error marker so a
    single bad record never fails the rest of the batch.
    """
    if interaction.activity not in json_activities:
        return None
    raw = interaction.content
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str):
        return {"decodeError": "content is not a JSON string", "raw": raw}
    try:
        parsed = json.loads(raw)
    except ValueError as exc:
        logger.warning("Undecodable content on interaction %s: %s", interaction.interactionId, exc)
        return {"decodeError": str(exc), "raw": raw}
    if not isinstance(parsed, dict):
        return {"decodeError": "content is not a JSON object", "raw": raw}
    return parsed
