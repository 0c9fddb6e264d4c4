import asyncio
import json
import logging
import os
import tempfile
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)

# Largest value list the query engine accepts for an equality-set ("in") filter.
MAX_IN_VALUES = 10

USERS_FILE = "users.json"
INTERACTIONS_FILE = "interactions.json"
VIDEOS_FILE = "videos.json"

ChangeCallback = Callable[[List[dict]], None]
ErrorCallback = Callable[[Exception], None]


def load_json(path: Path, default):
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except ValueError:
        logger.warning("Ignoring unreadable JSON file %s", path)
        return default


def save_json(path: Path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=path.name, suffix=".tmp")
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    os.replace(tmp, path)


def time_key(doc: dict) -> float:
    """Sort key for the ``time`` field: epoch numbers or ISO-8601 strings."""
    value = doc["time"]
    if isinstance(value, datetime):
        return value.timestamp()
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(value)
    except ValueError:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp()


@dataclass
class _Watcher:
    user_id: str
    limit: int
    on_change: ChangeCallback
    on_error: Optional[ErrorCallback]
    loop: asyncio.AbstractEventLoop
    last: Optional[List[dict]] = None
    active: bool = True


class DocumentStore:
    """Users, their interaction sub-collections and the video collection.

    Documents are hydrated from JSON files and queried in memory with the
    same constraints as the hosted document database: ordered range reads
    skip documents without the ordering field, and equality-set lookups
    take at most ``MAX_IN_VALUES`` values.

    Watchers are notified on the event loop they were registered from, so
    ``put_interaction``/``delete_interaction`` must be called on that loop.
    """

    def __init__(
        self,
        users: Optional[List[dict]] = None,
        interactions: Optional[Dict[str, List[dict]]] = None,
        videos: Optional[List[dict]] = None,
    ):
        self._users: Dict[str, dict] = {}
        for u in users or []:
            data = dict(u)
            self._users[str(data.pop("id"))] = data
        self._interactions: Dict[str, Dict[str, dict]] = defaultdict(dict)
        for user_id, docs in (interactions or {}).items():
            for doc in docs:
                data = dict(doc)
                self._interactions[user_id][str(data.pop("interactionId"))] = data
        self._videos: List[dict] = [dict(v) for v in videos or []]
        self._watchers: Dict[str, List[_Watcher]] = defaultdict(list)

    @classmethod
    def from_directory(cls, data_dir: Path) -> "DocumentStore":
        store = cls(
            users=load_json(data_dir / USERS_FILE, []),
            interactions=load_json(data_dir / INTERACTIONS_FILE, {}),
            videos=load_json(data_dir / VIDEOS_FILE, []),
        )
        logger.info("Loaded document store from %s: %s", data_dir, store.counts())
        return store

    def counts(self) -> Dict[str, int]:
        return {
            "users": len(self._users),
            "interactions": sum(len(docs) for docs in self._interactions.values()),
            "videos": len(self._videos),
        }

    # ── Queries ───────────────────────────────────────────────────────────

    async def list_users(self) -> List[dict]:
        return [{"id": user_id, **data} for user_id, data in self._users.items()]

    async def all_interactions(self, user_id: str) -> List[dict]:
        docs = self._interactions.get(user_id, {})
        return [{"interactionId": doc_id, **data} for doc_id, data in docs.items()]

    async def recent_interactions(self, user_id: str, limit: int) -> List[dict]:
        """``orderBy('time', 'desc').limit(limit)`` on the user's interactions."""
        return self._window(user_id, limit)

    async def find_videos(self, ids: Sequence[str]) -> List[dict]:
        """``where('id', 'in', ids)`` on the video collection."""
        if not ids:
            raise ValueError("an 'in' filter needs at least one value")
        if len(ids) > MAX_IN_VALUES:
            raise ValueError(
                f"an 'in' filter accepts at most {MAX_IN_VALUES} values, got {len(ids)}"
            )
        wanted = set(ids)
        return [dict(v) for v in self._videos if v.get("id") in wanted]

    async def scan_videos(self) -> List[dict]:
        return [dict(v) for v in self._videos]

    def _window(self, user_id: str, limit: int) -> List[dict]:
        docs = [
            {"interactionId": doc_id, **data}
            for doc_id, data in self._interactions.get(user_id, {}).items()
            if data.get("time") is not None
        ]
        docs.sort(key=time_key, reverse=True)
        return docs[:limit]

    # ── Change feed ───────────────────────────────────────────────────────

    def watch_interactions(
        self,
        user_id: str,
        limit: int,
        on_change: ChangeCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Callable[[], None]:
        """Push the user's most recent ``limit`` interactions now and on every change.

        Returns a function that releases the watcher.
        """
        watcher = _Watcher(user_id, limit, on_change, on_error, asyncio.get_running_loop())
        self._watchers[user_id].append(watcher)
        watcher.loop.call_soon(self._deliver, watcher)

        def unsubscribe() -> None:
            if watcher.active:
                watcher.active = False
                self._watchers[user_id].remove(watcher)

        return unsubscribe

    def put_interaction(self, user_id: str, interaction_id: str, data: Dict[str, Any]) -> None:
        self._interactions[user_id][interaction_id] = dict(data)
        self._notify(user_id)

    def delete_interaction(self, user_id: str, interaction_id: str) -> None:
        if self._interactions.get(user_id, {}).pop(interaction_id, None) is not None:
            self._notify(user_id)

    def _notify(self, user_id: str) -> None:
        for watcher in list(self._watchers.get(user_id, [])):
            watcher.loop.call_soon(self._deliver, watcher)

    def _deliver(self, watcher: _Watcher) -> None:
        if not watcher.active:
            return
        try:
            window = self._window(watcher.user_id, watcher.limit)
        except (KeyError, TypeError, ValueError) as exc:
            logger.error("Interaction watch for %s failed: %s", watcher.user_id, exc)
            watcher.active = False
            self._watchers[watcher.user_id].remove(watcher)
            if watcher.on_error is not None:
                watcher.on_error(exc)
            return
        if window == watcher.last:
            return
        watcher.last = window
        watcher.on_change(window)


class InMemoryKeyValueStore:
    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileKeyValueStore:
    """String slots persisted in one JSON file, replaced atomically on write."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def get(self, key: str) -> Optional[str]:
        return load_json(self.path, {}).get(key)

    def set(self, key: str, value: str) -> None:
        data = load_json(self.path, {})
        data[key] = value
        save_json(self.path, data)

    def delete(self, key: str) -> None:
        data = load_json(self.path, {})
        if data.pop(key, None) is not None:
            save_json(self.path, data)
