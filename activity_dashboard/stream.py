"""Live, re-joined view of a user's most recent interactions.

Each ``subscribe`` call gets a token from a monotonic generation counter.
Re-joins run as tasks; when one finishes it publishes only if its
subscription is still open and its token is still the stream's current
generation, so a late result for a previous user is silently dropped.
"""

import asyncio
import logging
from typing import Callable, List, Optional, Set

from .errors import StreamError
from .models import Interaction, JoinedInteraction

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[List[JoinedInteraction]], None]
ErrorCallback = Callable[[StreamError], None]

_CLOSED = object()


class Subscription:
    """One live view, consumed via callbacks or ``async for``.

    When ``on_snapshot`` is given snapshots go to it; otherwise they are
    queued for iteration. A terminal error goes to ``on_error`` when given,
    else it is raised from iteration.
    """

    def __init__(
        self,
        stream: "InteractionStream",
        user_id: str,
        token: int,
        on_snapshot: Optional[SnapshotCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ):
        self.user_id = user_id
        self.token = token
        self.closed = False
        self._stream = stream
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._queue: asyncio.Queue = asyncio.Queue()
        self._tasks: Set[asyncio.Task] = set()
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._seq = 0
        self._published_seq = 0

    @property
    def is_current(self) -> bool:
        return not self.closed and self._stream.generation == self.token

    def cancel(self) -> None:
        """Stop emissions and release the store watcher. Safe to call twice."""
        if self.closed:
            return
        self._release()
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)
        logger.info("Cancelled interaction stream for %s (generation %d)", self.user_id, self.token)

    def __aiter__(self):
        return self

    async def __anext__(self) -> List[JoinedInteraction]:
        item = await self._queue.get()
        if item is _CLOSED or isinstance(item, StreamError):
            self._queue.put_nowait(_CLOSED)
            if item is _CLOSED:
                raise StopAsyncIteration
            raise item
        return item

    # ── Store callbacks ───────────────────────────────────────────────────

    def _on_change(self, docs: List[dict]) -> None:
        if not self.is_current:
            return
        self._seq += 1
        task = asyncio.ensure_future(self._rejoin(docs, self._seq))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_store_error(self, exc: Exception) -> None:
        self._fail(exc)

    async def _rejoin(self, docs: List[dict], seq: int) -> None:
        try:
            snapshot = await self._stream.joiner.join([Interaction(**d) for d in docs])
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._fail(exc)
            return
        # an older re-join finishing late must not overwrite a newer snapshot
        if not self.is_current or seq < self._published_seq:
            return
        self._published_seq = seq
        if self._on_snapshot is not None:
            self._on_snapshot(snapshot)
        else:
            self._queue.put_nowait(snapshot)

    def _fail(self, exc: Exception) -> None:
        if not self.is_current:
            return
        error = StreamError(f"interaction stream for {self.user_id} failed: {exc}")
        error.__cause__ = exc
        logger.error("%s", error)
        self._release()
        if self._on_error is not None:
            self._on_error(error)
        else:
            self._queue.put_nowait(error)

    def _release(self) -> None:
        self.closed = True
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if not self._tasks:
            return
        running = asyncio.current_task()
        for task in list(self._tasks):
            if task is not running:
                task.cancel()


class InteractionStream:
    """Holds at most one live subscription; subscribing again replaces it."""

    def __init__(self, store, joiner, limit: int = 20):
        self.store = store
        self.joiner = joiner
        self.limit = limit
        self.generation = 0
        self.current: Optional[Subscription] = None

    def subscribe(
        self,
        user_id: str,
        on_snapshot: Optional[SnapshotCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        if self.current is not None:
            self.current.cancel()
        self.generation += 1
        sub = Subscription(self, user_id, self.generation, on_snapshot, on_error)
        sub._unsubscribe = self.store.watch_interactions(
            user_id, self.limit, sub._on_change, sub._on_store_error
        )
        self.current = sub
        logger.info("Subscribed to interactions of %s (generation %d)", user_id, self.generation)
        return sub

    def close(self) -> None:
        if self.current is not None:
            self.current.cancel()
            self.current = None
