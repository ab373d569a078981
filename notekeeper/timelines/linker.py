"""Linking event notes into timeline notes.

The note store offers no transactions or locks, so every read-modify-write
of a timeline goes through a KeyedOperationQueue keyed by timeline id.
Within one process that gives each timeline a total order of updates and
rules out two concurrent links overwriting each other.

Link flow for one queued operation:
1. Fetch the timeline; if the fetch fails, fall back to the cached copy.
2. Decode the linked set and return early if the event is already in it.
3. Add the event, encode, and persist.
4. Store the persisted note in the cache, then notify observers.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable

from notekeeper.dependencies import NoteNotFoundError, NoteStoreError, logger
from notekeeper.events.tools import next_occurrence_for, parse_event
from notekeeper.notes.models import Note
from notekeeper.notes.store import NoteStore
from notekeeper.timelines.cache import TimelineCache
from notekeeper.timelines.models import (
    LinkedEvent,
    LinkResult,
    ReconcileResult,
    TimelineView,
)
from notekeeper.timelines.queue import KeyedOperationQueue
from notekeeper.timelines.tools import (
    decode_linked_events,
    encode_linked_events,
    parse_timeline,
)

TimelineObserver = Callable[[Note], Awaitable[None] | None]


def clean_event_id(event_id: str) -> str:
    """Strip an event id and reject ids the linked-event lines cannot hold.

    Raises:
        ValueError: If the id is blank or contains a comma or line break
    """
    cleaned = str(event_id).strip()
    if not cleaned or any(c in cleaned for c in ",\r\n"):
        raise ValueError(f"Invalid event id: {event_id!r}")
    return cleaned


class TimelineLinker:
    """Maintains the set of events each timeline links to.

    Args:
        store: Note store holding both event and timeline notes
        cache: Timeline mirror used as fetch fallback
        queue: Serializes operations per timeline id
    """

    def __init__(
        self,
        store: NoteStore,
        cache: TimelineCache,
        queue: KeyedOperationQueue,
    ) -> None:
        self.store = store
        self.cache = cache
        self.queue = queue
        self._observers: list[TimelineObserver] = []

    def subscribe(self, observer: TimelineObserver) -> Callable[[], None]:
        """Register a callback receiving each persisted timeline note.

        Returns:
            A function that removes the observer again
        """
        self._observers.append(observer)
        return lambda: self._observers.remove(observer)

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    async def link_event(self, event_id: str, timeline_id: str) -> LinkResult:
        """Add an event to a timeline's linked set.

        Linking an event that is already linked persists nothing. Once
        enqueued, the operation completes even if the caller is cancelled.

        Raises:
            ValueError: If the event id is blank or contains a comma or
                line break
            NoteStoreError: If the timeline cannot be fetched and is not
                cached, or if persisting fails
        """
        event_id = clean_event_id(event_id)
        return await asyncio.shield(
            self.queue.enqueue(
                timeline_id, lambda: self._update_link(event_id, timeline_id, add=True)
            )
        )

    async def unlink_event(self, event_id: str, timeline_id: str) -> LinkResult:
        """Remove an event from a timeline's linked set.

        Runs in the same queue as ``link_event`` so the two never interleave
        on one timeline.
        """
        event_id = clean_event_id(event_id)
        return await asyncio.shield(
            self.queue.enqueue(
                timeline_id, lambda: self._update_link(event_id, timeline_id, add=False)
            )
        )

    async def reconcile(self, timeline_id: str) -> ReconcileResult:
        """Drop linked ids whose event notes no longer exist."""
        return await asyncio.shield(
            self.queue.enqueue(timeline_id, lambda: self._reconcile(timeline_id))
        )

    async def get_timeline(self, timeline_id: str) -> TimelineView:
        """Read a timeline and resolve each linked event from its own note.

        Linked ids whose notes are gone are reported, not raised.
        """
        timeline, _ = await self._load_timeline(timeline_id)
        fields = parse_timeline(timeline.content)

        view = TimelineView(id=timeline_id, title=fields.title, is_closed=fields.is_closed)
        for event_id in fields.linked_event_ids:
            try:
                event_note = await self.store.fetch_note(event_id)
            except NoteNotFoundError:
                view.missing_event_ids.append(event_id)
                continue
            event = parse_event(event_note.content)
            view.events.append(
                LinkedEvent(
                    id=event_id,
                    description=event.description,
                    base_date=event.base_date,
                    next_occurrence=next_occurrence_for(event),
                    notes=event.notes,
                )
            )
        view.events.sort(key=lambda e: (e.base_date is None, e.base_date))
        return view

    # -------------------------------------------------------------------------
    # Queued steps
    # -------------------------------------------------------------------------

    async def _load_timeline(self, timeline_id: str) -> tuple[Note, bool]:
        """Fetch a timeline, falling back to the cache when the fetch fails.

        Returns:
            Tuple of (note, whether it came from the cache)
        """
        try:
            return await self.store.fetch_note(timeline_id), False
        except NoteStoreError as e:
            cached = self.cache.get(timeline_id)
            if cached is None:
                logger.error(
                    "timeline_fetch_failed",
                    extra={"timeline_id": timeline_id, "error": str(e)},
                )
                raise
            logger.warning(
                "timeline_fetch_fell_back_to_cache",
                extra={"timeline_id": timeline_id, "error": str(e)},
            )
            return cached, True

    async def _update_link(self, event_id: str, timeline_id: str, add: bool) -> LinkResult:
        timeline, from_cache = await self._load_timeline(timeline_id)
        remaining, linked = decode_linked_events(timeline.content)

        present = event_id in linked
        if present == add:
            logger.info(
                "timeline_link_unchanged",
                extra={"timeline_id": timeline_id, "event_id": event_id, "add": add},
            )
            return LinkResult(
                timeline_id=timeline_id,
                event_id=event_id,
                changed=False,
                linked_event_ids=linked,
                content=timeline.content,
                from_cache=from_cache,
            )

        if add:
            linked.append(event_id)
        else:
            linked.remove(event_id)

        stored = await self._persist(timeline_id, encode_linked_events(remaining, linked))
        logger.info(
            "timeline_linked" if add else "timeline_unlinked",
            extra={"timeline_id": timeline_id, "event_id": event_id, "count": len(linked)},
        )
        return LinkResult(
            timeline_id=timeline_id,
            event_id=event_id,
            changed=True,
            linked_event_ids=decode_linked_events(stored.content)[1],
            content=stored.content,
            from_cache=from_cache,
        )

    async def _reconcile(self, timeline_id: str) -> ReconcileResult:
        timeline, _ = await self._load_timeline(timeline_id)
        remaining, linked = decode_linked_events(timeline.content)

        kept: list[str] = []
        removed: list[str] = []
        for event_id in linked:
            try:
                await self.store.fetch_note(event_id)
            except NoteNotFoundError:
                removed.append(event_id)
                continue
            kept.append(event_id)

        if removed:
            await self._persist(timeline_id, encode_linked_events(remaining, kept))
            logger.info(
                "timeline_reconciled",
                extra={"timeline_id": timeline_id, "removed": removed},
            )
        return ReconcileResult(
            timeline_id=timeline_id, removed_event_ids=removed, linked_event_ids=kept
        )

    async def _persist(self, timeline_id: str, content: str) -> Note:
        """Persist timeline content, then mirror it in the cache and notify.

        The cache is written only after the store confirms the write, and
        with the note as the store returned it.
        """
        try:
            stored = await self.store.persist_note(timeline_id, content)
        except NoteStoreError as e:
            logger.error(
                "timeline_persist_failed",
                extra={"timeline_id": timeline_id, "error": str(e)},
                exc_info=True,
            )
            raise

        self.cache.set(timeline_id, stored)
        await self._notify(stored)
        return stored

    async def _notify(self, timeline: Note) -> None:
        for observer in list(self._observers):
            try:
                result = observer(timeline)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    "timeline_observer_failed",
                    extra={"timeline_id": timeline.id, "error": str(e)},
                    exc_info=True,
                )
