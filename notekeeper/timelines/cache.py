"""In-process mirror of timeline notes."""

from notekeeper.notes.models import Note


class TimelineCache:
    """Last known persisted version of each timeline, keyed by timeline id.

    One instance lives as long as whatever composes the TimelineLinker
    (the FastAPI app, a test). It is a fallback for failed fetches, never
    the authority: only the linker writes to it, and only with a note the
    store has just confirmed as persisted.

    Entries are copied on the way in and out so no caller can change the
    cached state without going through ``set``.
    """

    def __init__(self) -> None:
        self._entries: dict[str, Note] = {}

    def get(self, timeline_id: str) -> Note | None:
        """Return a copy of the cached timeline, or None."""
        note = self._entries.get(timeline_id)
        return note.model_copy() if note is not None else None

    def set(self, timeline_id: str, note: Note) -> None:
        """Replace the cached entry for a timeline."""
        self._entries[timeline_id] = note.model_copy(update={"id": timeline_id})

    def invalidate(self, timeline_id: str) -> None:
        """Drop the entry for a timeline if present."""
        self._entries.pop(timeline_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, timeline_id: object) -> bool:
        return timeline_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
