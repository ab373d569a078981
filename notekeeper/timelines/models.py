"""Pydantic models for timeline notes and linking results."""

from datetime import datetime

from pydantic import BaseModel, Field


class TimelineFields(BaseModel):
    """Structured view of a timeline note, derived from its lines.

    Attributes:
        title: First line that is neither blank, ``Closed`` nor a meta tag
        is_timeline: Whether the note carries the ``meta::timeline`` marker
        is_closed: Whether a line reads exactly ``Closed``
        linked_event_ids: Event ids declared on linked-events lines, in
            first-seen order without duplicates
    """

    title: str = ""
    is_timeline: bool = False
    is_closed: bool = False
    linked_event_ids: list[str] = Field(default_factory=list)


class LinkResult(BaseModel):
    """Outcome of a link or unlink operation on a timeline.

    Attributes:
        timeline_id: Timeline that was read and possibly written
        event_id: Event that was linked or unlinked
        changed: False when the operation was a no-op and nothing was persisted
        linked_event_ids: Linked set after the operation
        content: Timeline content after the operation (as persisted, if written)
        from_cache: True when the timeline could not be fetched and the
            cached copy was used instead
    """

    timeline_id: str
    event_id: str
    changed: bool
    linked_event_ids: list[str] = Field(default_factory=list)
    content: str = ""
    from_cache: bool = False


class LinkedEvent(BaseModel):
    """An event linked into a timeline, resolved from its own note."""

    id: str
    description: str
    base_date: datetime | None = None
    next_occurrence: datetime | None = None
    notes: str | None = None


class TimelineView(BaseModel):
    """A timeline with its linked events resolved."""

    id: str
    title: str
    is_closed: bool = False
    events: list[LinkedEvent] = Field(default_factory=list)
    missing_event_ids: list[str] = Field(
        default_factory=list, description="Linked ids whose notes could not be found"
    )


class ReconcileResult(BaseModel):
    """Outcome of dropping dangling event links from a timeline."""

    timeline_id: str
    removed_event_ids: list[str] = Field(default_factory=list)
    linked_event_ids: list[str] = Field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.removed_event_ids)
