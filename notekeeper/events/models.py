"""Pydantic models for event notes."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

# Indexed like date.weekday(): Monday is 0.
WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


class RecurrenceKind(str, Enum):
    """How an event's base date repeats."""

    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value: "str | RecurrenceKind | None") -> "RecurrenceKind | None":
        """Parse a recurrence field value.

        Blank or missing values mean the kind is unset and return None.
        Unrecognized values fall back to yearly.

        Examples:
            >>> RecurrenceKind.parse(" Weekly ")
            <RecurrenceKind.WEEKLY: 'weekly'>
            >>> RecurrenceKind.parse("fortnightly")
            <RecurrenceKind.YEARLY: 'yearly'>
        """
        if isinstance(value, RecurrenceKind):
            return value
        if value is None or not value.strip():
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.YEARLY

    @property
    def is_recurring(self) -> bool:
        return self is not RecurrenceKind.NONE


class EventFields(BaseModel):
    """Structured view of an event note, derived from its tagged lines.

    Recomputed from the note text on every read; the text remains the
    single source of truth.

    Attributes:
        description: Human-readable event description
        base_date: First occurrence, naive local time (noon for date-only input)
        recurrence_kind: Repetition rule, None when the note sets none
        custom_days: Lowercase weekday names for custom recurrence
        acknowledged_dates: Canonical YYYY-MM-DD dates already handled
        location: Optional location text
        tags: Event tags from the event_tags line
        notes: Free-form notes from the event_notes line
        is_event: Whether the note carries the event marker
        is_hidden: Whether the event is hidden from listings
        is_deadline: Whether the event is a deadline rather than an occurrence
    """

    description: str = ""
    base_date: datetime | None = None
    recurrence_kind: RecurrenceKind | None = None
    custom_days: list[str] = Field(default_factory=list)
    acknowledged_dates: set[str] = Field(default_factory=set)
    location: str | None = None
    tags: list[str] = Field(default_factory=list)
    notes: str | None = None
    is_event: bool = False
    is_hidden: bool = False
    is_deadline: bool = False


class UpcomingEvent(BaseModel):
    """An event whose next occurrence falls inside the upcoming window."""

    id: str
    description: str
    date: datetime = Field(..., description="Next unacknowledged occurrence")
    base_date: datetime
    recurrence_kind: RecurrenceKind | None = None
    location: str | None = None
    tags: list[str] = Field(default_factory=list)
    is_hidden: bool = False


class NextOccurrence(BaseModel):
    """Next-occurrence lookup result for a single event note."""

    id: str
    description: str
    base_date: datetime | None = None
    recurrence_kind: RecurrenceKind | None = None
    next_occurrence: datetime | None = None
    acknowledged_dates: list[str] = Field(default_factory=list)


class AcknowledgeRequest(BaseModel):
    """Body for acknowledging an occurrence; defaults to today."""

    date: str | None = Field(default=None, description="Date to acknowledge (YYYY-MM-DD)")
