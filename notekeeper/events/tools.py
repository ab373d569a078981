"""Event note parsing, acknowledgment extraction and recurrence resolution.

An event note is plain text. Its fields are line-prefixed tags:

    event_description:Team sync
    event_date:2025-03-03T12:00
    event_recurring_type:weekly
    meta::event::2025-03-01T09:12:44.120Z
    meta::meeting_acknowledge::2025-03-10

Each acknowledgment line marks one occurrence as handled. The next due
date of a recurring event is the first occurrence that is in the future
and not acknowledged; see ``calculate_next_occurrence`` for the rules.

All datetimes here are naive local time. Date-only values are pinned to
noon so that converting between zones never moves them to another day.
"""

import re
from collections.abc import Callable, Iterable
from datetime import UTC, date, datetime, time, timedelta

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

from notekeeper.dependencies import logger
from notekeeper.events.models import WEEKDAYS, EventFields, RecurrenceKind, UpcomingEvent
from notekeeper.notes.models import Note

ACK_MARKER = "meta::meeting_acknowledge::"
EVENT_MARKER = "meta::event::"
HIDDEN_MARKER = "meta::event_hidden"
DEADLINE_MARKER = "meta::event_deadline"
RECURRENCE_MARKER = "meta::event_recurrence::"

DESCRIPTION_PREFIX = "event_description:"
DATE_PREFIX = "event_date:"
RECURRENCE_PREFIX = "event_recurring_type:"
LOCATION_PREFIX = "event_location:"
LEGACY_LOCATION_PREFIX = "Location:"
TAGS_PREFIX = "event_tags:"
NOTES_PREFIX = "event_notes:"

NOON = time(12, 0)
CANONICAL_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
LEADING_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}")

# Events carrying these tags are reminders, not occurrences to show as upcoming.
EXCLUDED_UPCOMING_TAGS = frozenset({"deadline", "purchase"})

DateLike = str | date | datetime


# =============================================================================
# Date Normalization
# =============================================================================


def _to_local_naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def parse_event_datetime(value: DateLike | None) -> datetime | None:
    """Parse an event date into a naive local datetime.

    Accepts datetimes, dates, canonical ``YYYY-MM-DD`` strings and any
    string python-dateutil can read. Date-only input is placed at noon.
    Timezone-aware input is converted to local time first.

    Args:
        value: Date value in any supported form

    Returns:
        Naive datetime, or None when the value is not a date

    Examples:
        >>> parse_event_datetime("2025-03-03")
        datetime.datetime(2025, 3, 3, 12, 0)
        >>> parse_event_datetime("not a date") is None
        True
    """
    if isinstance(value, datetime):
        return _to_local_naive(value)
    if isinstance(value, date):
        return datetime.combine(value, NOON)
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    if CANONICAL_DATE_PATTERN.match(text):
        try:
            return datetime.combine(date.fromisoformat(text), NOON)
        except ValueError:
            return None

    try:
        parsed = date_parser.isoparse(text)
    except (ValueError, OverflowError):
        try:
            parsed = date_parser.parse(text, default=datetime.combine(date.today(), NOON))
        except (ValueError, OverflowError):
            return None
    return _to_local_naive(parsed)


def normalize_date_string(value: DateLike | None) -> str | None:
    """Canonicalize a date value to ``YYYY-MM-DD``.

    Canonical strings pass through after validation; anything else is
    parsed with ``parse_event_datetime``. Unparseable input yields None.

    Examples:
        >>> normalize_date_string("2025-03-03")
        '2025-03-03'
        >>> normalize_date_string(date(2025, 3, 3))
        '2025-03-03'
        >>> normalize_date_string("2025-02-30") is None
        True
    """
    if isinstance(value, datetime):
        return _to_local_naive(value).date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    parsed = parse_event_datetime(value)
    return parsed.date().isoformat() if parsed else None


# =============================================================================
# Acknowledgments
# =============================================================================


def extract_acknowledged_dates(content: str) -> set[str]:
    """Collect the acknowledged occurrence dates recorded in a note.

    Scans for ``meta::meeting_acknowledge::<date>`` lines. Dates are
    canonicalized; lines whose date cannot be read are skipped.

    Args:
        content: Raw note text

    Returns:
        Set of canonical ``YYYY-MM-DD`` strings
    """
    dates: set[str] = set()
    for line in content.split("\n"):
        stripped = line.strip()
        if not stripped.startswith(ACK_MARKER):
            continue
        canonical = normalize_date_string(stripped[len(ACK_MARKER) :])
        if canonical is None:
            logger.debug("acknowledgment_date_ignored", extra={"line": stripped})
            continue
        dates.add(canonical)
    return dates


def acknowledge_occurrence(
    content: str, on: DateLike | None = None, now: datetime | None = None
) -> str:
    """Record an occurrence as handled by appending an acknowledgment line.

    Acknowledging a date that is already acknowledged returns the content
    unchanged.

    Args:
        content: Raw event note text
        on: Occurrence date to acknowledge (defaults to today)
        now: Reference time used when ``on`` is omitted

    Returns:
        Updated note text

    Raises:
        ValueError: If ``on`` is not a readable date
    """
    target = on if on is not None else (now or datetime.now())
    canonical = normalize_date_string(target)
    if canonical is None:
        raise ValueError(f"Not a date: {on!r}")

    if canonical in extract_acknowledged_dates(content):
        return content

    line = f"{ACK_MARKER}{canonical}"
    body = content.rstrip("\n")
    return f"{body}\n{line}" if body.strip() else line


# =============================================================================
# Recurrence Resolution
# =============================================================================


def calculate_next_occurrence(
    base_date: DateLike | None,
    recurrence_kind: RecurrenceKind | str | None,
    custom_days: Iterable[str] = (),
    acknowledged_dates: Iterable[DateLike] = (),
    now: datetime | None = None,
) -> datetime | None:
    """Return the next unacknowledged occurrence of a recurring event.

    Rules by kind:
    - daily: today's occurrence if the base date is today and today is
      not acknowledged; otherwise the first unacknowledged day from
      tomorrow on, at the base time-of-day.
    - weekly/monthly/yearly: step from the base date by 7 days, 1 month
      or 1 year until the candidate is after today and unacknowledged.
      Steps are measured from the base date, so a month-end base clamps
      to shorter months without drifting.
    - custom: the closest of ``custom_days`` strictly after today; when
      that date is acknowledged, the same weekday a week later, and so on.
      No valid weekday means no occurrence.
    - anything else (including unset): yearly.

    Args:
        base_date: First occurrence of the event
        recurrence_kind: Repetition rule
        custom_days: Weekday names used by custom recurrence
        acknowledged_dates: Occurrence dates already handled
        now: Reference time (defaults to the current local time)

    Returns:
        The next occurrence, or None when the base date is unreadable or
        a custom rule has no valid weekdays
    """
    base = parse_event_datetime(base_date)
    if base is None:
        return None

    kind = RecurrenceKind.parse(recurrence_kind) or RecurrenceKind.YEARLY
    today = (now or datetime.now()).date()
    acked = {d for d in map(normalize_date_string, acknowledged_dates) if d}

    def is_acked(candidate: datetime) -> bool:
        return candidate.date().isoformat() in acked

    if kind is RecurrenceKind.DAILY:
        if base.date() == today and not is_acked(base):
            return base
        candidate = datetime.combine(today + timedelta(days=1), base.time())
        while is_acked(candidate):
            candidate += timedelta(days=1)
        return candidate

    if kind is RecurrenceKind.CUSTOM:
        return _next_custom_occurrence(base, custom_days, today, is_acked)

    if kind is RecurrenceKind.WEEKLY:
        step = relativedelta(weeks=1)
    elif kind is RecurrenceKind.MONTHLY:
        step = relativedelta(months=1)
    else:
        step = relativedelta(years=1)

    # Step from the base each time: a 31st clamps to short months and
    # returns to the 31st afterwards instead of drifting.
    count = 0
    candidate = base
    while candidate.date() <= today or is_acked(candidate):
        count += 1
        candidate = base + step * count
    return candidate


def _next_custom_occurrence(
    base: datetime,
    custom_days: Iterable[str],
    today: date,
    is_acked: Callable[[datetime], bool],
) -> datetime | None:
    offsets = []
    for day in custom_days:
        name = str(day).strip().lower()
        if name not in WEEKDAYS:
            continue
        # Today is excluded: a same-weekday match is a full week away.
        offsets.append((WEEKDAYS.index(name) - today.weekday()) % 7 or 7)

    if not offsets:
        return None

    candidate = datetime.combine(today + timedelta(days=min(offsets)), base.time())
    while is_acked(candidate):
        candidate += timedelta(weeks=1)
    return candidate


def next_occurrence_for(fields: EventFields, now: datetime | None = None) -> datetime | None:
    """Resolve the date to show for an event.

    Events without a recurrence kind (or with ``none``) are one-off and
    resolve to their base date. Recurring events go through
    ``calculate_next_occurrence``.
    """
    if fields.base_date is None:
        return None
    if fields.recurrence_kind is None or not fields.recurrence_kind.is_recurring:
        return fields.base_date
    return calculate_next_occurrence(
        fields.base_date,
        fields.recurrence_kind,
        fields.custom_days,
        fields.acknowledged_dates,
        now=now,
    )


# =============================================================================
# Event Schema (parser/serializer pair)
# =============================================================================


def _field_value(lines: list[str], prefix: str) -> str | None:
    for line in lines:
        stripped = line.strip()
        if stripped.startswith(prefix):
            return stripped[len(prefix) :].strip()
    return None


def _split_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def parse_event(content: str) -> EventFields:
    """Parse an event note's tagged lines into EventFields.

    Supports both the field-prefixed format and the older layout where
    the first line is the description and the second line the date.
    Recurrence comes from ``event_recurring_type:`` or, failing that, the
    ``meta::event_recurrence::<kind>[::<days>]`` line, which also carries
    custom weekdays. Malformed dates leave ``base_date`` unset.

    Args:
        content: Raw note text

    Returns:
        EventFields derived from the text
    """
    lines = content.split("\n")
    first = lines[0].strip() if lines else ""

    description = _field_value(lines, DESCRIPTION_PREFIX)
    if description is None:
        description = "" if first.startswith("meta::") else first

    date_value = _field_value(lines, DATE_PREFIX)
    if date_value is None and len(lines) > 1 and LEADING_DATE_PATTERN.match(lines[1].strip()):
        date_value = lines[1].strip()

    legacy_kind: str | None = None
    legacy_days: str | None = None
    legacy_line = _field_value(lines, RECURRENCE_MARKER)
    if legacy_line is not None:
        legacy_kind, _, legacy_days = legacy_line.partition("::")

    kind_value = _field_value(lines, RECURRENCE_PREFIX)
    location = _field_value(lines, LOCATION_PREFIX) or _field_value(lines, LEGACY_LOCATION_PREFIX)

    return EventFields(
        description=description,
        base_date=parse_event_datetime(date_value),
        recurrence_kind=RecurrenceKind.parse(kind_value if kind_value else legacy_kind),
        custom_days=[d.lower() for d in _split_list(legacy_days)],
        acknowledged_dates=extract_acknowledged_dates(content),
        location=location or None,
        tags=_split_list(_field_value(lines, TAGS_PREFIX)),
        notes=_field_value(lines, NOTES_PREFIX) or None,
        is_event=any(line.strip().startswith(EVENT_MARKER) for line in lines),
        is_hidden=any(line.strip().startswith(HIDDEN_MARKER) for line in lines),
        is_deadline=any(line.strip().startswith(DEADLINE_MARKER) for line in lines),
    )


def serialize_event(fields: EventFields, created: datetime | None = None) -> str:
    """Render EventFields back into tagged note lines.

    ``parse_event(serialize_event(fields))`` reproduces the fields.

    Args:
        fields: Event fields to render
        created: Timestamp for the event marker line (defaults to now, UTC)

    Returns:
        Note text in the field-prefixed format
    """
    lines = [f"{DESCRIPTION_PREFIX}{fields.description}"]
    if fields.base_date is not None:
        lines.append(f"{DATE_PREFIX}{fields.base_date.strftime('%Y-%m-%dT%H:%M')}")
    if fields.recurrence_kind is not None:
        lines.append(f"{RECURRENCE_PREFIX}{fields.recurrence_kind.value}")
        if fields.custom_days:
            days = ",".join(fields.custom_days)
            lines.append(f"{RECURRENCE_MARKER}{fields.recurrence_kind.value}::{days}")
    if fields.location:
        lines.append(f"{LOCATION_PREFIX}{fields.location}")
    if fields.tags:
        lines.append(f"{TAGS_PREFIX}{','.join(fields.tags)}")
    if fields.notes:
        lines.append(f"{NOTES_PREFIX}{fields.notes}")

    lines.append(f"{EVENT_MARKER}{(created or datetime.now(UTC)).isoformat()}")
    if fields.is_hidden:
        lines.append(HIDDEN_MARKER)
    if fields.is_deadline:
        lines.append(DEADLINE_MARKER)
    lines.extend(f"{ACK_MARKER}{d}" for d in sorted(fields.acknowledged_dates))
    return "\n".join(lines)


# =============================================================================
# Upcoming Events
# =============================================================================


def find_upcoming_events(
    notes: Iterable[Note], now: datetime | None = None, window_days: int = 7
) -> list[UpcomingEvent]:
    """List events whose next occurrence falls in the upcoming window.

    The window runs from the start of today to the end of the day
    ``window_days`` from now. Deadline events and events tagged
    ``deadline`` or ``purchase`` are left out.

    Args:
        notes: Candidate notes (non-event notes are ignored)
        now: Reference time (defaults to the current local time)
        window_days: Number of days after today to include

    Returns:
        Upcoming events sorted by occurrence date
    """
    now = now or datetime.now()
    window_start = datetime.combine(now.date(), time.min)
    window_end = datetime.combine(now.date() + timedelta(days=window_days), time.max)

    upcoming: list[UpcomingEvent] = []
    for note in notes:
        if note.id is None:
            continue
        fields = parse_event(note.content)
        if not fields.is_event or fields.is_deadline or fields.base_date is None:
            continue
        if {tag.lower() for tag in fields.tags} & EXCLUDED_UPCOMING_TAGS:
            continue

        occurrence = next_occurrence_for(fields, now=now)
        if occurrence is None or not window_start <= occurrence <= window_end:
            continue

        upcoming.append(
            UpcomingEvent(
                id=note.id,
                description=fields.description,
                date=occurrence,
                base_date=fields.base_date,
                recurrence_kind=fields.recurrence_kind,
                location=fields.location,
                tags=fields.tags,
                is_hidden=fields.is_hidden,
            )
        )

    upcoming.sort(key=lambda event: event.date)
    return upcoming
