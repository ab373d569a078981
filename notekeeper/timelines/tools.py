"""Linked-event codec and timeline parsing.

A timeline note declares the events it references on lines such as:

    meta::linked_from_events::a1b2c3
    meta::linked_from_events::d4e5f6,0789ab

Older notes pack several ids onto one comma-joined line; newer ones write
one id per line. Decoding accepts both. Encoding always writes one id per
line after the rest of the note.
"""

from notekeeper.timelines.models import TimelineFields

LINKED_EVENTS_MARKER = "meta::linked_from_events::"
TIMELINE_MARKER = "meta::timeline"
CLOSED_LINE = "Closed"


def decode_linked_events(content: str) -> tuple[str, list[str]]:
    """Split a timeline's linked-event lines from the rest of its content.

    Args:
        content: Raw timeline note text

    Returns:
        Tuple of (content without linked-event lines, linked ids). Ids are
        whitespace-trimmed, empty entries dropped, duplicates removed while
        keeping first-seen order.

    Examples:
        >>> decode_linked_events("Trip\\nmeta::linked_from_events::a,b\\nmeta::linked_from_events::a")
        ('Trip', ['a', 'b'])
    """
    remaining: list[str] = []
    ids: dict[str, None] = {}
    for line in content.split("\n"):
        stripped = line.strip()
        if not stripped.startswith(LINKED_EVENTS_MARKER):
            remaining.append(line)
            continue
        for event_id in stripped[len(LINKED_EVENTS_MARKER) :].split(","):
            event_id = event_id.strip()
            if event_id:
                ids.setdefault(event_id, None)
    return "\n".join(remaining), list(ids)


def encode_linked_events(remaining: str, event_ids: list[str]) -> str:
    """Append one linked-event line per id to the remaining content.

    Trailing blank lines of ``remaining`` are dropped so repeated
    decode/encode cycles do not grow the note.

    Args:
        remaining: Timeline content without linked-event lines
        event_ids: Ids to declare, written in the given order

    Returns:
        Full timeline content
    """
    lines = [remaining.rstrip("\n")] if remaining.strip() else []
    lines.extend(f"{LINKED_EVENTS_MARKER}{event_id}" for event_id in event_ids)
    return "\n".join(lines)


def parse_timeline(content: str) -> TimelineFields:
    """Parse a timeline note into TimelineFields.

    Args:
        content: Raw timeline note text

    Returns:
        TimelineFields with title, markers and the linked set
    """
    lines = content.split("\n")
    title = next(
        (
            line.strip()
            for line in lines
            if line.strip() and line.strip() != CLOSED_LINE and not line.strip().startswith("meta::")
        ),
        "",
    )
    _, linked = decode_linked_events(content)
    return TimelineFields(
        title=title,
        is_timeline=any(line.strip().startswith(TIMELINE_MARKER) for line in lines),
        is_closed=any(line.strip() == CLOSED_LINE for line in lines),
        linked_event_ids=linked,
    )
