"""FastAPI router for event recurrence endpoints."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status

from notekeeper.config import get_settings
from notekeeper.dependencies import (
    NoteNotFoundError,
    NoteStoreError,
    VaultSecurityError,
    get_note_store,
    logger,
)
from notekeeper.events.models import AcknowledgeRequest, NextOccurrence, UpcomingEvent
from notekeeper.events.tools import (
    acknowledge_occurrence,
    find_upcoming_events,
    next_occurrence_for,
    parse_event,
)
from notekeeper.notes.store import NoteStore

router = APIRouter(prefix="/v1/events", tags=["events"])


def _store_error(e: NoteStoreError) -> HTTPException:
    if isinstance(e, NoteNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
    if isinstance(e, VaultSecurityError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))


def _describe(event_id: str, content: str) -> NextOccurrence:
    fields = parse_event(content)
    return NextOccurrence(
        id=event_id,
        description=fields.description,
        base_date=fields.base_date,
        recurrence_kind=fields.recurrence_kind,
        next_occurrence=next_occurrence_for(fields),
        acknowledged_dates=sorted(fields.acknowledged_dates),
    )


@router.get("/upcoming")
async def upcoming_events(
    days: int | None = Query(default=None, ge=0, le=366),
    store: NoteStore = Depends(get_note_store),
) -> list[UpcomingEvent]:
    """List events due between today and ``days`` days from now."""
    window = days if days is not None else get_settings().upcoming_window_days
    notes = await store.list_notes()
    events = find_upcoming_events(notes, now=datetime.now(), window_days=window)
    logger.info("upcoming_events_listed", extra={"window_days": window, "count": len(events)})
    return events


@router.get("/{event_id}/next-occurrence")
async def get_next_occurrence(
    event_id: str, store: NoteStore = Depends(get_note_store)
) -> NextOccurrence:
    """Resolve the next unacknowledged occurrence of an event."""
    try:
        note = await store.fetch_note(event_id)
    except NoteStoreError as e:
        raise _store_error(e)
    return _describe(event_id, note.content)


@router.post("/{event_id}/acknowledge")
async def acknowledge_event(
    event_id: str,
    body: AcknowledgeRequest | None = None,
    store: NoteStore = Depends(get_note_store),
) -> NextOccurrence:
    """Mark one occurrence of an event as handled (today by default)."""
    try:
        note = await store.fetch_note(event_id)
        updated = acknowledge_occurrence(note.content, body.date if body else None)
        if updated != note.content:
            note = await store.persist_note(event_id, updated)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except NoteNotFoundError as e:
        raise _store_error(e)
    except NoteStoreError as e:
        logger.error(
            "event_acknowledge_failed",
            extra={"event_id": event_id, "error": str(e)},
            exc_info=True,
        )
        raise _store_error(e)

    logger.info("event_acknowledged", extra={"event_id": event_id})
    return _describe(event_id, note.content)
