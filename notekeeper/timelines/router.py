"""FastAPI router for timeline linking endpoints."""

from fastapi import APIRouter, Depends, HTTPException, status

from notekeeper.dependencies import (
    NoteNotFoundError,
    NoteStoreError,
    VaultSecurityError,
    get_linker,
)
from notekeeper.timelines.linker import TimelineLinker
from notekeeper.timelines.models import LinkResult, ReconcileResult, TimelineView

router = APIRouter(prefix="/v1/timelines", tags=["timelines"])


def _store_error(e: NoteStoreError) -> HTTPException:
    if isinstance(e, NoteNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Timeline not found")
    if isinstance(e, VaultSecurityError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))


@router.get("/{timeline_id}")
async def get_timeline(
    timeline_id: str, linker: TimelineLinker = Depends(get_linker)
) -> TimelineView:
    """Return a timeline with its linked events resolved."""
    try:
        return await linker.get_timeline(timeline_id)
    except NoteStoreError as e:
        raise _store_error(e)


@router.post("/{timeline_id}/events/{event_id}")
async def link_event(
    timeline_id: str, event_id: str, linker: TimelineLinker = Depends(get_linker)
) -> LinkResult:
    """Link an event into a timeline (no-op if already linked)."""
    try:
        return await linker.link_event(event_id, timeline_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except NoteStoreError as e:
        raise _store_error(e)


@router.delete("/{timeline_id}/events/{event_id}")
async def unlink_event(
    timeline_id: str, event_id: str, linker: TimelineLinker = Depends(get_linker)
) -> LinkResult:
    """Remove an event from a timeline."""
    try:
        return await linker.unlink_event(event_id, timeline_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except NoteStoreError as e:
        raise _store_error(e)


@router.post("/{timeline_id}/reconcile")
async def reconcile_timeline(
    timeline_id: str, linker: TimelineLinker = Depends(get_linker)
) -> ReconcileResult:
    """Drop links to events whose notes no longer exist."""
    try:
        return await linker.reconcile(timeline_id)
    except NoteStoreError as e:
        raise _store_error(e)
