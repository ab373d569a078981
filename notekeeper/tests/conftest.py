"""Shared pytest fixtures."""

import asyncio
import os
from collections.abc import Iterator
from pathlib import Path

import pytest
from dotenv import load_dotenv

# Load environment variables before importing app modules
load_dotenv()

# Set test defaults if not provided
if not os.environ.get("VAULT_PATH"):
    os.environ["VAULT_PATH"] = "/tmp/test-notekeeper-vault"

from fastapi.testclient import TestClient  # noqa: E402

from notekeeper import main  # noqa: E402
from notekeeper.config import Settings  # noqa: E402
from notekeeper.dependencies import (  # noqa: E402
    NoteFetchError,
    NoteNotFoundError,
    PersistError,
    VaultClient,
)
from notekeeper.notes.models import Note  # noqa: E402
from notekeeper.notes.store import VaultNoteStore  # noqa: E402
from notekeeper.timelines.cache import TimelineCache  # noqa: E402
from notekeeper.timelines.linker import TimelineLinker  # noqa: E402
from notekeeper.timelines.queue import KeyedOperationQueue  # noqa: E402


class InMemoryNoteStore:
    """NoteStore fake with switchable failures and per-note gates.

    Every call yields to the event loop at least once, like a real remote
    store would, so unserialized read-modify-write cycles can interleave.

    Attributes:
        notes: Note id -> content
        persist_calls: (note id, content) for each successful persist, in order
        fail_fetch: Ids whose fetch raises NoteFetchError
        persist_failures: Id -> number of upcoming persists that raise PersistError
        gates: Id -> event that fetches of that id wait on
    """

    def __init__(self, notes: dict[str, str] | None = None) -> None:
        self.notes: dict[str, str] = dict(notes or {})
        self.persist_calls: list[tuple[str, str]] = []
        self.fail_fetch: set[str] = set()
        self.persist_failures: dict[str, int] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self._counter = 0

    async def fetch_note(self, note_id: str) -> Note:
        if note_id in self.gates:
            await self.gates[note_id].wait()
        await asyncio.sleep(0)
        if note_id in self.fail_fetch:
            raise NoteFetchError(f"Transport failure fetching {note_id}")
        if note_id not in self.notes:
            raise NoteNotFoundError(f"Note not found: {note_id}")
        return Note(id=note_id, content=self.notes[note_id])

    async def persist_note(self, note_id: str, content: str) -> Note:
        await asyncio.sleep(0)
        if self.persist_failures.get(note_id, 0) > 0:
            self.persist_failures[note_id] -= 1
            raise PersistError(f"Server rejected update of {note_id}")
        stored = content.strip()
        self.notes[note_id] = stored
        self.persist_calls.append((note_id, stored))
        return Note(id=note_id, content=stored)

    async def create_note(self, content: str) -> Note:
        self._counter += 1
        note_id = f"note-{self._counter}"
        self.notes[note_id] = content
        return Note(id=note_id, content=content)

    async def list_notes(self) -> list[Note]:
        return [Note(id=note_id, content=content) for note_id, content in self.notes.items()]


@pytest.fixture
def memory_store() -> InMemoryNoteStore:
    """Create an in-memory store holding one timeline and two events."""
    return InMemoryNoteStore(
        {
            "timeline-1": "Japan trip\nmeta::timeline",
            "event-1": "event_description:Flight out\nevent_date:2025-04-01\nmeta::event::",
            "event-2": "event_description:Flight back\nevent_date:2025-04-14\nmeta::event::",
        }
    )


@pytest.fixture
def timeline_cache() -> TimelineCache:
    return TimelineCache()


@pytest.fixture
def linker(memory_store: InMemoryNoteStore, timeline_cache: TimelineCache) -> TimelineLinker:
    """Create a TimelineLinker over the in-memory store."""
    return TimelineLinker(store=memory_store, cache=timeline_cache, queue=KeyedOperationQueue())


@pytest.fixture
def vault_path(tmp_path: Path) -> Path:
    """Create an empty temporary vault directory."""
    vault = tmp_path / "vault"
    vault.mkdir()
    return vault


@pytest.fixture
def vault_store(vault_path: Path) -> VaultNoteStore:
    """Create a VaultNoteStore over the temporary vault."""
    return VaultNoteStore(VaultClient(vault_path=vault_path))


@pytest.fixture
def client(vault_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[TestClient]:
    """Create a FastAPI test client whose lifespan uses the temporary vault."""
    monkeypatch.setattr(main, "settings", Settings(vault_path=vault_path))
    with TestClient(main.app) as test_client:
        yield test_client
