"""Note Store interface and its vault-backed implementation.

The core only ever talks to notes through the ``NoteStore`` protocol:
fetch by id, persist new content for an id, and create a note. The
``VaultNoteStore`` keeps each note as ``<id>.md`` with a small YAML
frontmatter block holding timestamps, written with python-frontmatter.
"""

import uuid
from datetime import UTC, datetime
from typing import Protocol

import frontmatter

from notekeeper.dependencies import NoteNotFoundError, VaultClient, logger
from notekeeper.notes.models import Note, NoteFrontmatter


class NoteStore(Protocol):
    """Remote note storage consumed by the core."""

    async def fetch_note(self, note_id: str) -> Note:
        """Return the stored note or raise ``NoteNotFoundError``."""
        ...

    async def persist_note(self, note_id: str, content: str) -> Note:
        """Store new content for a note and return the note as stored."""
        ...

    async def create_note(self, content: str) -> Note:
        """Store a new note under a freshly allocated id."""
        ...

    async def list_notes(self) -> list[Note]:
        """Return every stored note (used by listings, not by linking)."""
        ...


def _coerce_timestamp(value: object) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


def load_note(note_id: str, raw: str) -> Note:
    """Parse a vault file into a Note.

    Files without frontmatter are accepted as plain content. The body is
    whitespace-trimmed, which is the normalization callers observe after
    a persist.
    """
    post = frontmatter.loads(raw)
    metadata = dict(post.metadata) if post.metadata else {}
    return Note(
        id=note_id,
        content=post.content.strip(),
        created=_coerce_timestamp(metadata.get("created")),
        modified=_coerce_timestamp(metadata.get("modified")),
    )


def dump_note(content: str, meta: NoteFrontmatter) -> str:
    """Render note content with its storage frontmatter."""
    post = frontmatter.Post(content)
    post.metadata = meta.to_yaml_dict()
    return frontmatter.dumps(post)


class VaultNoteStore:
    """NoteStore backed by a directory of markdown files."""

    def __init__(self, vault: VaultClient) -> None:
        self.vault = vault

    async def fetch_note(self, note_id: str) -> Note:
        raw = await self.vault.read_note_file(note_id)
        return load_note(note_id, raw)

    async def persist_note(self, note_id: str, content: str) -> Note:
        """Replace a note's content, preserving its creation time.

        Raises:
            NoteNotFoundError: If the note does not exist
            PersistError: If the write fails
        """
        if not await self.vault.note_exists(note_id):
            raise NoteNotFoundError(f"Note not found: {note_id}")

        existing = load_note(note_id, await self.vault.read_note_file(note_id))
        meta = NoteFrontmatter(modified=datetime.now(UTC))
        if existing.created is not None:
            meta.created = existing.created

        await self.vault.write_note_file(note_id, dump_note(content, meta))
        logger.debug("note_persisted", extra={"note_id": note_id})
        return load_note(note_id, await self.vault.read_note_file(note_id))

    async def create_note(self, content: str) -> Note:
        note_id = uuid.uuid4().hex
        await self.vault.write_note_file(note_id, dump_note(content, NoteFrontmatter()))
        logger.info("note_created", extra={"note_id": note_id})
        return load_note(note_id, await self.vault.read_note_file(note_id))

    async def list_notes(self) -> list[Note]:
        """Load every note in the vault, skipping files that fail to parse."""
        notes: list[Note] = []
        for note_id in await self.vault.list_note_ids():
            try:
                notes.append(await self.fetch_note(note_id))
            except Exception as e:
                logger.warning("note_load_failed", extra={"note_id": note_id, "error": str(e)})
                continue
        return notes
