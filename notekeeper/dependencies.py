"""Shared dependencies: structured logger, store errors, VaultClient and providers."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from fastapi import Request

from notekeeper.config import get_settings

if TYPE_CHECKING:
    from notekeeper.notes.store import NoteStore
    from notekeeper.timelines.linker import TimelineLinker

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RESERVED_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "taskName",
}


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, merging any ``extra`` fields."""
        data: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
        }
        data.update(
            {k: v for k, v in vars(record).items() if k not in _RESERVED_ATTRS}
        )
        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


def setup_logging() -> logging.Logger:
    """Configure and return the application logger."""
    settings = get_settings()
    logger = logging.getLogger("notekeeper")
    logger.setLevel(getattr(logging, settings.log_level.upper()))
    logger.handlers.clear()
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    return logger


logger = setup_logging()


class NoteStoreError(Exception):
    """Base exception for note store operations."""

    pass


class NoteNotFoundError(NoteStoreError):
    """Raised when a note id is unknown to the store."""

    pass


class NoteFetchError(NoteStoreError):
    """Raised when a note exists but could not be read."""

    pass


class PersistError(NoteStoreError):
    """Raised when writing a note fails for any transport or storage reason."""

    pass


class VaultSecurityError(NoteStoreError):
    """Raised when a note id would resolve outside the vault."""

    pass


@dataclass
class VaultClient:
    """File access for a directory of ``<note id>.md`` files."""

    vault_path: Path

    def note_path(self, note_id: str) -> Path:
        """Resolve the file backing a note id.

        Args:
            note_id: Opaque note identifier

        Returns:
            Resolved absolute path of the note file

        Raises:
            VaultSecurityError: If the id escapes the vault directory
        """
        full_path = (self.vault_path / f"{note_id.strip()}.md").resolve()
        if not full_path.is_relative_to(self.vault_path.resolve()):
            raise VaultSecurityError(f"Note id escapes the vault: {note_id}")
        return full_path

    async def read_note_file(self, note_id: str) -> str:
        """Read the raw file for a note.

        Raises:
            NoteNotFoundError: If no file exists for the id
            NoteFetchError: If the file exists but cannot be read
        """
        full_path = self.note_path(note_id)
        if not full_path.exists():
            raise NoteNotFoundError(f"Note not found: {note_id}")
        try:
            return full_path.read_text(encoding="utf-8")
        except OSError as e:
            raise NoteFetchError(f"Failed to read note {note_id}: {e}") from e

    async def write_note_file(self, note_id: str, raw: str) -> None:
        """Write the raw file for a note, creating the vault if needed.

        Raises:
            PersistError: If the write fails
        """
        full_path = self.note_path(note_id)
        try:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            full_path.write_text(raw, encoding="utf-8")
        except OSError as e:
            raise PersistError(f"Failed to write note {note_id}: {e}") from e

    async def note_exists(self, note_id: str) -> bool:
        """Check whether a note file exists; invalid ids never exist."""
        try:
            return self.note_path(note_id).exists()
        except VaultSecurityError:
            return False

    async def list_note_ids(self) -> list[str]:
        """List the ids of every note in the vault, sorted."""
        if not self.vault_path.exists():
            return []
        return sorted(f.stem for f in self.vault_path.glob("*.md") if f.is_file())


def get_note_store(request: Request) -> NoteStore:
    """FastAPI dependency provider for the application's NoteStore."""
    return request.app.state.store


def get_linker(request: Request) -> TimelineLinker:
    """FastAPI dependency provider for the application's TimelineLinker."""
    return request.app.state.linker
