"""Pydantic models for stored notes."""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


class NoteFrontmatter(BaseModel):
    """Storage metadata kept in a note file's YAML frontmatter.

    The note's own text never carries these fields; they are bookkeeping
    for the vault store and are stripped before content reaches callers.

    Attributes:
        created: When the note was first persisted (UTC)
        modified: When the note was last persisted (UTC)
    """

    created: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the note was created",
    )
    modified: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the note was last modified",
    )

    def to_yaml_dict(self) -> dict[str, Any]:
        """Convert to dictionary suitable for YAML frontmatter.

        Returns:
            Dictionary with ISO-formatted datetime strings
        """
        return {
            "created": self.created.isoformat(),
            "modified": self.modified.isoformat(),
        }


class Note(BaseModel):
    """A note as held by the core: an identifier plus raw tagged-line text.

    Attributes:
        id: Store-assigned identifier (None before the note is persisted)
        content: The note text; structured fields are line-prefixed tags
        created: Creation timestamp reported by the store, if any
        modified: Last modification timestamp reported by the store, if any
    """

    id: str | None = None
    content: str = ""
    created: datetime | None = None
    modified: datetime | None = None
