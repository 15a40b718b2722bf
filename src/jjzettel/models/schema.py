"""Data models for jjzettel."""

import datetime
import hashlib
import re
import time
from dataclasses import asdict, dataclass
from datetime import timezone
from typing import Any, Dict, List

from pydantic import BaseModel, Field, field_validator

# Regex pattern for valid note IDs (md5 hex digests, or hand-named files
# made of alphanumerics, underscores and hyphens)
SAFE_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_\-]+$")


def validate_safe_path_component(value: str, field_name: str = "value") -> str:
    """Validate that a value is safe to use as a filesystem path component.

    Prevents path traversal by rejecting path separators, '..' and any
    characters outside alphanumerics, underscores and hyphens.

    Args:
        value: The string to validate
        field_name: Name of the field for error messages

    Returns:
        The validated value (unchanged)

    Raises:
        ValueError: If the value contains unsafe characters
    """
    if not value:
        raise ValueError(f"{field_name} cannot be empty")

    if ".." in value:
        raise ValueError(f"{field_name} cannot contain '..' (path traversal)")

    if "/" in value or "\\" in value:
        raise ValueError(f"{field_name} cannot contain path separators")

    if not SAFE_ID_PATTERN.match(value):
        raise ValueError(
            f"{field_name} contains invalid characters. "
            "Only alphanumeric characters, underscores and hyphens are allowed."
        )

    return value


def is_safe_id(value: str) -> bool:
    """Return True if value can be used as a note ID."""
    try:
        validate_safe_path_component(value)
    except ValueError:
        return False
    return True


def utc_now() -> str:
    """Get the current UTC time as a sortable ISO 8601 string.

    Microseconds are always present so that string order matches
    chronological order.
    """
    return datetime.datetime.now(timezone.utc).isoformat(timespec="microseconds")


def generate_id(title: str) -> str:
    """Generate a note ID from the title and a nanosecond timestamp.

    The ID is the md5 hex digest of ``title + time_ns``; it is computed
    once at creation and never recomputed from the note's content.
    """
    return hashlib.md5(f"{title}{time.time_ns()}".encode("utf-8")).hexdigest()


class Note(BaseModel):
    """A Zettelkasten note."""

    id: str = Field(..., description="Unique ID of the note")
    title: str = Field(..., description="Title of the note")
    content: str = Field(..., description="Content of the note")
    links: List[str] = Field(
        default_factory=list, description="IDs of notes this note links to"
    )
    tags: List[str] = Field(default_factory=list, description="Tags for categorization")
    created_at: str = Field(
        default_factory=utc_now, description="When the note was created (UTC)"
    )
    updated_at: str = Field(
        default_factory=utc_now, description="When the note was last updated (UTC)"
    )

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @classmethod
    def new(cls, title: str, content: str) -> "Note":
        """Create a fresh note with a new ID and matching timestamps."""
        now = utc_now()
        return cls(
            id=generate_id(title),
            title=title,
            content=content,
            created_at=now,
            updated_at=now,
        )

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        """Validate that the ID is safe for filesystem use."""
        return validate_safe_path_component(v, "Note ID")

    def touch(self) -> None:
        """Advance updated_at, never moving it backwards."""
        self.updated_at = max(utc_now(), self.updated_at)

    def has_tag(self, tag: str) -> bool:
        """Case-insensitive tag membership."""
        tag_lower = tag.lower()
        return any(t.lower() == tag_lower for t in self.tags)

    def add_tag(self, tag: str) -> bool:
        """Add a tag unless it is already present in any casing.

        Returns:
            True if the tag was added.
        """
        if self.has_tag(tag):
            return False
        self.tags = self.tags + [tag]
        self.touch()
        return True

    def remove_tag(self, tag: str) -> None:
        """Remove a tag, comparing case-insensitively."""
        tag_lower = tag.lower()
        self.tags = [t for t in self.tags if t.lower() != tag_lower]
        self.touch()

    def add_link(self, target_id: str) -> bool:
        """Add a link to another note unless it already exists.

        Returns:
            True if the link was added.
        """
        if target_id in self.links:
            return False
        self.links = self.links + [target_id]
        self.touch()
        return True

    def remove_link(self, target_id: str) -> None:
        """Remove a link to another note."""
        self.links = [link for link in self.links if link != target_id]
        self.touch()


@dataclass(frozen=True)
class HistoryEntry:
    """One revision from the backend's log, associated with a note.

    Attributes:
        revision_id: Backend commit identifier.
        message: First line of the revision description.
        author: Author as reported by the backend.
        timestamp: Backend timestamp text (empty when not reported).
    """

    revision_id: str
    message: str
    author: str
    timestamp: str = ""

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)

    def __str__(self) -> str:
        return f"{self.revision_id} | {self.message} | {self.author} | {self.timestamp}"


@dataclass
class NoteStatistics:
    """Aggregate counts over the note corpus."""

    total_notes: int = 0
    total_links: int = 0
    total_tags: int = 0
    unique_tags_count: int = 0

    @property
    def avg_links_per_note(self) -> float:
        if self.total_notes == 0:
            return 0.0
        return self.total_links / self.total_notes

    @property
    def avg_tags_per_note(self) -> float:
        if self.total_notes == 0:
            return 0.0
        return self.total_tags / self.total_notes

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation, including averages."""
        data: Dict[str, Any] = asdict(self)
        data["avg_links_per_note"] = round(self.avg_links_per_note, 2)
        data["avg_tags_per_note"] = round(self.avg_tags_per_note, 2)
        return data
