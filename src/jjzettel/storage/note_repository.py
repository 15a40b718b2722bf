"""Repository for note storage and retrieval."""

import json
import logging
import os
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from jjzettel.exceptions import (
    BackendInvocationError,
    ErrorCode,
    NoteCorruptionError,
    NoteNotFoundError,
    NoteValidationError,
    PersistenceError,
)
from jjzettel.models.schema import Note, utc_now, validate_safe_path_component
from jjzettel.storage.jj_wrapper import RevisionBackend

logger = logging.getLogger(__name__)

NOTE_SUFFIX = ".json"

# Revision description prefixes, one per versioned operation
CREATE_PREFIX = "Note"
UPDATE_PREFIX = "Update"
DUPLICATE_PREFIX = "Duplicate"
DELETE_PREFIX = "Delete note"
OPERATION_PREFIXES = (CREATE_PREFIX, UPDATE_PREFIX, DUPLICATE_PREFIX, DELETE_PREFIX)


def sanitize_commit_title(title: str, max_length: int = 100) -> str:
    """Sanitize note title for use in a revision description.

    - Truncates to reasonable length
    - Removes newlines (the log is parsed line by line)
    - Prefixes titles starting with dash (could be confused for flags)
    """
    sanitized = title[:max_length]
    sanitized = sanitized.replace("\n", " ").replace("\r", " ")
    if sanitized.startswith("-"):
        sanitized = "_" + sanitized
    return sanitized


def revision_message(prefix: str, title: str, suffix: Optional[str] = None) -> str:
    """Build a revision description: operation kind, title and timestamp."""
    parts = [f"{prefix}:"]
    if title:
        parts.append(sanitize_commit_title(title))
    if suffix:
        parts.append(f"[{suffix}]")
    parts.append(f"({utc_now()})")
    return " ".join(parts)


class NoteRepository:
    """Repository for note storage and retrieval.

    Each note is a pretty-printed JSON file named ``<id>.json`` in the
    notes directory, which lives inside the jj repository root. Files are
    the only source of truth: there is no index to keep in sync.
    Creation, content updates, duplication and deletion record a revision
    in the backend after the file has been written.
    """

    def __init__(
        self,
        notes_dir: Path,
        backend: Optional[RevisionBackend] = None,
        strict_listing: bool = False,
    ):
        """Initialize the repository.

        Args:
            notes_dir: Directory containing the note files.
            backend: Revision backend. When None, nothing is versioned.
            strict_listing: If True, get_all() raises on corrupt files
                instead of skipping them.
        """
        self.notes_dir = Path(notes_dir)
        self.backend = backend
        self.strict_listing = strict_listing
        logger.debug(
            f"NoteRepository initialized: notes_dir={self.notes_dir}, "
            f"versioned={backend is not None}, strict_listing={strict_listing}"
        )

    def note_path(self, id: str) -> Path:
        """Path of the file holding the note with the given ID."""
        return self.notes_dir / f"{id}{NOTE_SUFFIX}"

    @staticmethod
    def _validate_id(id: str) -> None:
        try:
            validate_safe_path_component(id, "Note ID")
        except ValueError as e:
            raise NoteValidationError(
                str(e), field="id", value=id, code=ErrorCode.PATH_TRAVERSAL_DETECTED
            ) from e

    def exists(self, id: str) -> bool:
        self._validate_id(id)
        return self.note_path(id).is_file()

    def _serialize(self, note: Note) -> str:
        try:
            return json.dumps(note.model_dump(), indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise PersistenceError(
                f"Failed to serialize note {note.id}",
                operation="serialize",
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e

    def _parse_note(self, raw: bytes, id: str, file_path: Path) -> Note:
        try:
            return Note.model_validate(json.loads(raw.decode("utf-8")))
        except (
            UnicodeDecodeError,
            json.JSONDecodeError,
            PydanticValidationError,
            TypeError,
        ) as e:
            raise NoteCorruptionError(
                id, path=str(file_path), original_error=e
            ) from e

    def _write(self, note: Note, operation: str) -> None:
        """Serialize and write a note, flushing it to disk before returning."""
        payload = self._serialize(note)
        file_path = self.note_path(note.id)
        try:
            self.notes_dir.mkdir(parents=True, exist_ok=True)
            with open(file_path, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise PersistenceError(
                f"Failed to write note {note.id}",
                operation=operation,
                path=str(file_path),
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e

    def _record(self, message: str, note_id: str) -> Optional[str]:
        """Ask the backend to record a revision for an already-written note."""
        if self.backend is None:
            return None
        try:
            return self.backend.record_revision(message)
        except BackendInvocationError as e:
            logger.error(f"Revision not recorded for note {note_id}: {e}")
            e.note_id = note_id
            e.details["note_id"] = note_id
            raise

    def create(self, note: Note, prefix: str = CREATE_PREFIX) -> Note:
        """Write a new note and record its creation.

        Raises:
            PersistenceError: If the note could not be written.
            BackendInvocationError: If the file was written but the revision
                could not be recorded.
        """
        self._validate_id(note.id)
        self._write(note, "create")
        logger.info(f"Created note {note.id}")
        self._record(revision_message(prefix, note.title), note.id)
        return note

    def get(self, id: str) -> Optional[Note]:
        """Get a note by ID.

        Returns:
            Note object if found, None otherwise

        Raises:
            NoteValidationError: If the ID contains invalid characters
            NoteCorruptionError: If the file exists but does not parse
            PersistenceError: If the file exists but cannot be read
        """
        self._validate_id(id)

        file_path = self.note_path(id)
        if not file_path.is_file():
            return None
        try:
            with open(file_path, "rb") as f:
                raw = f.read()
        except OSError as e:
            raise PersistenceError(
                f"Failed to read note {id}",
                operation="read",
                path=str(file_path),
                code=ErrorCode.STORAGE_READ_FAILED,
                original_error=e,
            ) from e
        return self._parse_note(raw, id, file_path)

    def get_all(self) -> List[Note]:
        """Get every note, most recently updated first.

        Ties on updated_at are broken by ID (descending) so that the order
        is deterministic. Files that are not ``*.json`` are ignored.
        """
        if not self.notes_dir.is_dir():
            return []

        notes: List[Note] = []
        for file_path in self.notes_dir.iterdir():
            if file_path.suffix != NOTE_SUFFIX or not file_path.is_file():
                continue
            note_id = file_path.stem
            try:
                with open(file_path, "rb") as f:
                    raw = f.read()
                notes.append(self._parse_note(raw, note_id, file_path))
            except NoteCorruptionError:
                if self.strict_listing:
                    raise
                logger.warning(f"Skipping corrupt note file {file_path.name}")
            except OSError as e:
                raise PersistenceError(
                    f"Failed to read note {note_id}",
                    operation="list",
                    path=str(file_path),
                    code=ErrorCode.STORAGE_READ_FAILED,
                    original_error=e,
                ) from e

        notes.sort(key=lambda n: (n.updated_at, n.id), reverse=True)
        return notes

    def save(self, note: Note) -> Note:
        """Rewrite an existing note without recording a revision."""
        self._validate_id(note.id)
        if not self.note_path(note.id).is_file():
            raise NoteNotFoundError(note.id)
        self._write(note, "save")
        return note

    def update(self, note: Note) -> Note:
        """Rewrite an existing note and record the update."""
        self.save(note)
        logger.info(f"Updated note {note.id}")
        self._record(revision_message(UPDATE_PREFIX, note.title), note.id)
        return note

    def delete(self, id: str) -> bool:
        """Delete a note by ID.

        Deleting a missing note is a no-op.

        Returns:
            True if a file was removed.
        """
        self._validate_id(id)
        file_path = self.note_path(id)
        if not file_path.is_file():
            return False

        title = ""
        try:
            existing = self.get(id)
            title = existing.title if existing else ""
        except NoteCorruptionError as e:
            # The file is removed anyway; the revision just lacks the title
            logger.warning(f"Deleting unreadable note {id}: {e}")

        try:
            os.remove(file_path)
        except OSError as e:
            raise PersistenceError(
                f"Failed to delete note {id}",
                operation="delete",
                path=str(file_path),
                code=ErrorCode.STORAGE_DELETE_FAILED,
                original_error=e,
            ) from e

        logger.info(f"Deleted note {id}")
        self._record(revision_message(DELETE_PREFIX, title, suffix=id), id)
        return True
