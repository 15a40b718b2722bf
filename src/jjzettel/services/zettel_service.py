"""Service layer for jjzettel operations."""

import logging
from pathlib import Path
from typing import List, Optional, Union

from jjzettel.config import JjzettelConfig
from jjzettel.exceptions import ErrorCode, NoteNotFoundError, NoteValidationError
from jjzettel.models.schema import HistoryEntry, Note, NoteStatistics, is_safe_id
from jjzettel.services.history_service import HistoryReconciler
from jjzettel.services.search_service import SearchService
from jjzettel.storage.jj_wrapper import JujutsuBackend, RevisionBackend
from jjzettel.storage.link_repository import LinkRepository
from jjzettel.storage.note_repository import DUPLICATE_PREFIX, NoteRepository

logger = logging.getLogger(__name__)

COPY_TITLE_PREFIX = "Copy of "


class ZettelService:
    """Engine facade: note CRUD, links, tags, search and history."""

    def __init__(
        self,
        settings: Optional[JjzettelConfig] = None,
        backend: Optional[RevisionBackend] = None,
    ):
        """Initialize the service.

        Args:
            settings: Engine configuration. A fresh JjzettelConfig is built
                from the environment when None.
            backend: Revision backend. Defaults to a JujutsuBackend rooted
                at the configured repository path.
        """
        self.settings = settings or JjzettelConfig()
        self.backend = backend or JujutsuBackend(
            self.settings.get_repo_path(), jj_binary=self.settings.jj_binary
        )
        self.notes_dir: Path = self.backend.repo_path / self.settings.notes_subdir
        self.repository = NoteRepository(
            self.notes_dir,
            backend=self.backend,
            strict_listing=self.settings.strict_listing,
        )
        self.links = LinkRepository(self.repository)
        self.search = SearchService(self.repository)
        self.history = HistoryReconciler(self.backend)

    def initialize(self) -> None:
        """Create the backend repository if needed and ensure the notes dir.

        Idempotent: safe to call on every start.
        """
        if not self.backend.repo_exists():
            self.backend.init()
        else:
            logger.debug(f"Repository already exists at {self.backend.repo_path}")
        self.notes_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Knowledge base ready at {self.backend.repo_path}")

    def _require_note(self, note_id: str) -> Note:
        note = self.repository.get(note_id)
        if note is None:
            raise NoteNotFoundError(note_id)
        return note

    # =========================================================================
    # Notes
    # =========================================================================

    def create_note(
        self, title: str, content: str, tags: Optional[List[str]] = None
    ) -> Note:
        """Create, persist and version a new note."""
        note = Note.new(title, content)
        for tag in tags or []:
            note.add_tag(tag)
        return self.repository.create(note)

    def duplicate_note(self, note_id: str) -> Note:
        """Copy a note under a new ID.

        The copy is titled "Copy of <title>", keeps content and tags, and
        starts without links.
        """
        original = self._require_note(note_id)
        copy = Note.new(COPY_TITLE_PREFIX + original.title, original.content)
        copy.tags = list(original.tags)
        return self.repository.create(copy, prefix=DUPLICATE_PREFIX)

    def list_notes(self) -> List[Note]:
        """All notes, most recently updated first."""
        return self.repository.get_all()

    def get_note(self, note_id: str) -> Optional[Note]:
        """Retrieve a note by ID, or None if it does not exist."""
        return self.repository.get(note_id)

    def update_note(self, note: Union[str, Note], content: str) -> Note:
        """Replace a note's content and record the update.

        Args:
            note: The note, or its ID.
            content: New content.
        """
        if isinstance(note, str):
            note = self._require_note(note)
        note.content = content
        note.touch()
        return self.repository.update(note)

    def delete_note(self, note_id: str) -> bool:
        """Delete a note. Links pointing at it elsewhere are left dangling."""
        return self.repository.delete(note_id)

    # =========================================================================
    # Tags and links (not versioned)
    # =========================================================================

    def add_tag(self, note_id: str, tag: str) -> Note:
        note = self._require_note(note_id)
        if note.add_tag(tag):
            self.repository.save(note)
        return note

    def remove_tag(self, note_id: str, tag: str) -> Note:
        note = self._require_note(note_id)
        note.remove_tag(tag)
        return self.repository.save(note)

    def link_notes(self, note_id: str, target_id: str) -> Note:
        """Link note_id to target_id. Only the source note changes.

        The target does not have to exist; self-links are allowed.
        """
        if not is_safe_id(target_id):
            raise NoteValidationError(
                f"Invalid link target: {target_id!r}",
                field="target_id",
                value=target_id,
                code=ErrorCode.LINK_INVALID,
            )
        note = self._require_note(note_id)
        if note.add_link(target_id):
            self.repository.save(note)
        return note

    def unlink_notes(self, note_id: str, target_id: str) -> Note:
        note = self._require_note(note_id)
        note.remove_link(target_id)
        return self.repository.save(note)

    def get_backlinks(self, note_id: str) -> List[Note]:
        """Notes linking to note_id, most recently updated first."""
        return self.links.backlinks_of(note_id)

    def resolve_link(self, target_id: str) -> Optional[Note]:
        """Resolve a link target; None when the link is dangling."""
        return self.links.resolve_link(target_id)

    def find_orphaned_notes(self) -> List[Note]:
        return self.links.find_orphaned_notes()

    # =========================================================================
    # Search
    # =========================================================================

    def search_notes(self, query: str) -> List[Note]:
        return self.search.search(query)

    def search_by_tag(self, tag: str) -> List[Note]:
        return self.search.search_by_tag(tag)

    # =========================================================================
    # History, statistics, export
    # =========================================================================

    def get_note_history(
        self, note_id: str, limit: Optional[int] = None
    ) -> List[HistoryEntry]:
        """Revisions associated with a note, newest first.

        Returns an empty list when the note or the repository does not
        exist yet.
        """
        note = self.repository.get(note_id)
        if note is None:
            return []
        return self.history.get_history(
            note_id,
            self.repository.note_path(note_id),
            title=note.title,
            limit=limit,
        )

    def get_statistics(self) -> NoteStatistics:
        notes = self.repository.get_all()
        unique_tags = {t.lower() for note in notes for t in note.tags}
        return NoteStatistics(
            total_notes=len(notes),
            total_links=sum(len(note.links) for note in notes),
            total_tags=sum(len(note.tags) for note in notes),
            unique_tags_count=len(unique_tags),
        )

    def export_note_to_markdown(self, note: Note) -> str:
        """Render a note as Markdown with a metadata block.

        Links are rendered as [[title]] of their targets; dangling links
        are omitted.
        """
        lines = [f"# {note.title}", "", "---"]
        lines.append(f"**ID:** {note.id}")
        lines.append(f"**Created:** {note.created_at}")
        lines.append(f"**Updated:** {note.updated_at}")
        if note.tags:
            lines.append(f"**Tags:** {', '.join(note.tags)}")
        titles = [
            f"[[{target.title}]]"
            for _, target in self.links.resolve_links(note)
            if target is not None
        ]
        if titles:
            lines.append(f"**Links:** {', '.join(titles)}")
        lines.extend(["---", "", note.content])
        return "\n".join(lines) + "\n"
