"""Link graph over the note corpus."""
import logging
from typing import List, Optional, Set, Tuple

from jjzettel.models.schema import Note, is_safe_id
from jjzettel.storage.note_repository import NoteRepository

logger = logging.getLogger(__name__)


class LinkRepository:
    """Read-side view of links between notes.

    Forward links are stored in each note's ``links`` list. Backlinks are
    never stored: they are recomputed from the full corpus on every call
    so there is no second copy of the link data to drift out of sync.
    """

    def __init__(self, note_repository: NoteRepository):
        """Initialize the link repository.

        Args:
            note_repository: Store the corpus is read from.
        """
        self.note_repository = note_repository

    def backlinks_of(self, note_id: str) -> List[Note]:
        """Get notes whose links contain note_id, most recently updated first."""
        return [
            note for note in self.note_repository.get_all() if note_id in note.links
        ]

    def resolve_link(self, note_id: str) -> Optional[Note]:
        """Resolve a link target.

        A dangling link (target deleted, never created, or not a valid ID)
        resolves to None rather than raising.
        """
        if not is_safe_id(note_id):
            logger.debug(f"Link target {note_id!r} is not a valid note ID")
            return None
        return self.note_repository.get(note_id)

    def resolve_links(self, note: Note) -> List[Tuple[str, Optional[Note]]]:
        """Pair each of a note's forward links with its resolved target."""
        return [(target_id, self.resolve_link(target_id)) for target_id in note.links]

    def find_orphaned_notes(self) -> List[Note]:
        """Find notes with no outgoing links and no incoming links."""
        notes = self.note_repository.get_all()
        linked_to: Set[str] = set()
        for note in notes:
            linked_to.update(note.links)
        return [note for note in notes if not note.links and note.id not in linked_to]
