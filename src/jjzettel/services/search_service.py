"""Service for searching notes by substring or tag."""

import logging
from collections import Counter
from typing import Dict, List

from jjzettel.models.schema import Note
from jjzettel.storage.note_repository import NoteRepository

logger = logging.getLogger(__name__)

TAG_QUERY_MARKER = "#"


class SearchService:
    """Substring and tag search over the note corpus.

    Every query scans the notes returned by the repository; no inverted
    index is kept. Results preserve the repository's listing order (most
    recently updated first).
    """

    def __init__(self, note_repository: NoteRepository):
        self.note_repository = note_repository

    def search(self, query: str) -> List[Note]:
        """Search notes by title/content, or by tag when query starts with '#'.

        A '#' query whose tag part is empty after trimming returns the full,
        unfiltered corpus.
        """
        notes = self.note_repository.get_all()

        if query.startswith(TAG_QUERY_MARKER):
            tag = query.lstrip(TAG_QUERY_MARKER).strip()
            if not tag:
                return notes
            return self._filter_by_tag(notes, tag)

        query_lower = query.lower()
        results = [
            note
            for note in notes
            if query_lower in note.title.lower() or query_lower in note.content.lower()
        ]
        logger.debug(f"Search {query!r} matched {len(results)} of {len(notes)} notes")
        return results

    def search_by_tag(self, tag: str) -> List[Note]:
        """Find notes carrying the tag, compared case-insensitively."""
        return self._filter_by_tag(self.note_repository.get_all(), tag.strip())

    @staticmethod
    def _filter_by_tag(notes: List[Note], tag: str) -> List[Note]:
        return [note for note in notes if note.has_tag(tag)]

    def get_tags_with_counts(self) -> Dict[str, int]:
        """Count notes per tag (lower-cased), most used first."""
        counts: Counter = Counter()
        for note in self.note_repository.get_all():
            counts.update({t.lower() for t in note.tags})
        return dict(counts.most_common())
