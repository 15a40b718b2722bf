"""Storage layer for jjzettel."""

from jjzettel.storage.jj_wrapper import JujutsuBackend, RevisionBackend
from jjzettel.storage.link_repository import LinkRepository
from jjzettel.storage.note_repository import NoteRepository

__all__ = [
    "RevisionBackend",
    "JujutsuBackend",
    "NoteRepository",
    "LinkRepository",
]
