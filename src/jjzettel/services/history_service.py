"""Reconcile the backend's revision log with individual notes.

The backend only knows about revisions and their free-text descriptions;
it has no notion of which note a revision belongs to. A note's history
is recovered in two tiers:

1. Ask for the log scoped to the note's file and keep the revisions whose
   description mentions the note's title.
2. If that yields nothing, scan the full log with the same title filter
   (or, without a title, the operation prefixes the note store writes).

Matching on the title is approximate: notes whose titles overlap share
revisions, and revisions recorded under an earlier title are lost once
the note is renamed.
"""

import logging
from pathlib import Path
from typing import Iterable, List, Optional

from jjzettel.exceptions import (
    BackendInvocationError,
    HistoryUnavailableError,
    RepositoryNotInitializedError,
)
from jjzettel.models.schema import HistoryEntry
from jjzettel.storage.jj_wrapper import (
    EMPTY_DESCRIPTION,
    LOG_FIELD_DELIMITER,
    RevisionBackend,
)
from jjzettel.storage.note_repository import OPERATION_PREFIXES, sanitize_commit_title

logger = logging.getLogger(__name__)

# Leading fragments marking a line wrapped from the previous record
CONTINUATION_FRAGMENTS = ("|", "│")


def _normalize_continuations(lines: Iterable[str]) -> List[str]:
    """Join wrapped continuation lines back onto the record they belong to."""
    records: List[str] = []
    for raw in lines:
        line = raw.rstrip("\r\n")
        if not line.strip():
            continue
        stripped = line.lstrip()
        fragment = next(
            (f for f in CONTINUATION_FRAGMENTS if stripped.startswith(f)), None
        )
        if fragment is None:
            records.append(line.strip())
            continue
        remainder = stripped[len(fragment):].strip()
        if not records:
            logger.debug(f"Dropping continuation line without a record: {line!r}")
            continue
        if remainder:
            records[-1] = f"{records[-1]} {remainder}"
    return records


def _parse_record(record: str) -> Optional[HistoryEntry]:
    # Records are stripped, so an empty trailing field leaves a bare " |"
    fields = [f.strip() for f in f"{record} ".split(LOG_FIELD_DELIMITER)]
    if len(fields) < 3 or not fields[0]:
        logger.debug(f"Skipping malformed log line: {record!r}")
        return None
    if len(fields) == 3:
        revision_id, message, author = fields
        return HistoryEntry(revision_id, message, author, "")
    # The message may itself contain the delimiter
    message = LOG_FIELD_DELIMITER.join(fields[1:-2])
    return HistoryEntry(fields[0], message, fields[-2], fields[-1])


def parse_log_output(text: str) -> List[HistoryEntry]:
    """Parse line-oriented ``id | message | author [| timestamp]`` log text.

    Wrapped continuation lines are normalized first; malformed lines are
    skipped. Entries keep the order in which the backend emitted them.
    """
    entries = []
    for record in _normalize_continuations(text.splitlines()):
        entry = _parse_record(record)
        if entry is not None:
            entries.append(entry)
    return entries


def _has_description(entry: HistoryEntry) -> bool:
    message = entry.message.strip()
    return bool(message) and message != EMPTY_DESCRIPTION


def _matches_title(entry: HistoryEntry, title: str) -> bool:
    """Match against the title as the note store wrote it into the description."""
    return title.lower() in entry.message.lower()


def _has_operation_prefix(entry: HistoryEntry) -> bool:
    return any(entry.message.startswith(f"{prefix}:") for prefix in OPERATION_PREFIXES)


class HistoryReconciler:
    """Produce a note's revision history, newest first."""

    def __init__(self, backend: RevisionBackend):
        self.backend = backend

    def _relative_scope(self, file_path: Path) -> Optional[str]:
        try:
            rel_path = Path(file_path).resolve().relative_to(self.backend.repo_path)
        except ValueError:
            logger.warning(f"File {file_path} is not under repo {self.backend.repo_path}")
            return None
        return rel_path.as_posix()

    @staticmethod
    def _filter(
        entries: List[HistoryEntry], title: Optional[str], fallback_prefixes: bool
    ) -> List[HistoryEntry]:
        kept = [e for e in entries if _has_description(e)]
        if title:
            return [e for e in kept if _matches_title(e, title)]
        if fallback_prefixes:
            return [e for e in kept if _has_operation_prefix(e)]
        return kept

    def get_history(
        self,
        note_id: str,
        file_path: Path,
        title: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[HistoryEntry]:
        """Get the revisions associated with a note.

        Args:
            note_id: ID of the note (used for diagnostics)
            file_path: Path of the note's file
            title: Current title of the note, if known
            limit: Maximum number of entries to return

        Returns:
            HistoryEntry list, newest first. Empty when nothing has been
            recorded yet or the repository is not initialized.

        Raises:
            HistoryUnavailableError: If the log could not be retrieved for
                any other reason.
        """
        # Revisions carry the sanitized title, not the raw one
        title = sanitize_commit_title(title).strip() if title else None

        if not self.backend.repo_exists():
            logger.debug(f"No repository at {self.backend.repo_path}; empty history")
            return []
        if not Path(file_path).is_file():
            logger.debug(f"Note file for {note_id} not found; empty history")
            return []
        scope = self._relative_scope(file_path)
        if scope is None:
            return []

        entries: List[HistoryEntry] = []
        try:
            entries = self._filter(
                parse_log_output(self.backend.query_log(scope)),
                title,
                fallback_prefixes=False,
            )
        except RepositoryNotInitializedError:
            return []
        except BackendInvocationError as e:
            logger.warning(
                f"Scoped log query failed for note {note_id}: {e}; "
                f"stderr={e.stderr or '<empty>'}"
            )

        if not entries:
            logger.info(f"No scoped history for note {note_id}; scanning full log")
            try:
                entries = self._filter(
                    parse_log_output(self.backend.query_log(None)),
                    title,
                    fallback_prefixes=True,
                )
            except RepositoryNotInitializedError:
                return []
            except BackendInvocationError as e:
                raise HistoryUnavailableError(
                    note_id, diagnostic=e.stderr or e.message, original_error=e
                ) from e

        entries.reverse()
        if limit is not None:
            entries = entries[:limit]
        return entries
