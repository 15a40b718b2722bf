"""Fake revision backend for testing.

FakeBackend implements the RevisionBackend capabilities in memory:
revisions are appended to a list and rendered back as the same
``id | message | author | timestamp`` text jj produces, oldest first.
Tests can also hand it canned log text or make any call fail.

Design principles:
- Never spawn jj in unit tests; the jj wrapper has its own tests that
  patch subprocess.run
- Deterministic: revision ids are sequential ("rev0001", "rev0002", ...)
- Inspectable: recorded messages and queried scopes are kept as lists
"""
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from jjzettel.exceptions import BackendInvocationError, RepositoryNotInitializedError


class FakeBackend:
    """In-memory RevisionBackend."""

    def __init__(self, repo_path: Path, initialized: bool = True) -> None:
        self.repo_path = Path(repo_path).resolve()
        self.initialized = initialized
        self.init_count = 0
        # (revision_id, message), oldest first
        self.revisions: List[Tuple[str, str]] = []
        self.queried_scopes: List[Optional[str]] = []
        # Canned log text per scope (None = full log); overrides revisions
        self.canned_logs: Dict[Optional[str], str] = {}
        self.fail_record: Optional[BackendInvocationError] = None
        self.fail_query: Dict[Optional[str], BackendInvocationError] = {}

    def repo_exists(self) -> bool:
        return self.initialized

    def init(self) -> None:
        self.repo_path.mkdir(parents=True, exist_ok=True)
        (self.repo_path / ".jj").mkdir(exist_ok=True)
        self.initialized = True
        self.init_count += 1

    def record_revision(self, message: str) -> str:
        if self.fail_record is not None:
            raise self.fail_record
        revision_id = f"rev{len(self.revisions) + 1:04d}"
        self.revisions.append((revision_id, message))
        return revision_id

    @property
    def messages(self) -> List[str]:
        return [message for _, message in self.revisions]

    def query_log(self, scope: Optional[str] = None) -> str:
        self.queried_scopes.append(scope)
        if not self.initialized:
            raise RepositoryNotInitializedError(
                "No jj repository", stderr="Error: There is no jj repo in \".\""
            )
        if scope in self.fail_query:
            raise self.fail_query[scope]
        if scope in self.canned_logs:
            return self.canned_logs[scope]
        lines = [
            f"{revision_id} | {message} | test@example.com | 2026-01-01 00:00:{i:02d}"
            for i, (revision_id, message) in enumerate(self.revisions)
        ]
        return "\n".join(lines) + ("\n" if lines else "")
