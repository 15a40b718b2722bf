"""Jujutsu wrapper for version control operations.

Provides subprocess-based jj operations behind a narrow capability
interface (RevisionBackend) so that the note store and the history
reconciler can be exercised against canned output without a real jj.
"""

import logging
import subprocess
import time
from pathlib import Path
from typing import List, Optional, Protocol

from jjzettel.exceptions import BackendInvocationError, RepositoryNotInitializedError
from jjzettel.observability import metrics

logger = logging.getLogger(__name__)

# Marker directory created by `jj git init`
JJ_MARKER = ".jj"

# Description jj shows for revisions that have none; the log template
# below emits it explicitly so that it can be filtered out.
EMPTY_DESCRIPTION = "(no description set)"

# Field delimiter of the log template
LOG_FIELD_DELIMITER = " | "

# One revision per line: short id | first description line | author | timestamp
LOG_TEMPLATE = (
    'commit_id.short() ++ " | " ++ '
    f'if(description, description.first_line(), "{EMPTY_DESCRIPTION}") ++ " | " ++ '
    'author.email() ++ " | " ++ '
    'author.timestamp() ++ "\\n"'
)

# stderr fragments jj prints when there is no repository at the cwd
_NO_REPO_MARKERS = ("There is no jj repo", "no jj repo in")


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class RevisionBackend(Protocol):
    """Capabilities the engine needs from a version-control backend."""

    repo_path: Path

    def repo_exists(self) -> bool:
        """Return True if the versioned-directory marker exists."""
        ...

    def init(self) -> None:
        """Create the repository (and its root directory if missing)."""
        ...

    def record_revision(self, message: str) -> str:
        """Record the working copy as a new revision and return its id."""
        ...

    def query_log(self, scope: Optional[str] = None) -> str:
        """Return the revision log, oldest first, optionally scoped to a path."""
        ...


def resolve_repo_path(repo_path: Path) -> Path:
    """Resolve the repository root.

    Relative paths are resolved against the current working directory and
    absolute paths are canonicalized.
    """
    return Path(repo_path).expanduser().resolve()


class JujutsuBackend:
    """Wrapper for jj operations via subprocess.

    All commands run with the repository root as working directory so
    that path scopes given to `jj log` are interpreted relative to it.
    Calls block until jj exits; there is no timeout and no retry.
    """

    def __init__(self, repo_path: Path, jj_binary: str = "jj"):
        """Initialize the JujutsuBackend.

        Args:
            repo_path: Root of the jj repository. Not created until init().
            jj_binary: Name or path of the jj executable.
        """
        self.repo_path = resolve_repo_path(repo_path)
        self.jj_binary = jj_binary

    def _run_jj(
        self,
        args: List[str],
        cwd: Optional[Path] = None,
    ) -> subprocess.CompletedProcess:
        """Run a jj command and raise on failure.

        Args:
            args: jj command arguments (without the executable)
            cwd: Working directory. Defaults to the repository root.

        Returns:
            CompletedProcess with command results

        Raises:
            RepositoryNotInitializedError: If jj reports that there is no repo
            BackendInvocationError: If jj cannot be started or exits non-zero
        """
        cmd = [self.jj_binary] + args
        logger.debug(f"Running backend command: {' '.join(cmd)}")
        start = time.perf_counter()
        try:
            result = subprocess.run(
                cmd,
                cwd=str(cwd or self.repo_path),
                check=False,
                capture_output=True,
                text=True,
            )
        except FileNotFoundError as e:
            metrics.record_backend_call(args[0], _elapsed_ms(start), error=str(e))
            raise BackendInvocationError(
                f"Jujutsu executable not found: {self.jj_binary}",
                command=cmd,
            ) from e
        except OSError as e:
            metrics.record_backend_call(args[0], _elapsed_ms(start), error=str(e))
            raise BackendInvocationError(
                f"Failed to start jj: {e}",
                command=cmd,
            ) from e

        if result.returncode != 0:
            stderr = result.stderr.strip() if result.stderr else None
            metrics.record_backend_call(
                args[0], _elapsed_ms(start), error=stderr or f"exit {result.returncode}"
            )
            if stderr and any(marker in stderr for marker in _NO_REPO_MARKERS):
                raise RepositoryNotInitializedError(
                    f"No jj repository at {self.repo_path}",
                    command=cmd,
                    returncode=result.returncode,
                    stderr=stderr,
                )
            raise BackendInvocationError(
                f"jj command failed: {' '.join(args[:2])}",
                command=cmd,
                returncode=result.returncode,
                stderr=stderr,
            )
        metrics.record_backend_call(args[0], _elapsed_ms(start))
        return result

    def repo_exists(self) -> bool:
        """Check whether the repository marker directory exists."""
        return (self.repo_path / JJ_MARKER).is_dir()

    def init(self) -> None:
        """Initialize a jj repository (git-backed) at the repository root."""
        if not self.repo_path.exists():
            logger.info(f"Creating repository directory {self.repo_path}")
            self.repo_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"Initializing jj repository at {self.repo_path}")
        self._run_jj(["git", "init", str(self.repo_path)], cwd=self.repo_path.parent)
        logger.info("jj repository initialized")

    def record_revision(self, message: str) -> str:
        """Commit the working copy with the given description.

        jj snapshots the working copy automatically, so every file written
        under the repository root since the last revision is included.

        Returns:
            Commit id of the new revision.
        """
        self._run_jj(["commit", "-m", message])
        result = self._run_jj(
            ["log", "-r", "@-", "--no-graph", "-T", "commit_id"]
        )
        revision_id = result.stdout.strip()
        logger.debug(f"Recorded revision {revision_id[:12]}: {message}")
        return revision_id

    def query_log(self, scope: Optional[str] = None) -> str:
        """Get the revision log text, oldest first.

        Args:
            scope: Path relative to the repository root restricting the log
                to revisions touching that file. None for the full log.
        """
        args = ["log", "-r", "::@", "--no-graph", "--reversed", "-T", LOG_TEMPLATE]
        if scope:
            args.append(scope)
        return self._run_jj(args).stdout
