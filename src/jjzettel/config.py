"""Configuration module for jjzettel."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from jjzettel import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config: survives reinstalls, lives next to the default repo
_USER_ENV = Path.home() / ".jjzettel.env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

DEFAULT_REPO_DIRNAME = ".jjzettel"


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def default_repo_path() -> Path:
    """Return the repository root used when JJZETTEL_REPO is unset."""
    return Path.home() / DEFAULT_REPO_DIRNAME


class JjzettelConfig(BaseModel):
    """Configuration for the jjzettel engine and server."""

    # Root of the Jujutsu repository holding the knowledge base
    repo_path: Path = Field(
        default_factory=lambda: (
            Path(os.getenv("JJZETTEL_REPO"))
            if os.getenv("JJZETTEL_REPO")
            else default_repo_path()
        )
    )
    # Note files live in <repo_path>/<notes_subdir>/<id>.json
    notes_subdir: str = Field(
        default_factory=lambda: os.getenv("JJZETTEL_NOTES_SUBDIR", "notes")
    )
    # Jujutsu executable (name on PATH or absolute path)
    jj_binary: str = Field(
        default_factory=lambda: os.getenv("JJZETTEL_JJ_BINARY", "jj")
    )
    # When True, a corrupt note file aborts list_notes() instead of being skipped
    strict_listing: bool = Field(
        default_factory=lambda: _env_flag("JJZETTEL_STRICT_LISTING")
    )
    # Rotating log files
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("JJZETTEL_LOG_DIR"))
            if os.getenv("JJZETTEL_LOG_DIR")
            else None
        )
    )
    # Server configuration
    server_name: str = Field(default=os.getenv("JJZETTEL_SERVER_NAME", "jjzettel"))
    server_version: str = Field(default=__version__)

    # Environment-sourced defaults go through the same validators
    model_config = {"validate_default": True}

    @field_validator("notes_subdir")
    @classmethod
    def validate_notes_subdir(cls, v: str) -> str:
        """The notes directory must be a single path component."""
        if not v or not v.strip():
            raise ValueError("notes_subdir cannot be empty")
        if "/" in v or "\\" in v or v in (".", ".."):
            raise ValueError("notes_subdir must be a single directory name")
        return v

    def get_repo_path(self) -> Path:
        """Resolve the repository root.

        Relative paths are resolved against the current working directory,
        absolute ones are canonicalized.
        """
        return self.repo_path.expanduser().resolve()

    def get_notes_dir(self) -> Path:
        """Get the absolute path of the directory holding note files."""
        return self.get_repo_path() / self.notes_subdir
