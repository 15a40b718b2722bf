"""Common test fixtures for jjzettel."""

import tempfile
from pathlib import Path

import pytest

from jjzettel.config import JjzettelConfig
from jjzettel.services.zettel_service import ZettelService
from jjzettel.storage.note_repository import NoteRepository
from tests.fakes import FakeBackend


@pytest.fixture
def repo_dir():
    """Create a temporary repository root."""
    with tempfile.TemporaryDirectory() as tmp:
        yield Path(tmp).resolve()


@pytest.fixture
def test_config(repo_dir):
    """Engine configuration rooted at the temporary directory."""
    return JjzettelConfig(repo_path=repo_dir, log_dir=repo_dir / "logs")


@pytest.fixture
def fake_backend(repo_dir):
    """An initialized in-memory revision backend."""
    backend = FakeBackend(repo_dir)
    backend.init()
    return backend


@pytest.fixture
def note_repository(repo_dir, fake_backend):
    """Create a test note repository."""
    notes_dir = repo_dir / "notes"
    notes_dir.mkdir(parents=True, exist_ok=True)
    return NoteRepository(notes_dir, backend=fake_backend)


@pytest.fixture
def zettel_service(test_config, fake_backend):
    """Create an initialized ZettelService over the fake backend."""
    service = ZettelService(settings=test_config, backend=fake_backend)
    service.initialize()
    return service
