"""Tests for the exception hierarchy."""
from jjzettel.exceptions import (
    BackendInvocationError,
    ConfigurationError,
    ErrorCode,
    HistoryUnavailableError,
    JjzettelError,
    NoteCorruptionError,
    NoteNotFoundError,
    NoteValidationError,
    PersistenceError,
    RepositoryNotInitializedError,
    StorageError,
)


class TestExceptions:
    def test_hierarchy(self):
        assert issubclass(PersistenceError, StorageError)
        assert issubclass(NoteCorruptionError, StorageError)
        assert issubclass(RepositoryNotInitializedError, BackendInvocationError)
        for cls in (
            NoteNotFoundError,
            NoteValidationError,
            StorageError,
            BackendInvocationError,
            HistoryUnavailableError,
            ConfigurationError,
        ):
            assert issubclass(cls, JjzettelError)

    def test_note_not_found(self):
        error = NoteNotFoundError("abc")
        assert error.message == "Note not found: abc"
        assert error.code == ErrorCode.NOTE_NOT_FOUND
        assert str(error) == "[NOTE_NOT_FOUND] Note not found: abc (note_id=abc)"

    def test_to_dict(self):
        data = NoteNotFoundError("abc").to_dict()
        assert data == {
            "error": "NoteNotFoundError",
            "code": 1001,
            "code_name": "NOTE_NOT_FOUND",
            "message": "Note not found: abc",
            "details": {"note_id": "abc"},
        }

    def test_storage_error_hides_full_path(self):
        error = PersistenceError(
            "Failed to write note abc",
            operation="create",
            path="/home/someone/.jjzettel/notes/abc.json",
        )
        assert error.details["path_hint"] == "abc.json"
        assert "/home/someone" not in str(error)

    def test_corruption_error(self):
        error = NoteCorruptionError("abc", path="/x/abc.json", original_error=ValueError("bad"))
        assert error.code == ErrorCode.NOTE_CORRUPTED
        assert error.details["note_id"] == "abc"
        assert error.details["original_error"] == "bad"

    def test_backend_error_details(self):
        error = BackendInvocationError(
            "jj command failed: commit -m",
            command=["jj", "commit", "-m", "x"],
            returncode=1,
            stderr="E" * 500,
            note_id="abc",
        )
        assert error.details["command"] == "jj commit -m x"
        assert error.details["returncode"] == 1
        assert len(error.details["stderr"]) == 200
        assert error.details["note_id"] == "abc"

    def test_history_unavailable(self):
        error = HistoryUnavailableError("abc", diagnostic="stale working copy")
        assert error.code == ErrorCode.HISTORY_UNAVAILABLE
        assert error.diagnostic == "stale working copy"
        assert "abc" in error.message

    def test_no_details_str(self):
        assert str(JjzettelError("plain")) == "[VALIDATION_FAILED] plain"
