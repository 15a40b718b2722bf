"""Exceptions raised by the jjzettel engine.

Every error carries an ErrorCode and a details dict so that the MCP layer
can log it with context and clients can tell "note missing" from "jj
failed" without parsing messages. Backend errors keep jj's stderr.
"""
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Note errors (1xxx)
    NOTE_NOT_FOUND = 1001
    NOTE_VALIDATION_FAILED = 1002
    NOTE_CORRUPTED = 1003

    # Link errors (2xxx)
    LINK_INVALID = 2001

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_DELETE_FAILED = 4003

    # Backend errors (5xxx)
    BACKEND_INVOCATION_FAILED = 5001
    BACKEND_NOT_INITIALIZED = 5002
    HISTORY_UNAVAILABLE = 5003

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001
    PATH_TRAVERSAL_DETECTED = 7005


class JjzettelError(Exception):
    """Base exception for all jjzettel errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class NoteNotFoundError(JjzettelError):
    """Raised when an operation requires a note that does not exist."""

    def __init__(self, note_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"Note not found: {note_id}",
            code=ErrorCode.NOTE_NOT_FOUND,
            details={"note_id": note_id}
        )
        self.note_id = note_id


class NoteValidationError(JjzettelError):
    """Raised when note data fails validation."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.NOTE_VALIDATION_FAILED
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]  # Truncate for safety

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value


class StorageError(JjzettelError):
    """Raised for storage/persistence errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if path:
            # Don't expose full paths in error messages
            details["path_hint"] = path.replace("\\", "/").split("/")[-1]
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.path = path
        self.original_error = original_error


class PersistenceError(StorageError):
    """Raised when a note file cannot be written, read or removed."""


class NoteCorruptionError(StorageError):
    """Raised when a note file exists but cannot be deserialized.

    Attributes:
        note_id: ID derived from the corrupt file's name
    """

    def __init__(
        self,
        note_id: str,
        path: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            f"Note file for '{note_id}' is corrupt",
            operation="deserialize",
            path=path,
            code=ErrorCode.NOTE_CORRUPTED,
            original_error=original_error
        )
        self.note_id = note_id
        self.details["note_id"] = note_id


class BackendInvocationError(JjzettelError):
    """Raised when the version-control backend cannot be run or fails.

    A note's file write always happens before the backend is asked to
    record a revision, so this error means the revision is missing, not
    that note content was lost.

    Attributes:
        command: The command line that failed (if applicable)
        returncode: Exit code of the backend process (if applicable)
        stderr: Diagnostic output of the backend (if applicable)
        note_id: Note whose revision could not be recorded (if applicable)
    """

    def __init__(
        self,
        message: str,
        command: Optional[List[str]] = None,
        returncode: Optional[int] = None,
        stderr: Optional[str] = None,
        note_id: Optional[str] = None,
        code: ErrorCode = ErrorCode.BACKEND_INVOCATION_FAILED
    ):
        details: Dict[str, Any] = {}
        if command:
            details["command"] = " ".join(command)
        if returncode is not None:
            details["returncode"] = returncode
        if stderr:
            details["stderr"] = stderr[:200]
        if note_id:
            details["note_id"] = note_id

        super().__init__(message, code=code, details=details)
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        self.note_id = note_id


class RepositoryNotInitializedError(BackendInvocationError):
    """Raised when the backend reports that no repository exists at the root."""

    def __init__(
        self,
        message: str,
        command: Optional[List[str]] = None,
        returncode: Optional[int] = None,
        stderr: Optional[str] = None
    ):
        super().__init__(
            message,
            command=command,
            returncode=returncode,
            stderr=stderr,
            code=ErrorCode.BACKEND_NOT_INITIALIZED
        )


class HistoryUnavailableError(JjzettelError):
    """Raised when the revision log exists but could not be retrieved."""

    def __init__(
        self,
        note_id: str,
        diagnostic: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details: Dict[str, Any] = {"note_id": note_id}
        if diagnostic:
            details["diagnostic"] = diagnostic[:200]
        super().__init__(
            f"History unavailable for note '{note_id}'",
            code=ErrorCode.HISTORY_UNAVAILABLE,
            details=details
        )
        self.note_id = note_id
        self.diagnostic = diagnostic
        self.original_error = original_error


class ConfigurationError(JjzettelError):
    """Raised for configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        code: ErrorCode = ErrorCode.CONFIG_INVALID
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, code=code, details=details)
        self.config_key = config_key
