"""Observability utilities for jjzettel.

Log records from every ``jjzettel.*`` module go to a size-rotated file
(and to stderr, since the MCP stdio transport owns stdout). Engine
operations and jj invocations are timed into an in-memory collector that
the ``jz_server_metrics`` tool reports.
"""
import logging
import re
import sys
import time
import uuid
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)

ROOT_LOGGER_NAME = "jjzettel"
LOG_FILE_NAME = "jjzettel.log"

# Used when neither the caller nor JJZETTEL_LOG_DIR names a directory
DEFAULT_LOG_DIR = Path.home() / ".jjzettel-logs"

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"


def _rotating_handler_for(package_logger: logging.Logger, log_file: Path) -> Optional[logging.Handler]:
    target = str(log_file.resolve())
    for handler in package_logger.handlers:
        if isinstance(handler, RotatingFileHandler) and handler.baseFilename == target:
            return handler
    return None


def _has_stderr_handler(package_logger: logging.Logger) -> bool:
    return any(
        type(handler) is logging.StreamHandler and handler.stream is sys.stderr
        for handler in package_logger.handlers
    )


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
    console: bool = True,
) -> Path:
    """Attach rotating-file (and optionally stderr) handlers to the package logger.

    Calling it again with the same directory does not add duplicate
    handlers, so the entry point and tests can both call it.

    Args:
        log_dir: Directory for ``jjzettel.log``; ~/.jjzettel-logs when None.
        level: Level for the package logger and its handlers.
        max_bytes: Size at which the log file is rotated.
        backup_count: Rotated files kept next to the live one.
        console: Also mirror records to stderr.

    Returns:
        The log directory actually used.
    """
    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)
    log_file = log_path / LOG_FILE_NAME

    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    package_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    new_handlers = []
    if _rotating_handler_for(package_logger, log_file) is None:
        new_handlers.append(
            RotatingFileHandler(
                log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
            )
        )
    if console and not _has_stderr_handler(package_logger):
        new_handlers.append(logging.StreamHandler(sys.stderr))

    for handler in new_handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        package_logger.addHandler(handler)

    package_logger.info(
        f"Writing logs to {log_file} (rotate at {max_bytes} bytes, keep {backup_count})"
    )
    return log_path


def _sanitize_error_message(message: Optional[str], max_length: int = 200) -> Optional[str]:
    """Make an error message safe to keep in metrics and logs.

    Replaces the home directory with ~, collapses whitespace (including
    newlines from backend stderr) and truncates with an ellipsis.
    """
    if message is None:
        return None
    home = str(Path.home())
    if home and home != "/":
        message = message.replace(home, "~")
    message = re.sub(r"\s+", " ", message).strip()
    if len(message) > max_length:
        message = message[: max_length - 3] + "..."
    return message


@dataclass
class OperationMetrics:
    """Timing and outcome counters for one engine operation or jj subcommand."""
    count: int = 0
    errors: int = 0
    total_ms: float = 0.0
    slowest_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None

    def record(self, duration_ms: float, error: Optional[str] = None) -> None:
        self.count += 1
        self.total_ms += duration_ms
        self.slowest_ms = max(self.slowest_ms, duration_ms)
        if error is not None:
            self.errors += 1
            self.last_error = _sanitize_error_message(error)
            self.last_error_at = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "errors": self.errors,
            "avg_ms": round(self.total_ms / self.count, 2) if self.count else 0.0,
            "slowest_ms": round(self.slowest_ms, 2),
            "last_error": self.last_error,
            "last_error_at": self.last_error_at.isoformat() if self.last_error_at else None,
        }


class MetricsCollector:
    """In-memory counters for the running server.

    Two families are kept apart: engine operations (one per MCP tool call,
    fed by timed_operation) and jj subcommands (``commit``, ``log``,
    ``git``), fed by the backend. Nothing is persisted; counters start
    from zero on every launch.
    """

    def __init__(self):
        self._operations: Dict[str, OperationMetrics] = defaultdict(OperationMetrics)
        self._backend: Dict[str, OperationMetrics] = defaultdict(OperationMetrics)
        self._start_time = datetime.now(timezone.utc)

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None
    ) -> None:
        """Record one engine operation.

        Args:
            operation: Operation name (e.g. 'jz_create_note')
            duration_ms: Wall time in milliseconds
            success: Whether the operation completed without raising
            error: Error message if it raised
        """
        self._operations[operation].record(
            duration_ms, None if success else (error or "unknown error")
        )

    def record_backend_call(
        self, subcommand: str, duration_ms: float, error: Optional[str] = None
    ) -> None:
        """Record one jj invocation, keyed by its first argument."""
        self._backend[subcommand].record(duration_ms, error)

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Per-operation counters, keyed by operation name."""
        return {name: m.to_dict() for name, m in self._operations.items()}

    def get_backend_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Per-subcommand counters for jj invocations."""
        return {name: m.to_dict() for name, m in self._backend.items()}

    def get_summary(self) -> Dict[str, Any]:
        total = sum(m.count for m in self._operations.values())
        failed = sum(m.errors for m in self._operations.values())
        return {
            "uptime_seconds": (datetime.now(timezone.utc) - self._start_time).total_seconds(),
            "operations": total,
            "failed_operations": failed,
            "success_rate": (total - failed) / total if total else 1.0,
            "backend_calls": sum(m.count for m in self._backend.values()),
            "backend_failures": sum(m.errors for m in self._backend.values()),
        }

    def reset(self) -> None:
        """Drop all counters (useful for testing)."""
        self._operations.clear()
        self._backend.clear()
        self._start_time = datetime.now(timezone.utc)


# Global metrics collector instance
metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context):
    """Time an engine operation, log it at DEBUG and feed the metrics.

    The yielded dict collects result info for the END log line. MCP tools
    catch their own exceptions and turn them into error strings, so a tool
    reports a handled failure by setting ``op["error"]`` to its message;
    an exception escaping the block counts as a failure too.

    Example:
        with timed_operation('jz_search_notes', query='test') as op:
            results = do_search()
            op['result_count'] = len(results)
    """
    op_id = uuid.uuid4().hex[:8]
    details = " ".join(f"{key}={value!r}" for key, value in context.items())
    logger.debug(f"{operation}[{op_id}] begin {details}".rstrip())

    info: Dict[str, Any] = {"correlation_id": op_id}
    raised: Optional[str] = None
    started = time.perf_counter()
    try:
        yield info
    except Exception as e:
        raised = str(e)
        raise
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        handled = info.pop("error", None)
        error_msg = raised if raised is not None else (str(handled) if handled else None)
        metrics.record_operation(operation, elapsed_ms, error_msg is None, error_msg)

        outcome = " ".join(
            f"{key}={value}" for key, value in info.items() if key != "correlation_id"
        )
        if error_msg is None:
            logger.debug(f"{operation}[{op_id}] ok in {elapsed_ms:.1f}ms {outcome}".rstrip())
        else:
            logger.debug(
                f"{operation}[{op_id}] failed in {elapsed_ms:.1f}ms: "
                f"{_sanitize_error_message(error_msg)}"
            )
