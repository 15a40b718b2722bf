"""Tests for log parsing and history reconciliation."""
import pytest

from jjzettel.exceptions import (
    BackendInvocationError,
    HistoryUnavailableError,
    RepositoryNotInitializedError,
)
from jjzettel.models.schema import HistoryEntry
from jjzettel.services.history_service import HistoryReconciler, parse_log_output
from tests.fakes import FakeBackend


class TestParseLogOutput:
    """Tests for the line-oriented log parser."""

    def test_four_field_lines(self):
        text = (
            "aaa111 | Note: Alpha (t1) | me@example.com | 2026-01-01 10:00:00\n"
            "bbb222 | Update: Alpha (t2) | me@example.com | 2026-01-02 10:00:00\n"
        )
        assert parse_log_output(text) == [
            HistoryEntry("aaa111", "Note: Alpha (t1)", "me@example.com", "2026-01-01 10:00:00"),
            HistoryEntry("bbb222", "Update: Alpha (t2)", "me@example.com", "2026-01-02 10:00:00"),
        ]

    def test_three_field_line_has_empty_timestamp(self):
        assert parse_log_output("abc | Note: X | me") == [
            HistoryEntry("abc", "Note: X", "me", "")
        ]

    def test_malformed_lines_skipped(self):
        text = "garbage\n\nabc | only two\nok1 | Note: Fine | me | ts\n"
        assert [e.revision_id for e in parse_log_output(text)] == ["ok1"]

    def test_continuation_lines_joined(self):
        text = (
            "abc | Note: Long | me | ts\n"
            "| wrapped tail\n"
            "│ box drawing tail\n"
            "def | Update: Other | me | ts2\n"
        )
        entries = parse_log_output(text)
        assert len(entries) == 2
        assert entries[0].timestamp == "ts wrapped tail box drawing tail"
        assert entries[1].revision_id == "def"

    def test_continuation_without_record_dropped(self):
        assert parse_log_output("| orphan fragment\n") == []

    def test_delimiter_inside_message(self):
        entries = parse_log_output("abc | Note: A | B | me | ts")
        assert entries == [HistoryEntry("abc", "Note: A | B", "me", "ts")]

    def test_bare_pipe_inside_message_kept(self):
        entries = parse_log_output("abc | Note: a|b (t1) | me | ts")
        assert entries == [HistoryEntry("abc", "Note: a|b (t1)", "me", "ts")]

    def test_empty_trailing_timestamp(self):
        assert parse_log_output("abc | Note: X | me | ") == [
            HistoryEntry("abc", "Note: X", "me", "")
        ]

    def test_empty_output(self):
        assert parse_log_output("") == []


@pytest.fixture
def note_file(repo_dir):
    notes_dir = repo_dir / "notes"
    notes_dir.mkdir()
    path = notes_dir / "n1.json"
    path.write_text("{}", encoding="utf-8")
    return path


class TestHistoryReconciler:
    """Tests for HistoryReconciler."""

    def test_scoped_log_filtered_by_title(self, fake_backend, note_file):
        fake_backend.canned_logs["notes/n1.json"] = (
            "r1 | Note: Alpha (t1) | me | ts1\n"
            "r2 | (no description set) | me | ts2\n"
            "r3 | Note: Beta (t3) | me | ts3\n"
            "r4 | Update: ALPHA (t4) | me | ts4\n"
        )
        history = HistoryReconciler(fake_backend).get_history("n1", note_file, title="alpha")
        assert [e.revision_id for e in history] == ["r4", "r1"]
        assert fake_backend.queried_scopes == ["notes/n1.json"]

    def test_falls_back_to_full_log(self, fake_backend, note_file):
        fake_backend.canned_logs["notes/n1.json"] = ""
        fake_backend.canned_logs[None] = (
            "r1 | Note: Alpha (t1) | me | ts1\n"
            "r2 | Note: Gamma (t2) | me | ts2\n"
        )
        history = HistoryReconciler(fake_backend).get_history("n1", note_file, title="Alpha")
        assert [e.revision_id for e in history] == ["r1"]
        assert fake_backend.queried_scopes == ["notes/n1.json", None]

    def test_fallback_without_title_uses_operation_prefixes(self, fake_backend, note_file):
        fake_backend.canned_logs["notes/n1.json"] = "r0 | (no description set) | me | ts0\n"
        fake_backend.canned_logs[None] = (
            "r1 | Note: Alpha (t1) | me | ts1\n"
            "r2 | Manual tweak | me | ts2\n"
            "r3 | Delete note: Alpha [n1] (t3) | me | ts3\n"
        )
        history = HistoryReconciler(fake_backend).get_history("n1", note_file)
        assert [e.revision_id for e in history] == ["r3", "r1"]

    def test_scoped_failure_falls_back(self, fake_backend, note_file):
        fake_backend.fail_query["notes/n1.json"] = BackendInvocationError(
            "jj command failed: log", returncode=1, stderr="bad revset"
        )
        fake_backend.canned_logs[None] = "r1 | Note: Alpha (t1) | me | ts1\n"
        history = HistoryReconciler(fake_backend).get_history("n1", note_file, title="Alpha")
        assert [e.revision_id for e in history] == ["r1"]

    def test_full_log_failure_raises_history_unavailable(self, fake_backend, note_file):
        fake_backend.canned_logs["notes/n1.json"] = ""
        fake_backend.fail_query[None] = BackendInvocationError(
            "jj command failed: log", returncode=1, stderr="working copy is stale"
        )
        with pytest.raises(HistoryUnavailableError) as exc:
            HistoryReconciler(fake_backend).get_history("n1", note_file, title="Alpha")
        assert exc.value.note_id == "n1"
        assert exc.value.diagnostic == "working copy is stale"

    def test_uninitialized_repository_yields_empty(self, repo_dir, note_file):
        backend = FakeBackend(repo_dir, initialized=False)
        assert HistoryReconciler(backend).get_history("n1", note_file, title="Alpha") == []
        assert backend.queried_scopes == []

    def test_backend_reports_missing_repo_yields_empty(self, fake_backend, note_file):
        # Marker exists but jj itself says there is no repo
        fake_backend.fail_query["notes/n1.json"] = RepositoryNotInitializedError(
            "No jj repository", returncode=1, stderr="There is no jj repo in \".\""
        )
        assert HistoryReconciler(fake_backend).get_history("n1", note_file) == []

    def test_missing_file_yields_empty(self, fake_backend, repo_dir):
        missing = repo_dir / "notes" / "gone.json"
        assert HistoryReconciler(fake_backend).get_history("gone", missing) == []
        assert fake_backend.queried_scopes == []

    def test_file_outside_repository_yields_empty(self, fake_backend, tmp_path):
        outside = tmp_path / "elsewhere.json"
        outside.write_text("{}", encoding="utf-8")
        assert HistoryReconciler(fake_backend).get_history("x", outside) == []

    def test_newest_first_and_limit(self, fake_backend, note_file):
        fake_backend.canned_logs["notes/n1.json"] = "".join(
            f"r{i} | Update: Alpha (t{i}) | me | ts{i}\n" for i in range(1, 6)
        )
        history = HistoryReconciler(fake_backend).get_history(
            "n1", note_file, title="Alpha", limit=2
        )
        assert [e.revision_id for e in history] == ["r5", "r4"]

    def test_long_title_matches_truncated_description(self, fake_backend, note_file):
        title = "T" * 120
        fake_backend.canned_logs["notes/n1.json"] = f"r1 | Note: {'T' * 100} (t1) | me | ts1\n"
        history = HistoryReconciler(fake_backend).get_history("n1", note_file, title=title)
        assert [e.revision_id for e in history] == ["r1"]

    def test_scoped_failure_logs_stderr(self, fake_backend, note_file, caplog):
        fake_backend.fail_query["notes/n1.json"] = BackendInvocationError(
            "jj command failed: log", returncode=1, stderr="Error: bad revset"
        )
        fake_backend.canned_logs[None] = ""
        with caplog.at_level("WARNING"):
            HistoryReconciler(fake_backend).get_history("n1", note_file, title="Alpha")
        assert "Error: bad revset" in caplog.text

    def test_no_revisions_yields_empty(self, fake_backend, note_file):
        assert HistoryReconciler(fake_backend).get_history("n1", note_file, title="Alpha") == []
