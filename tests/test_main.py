"""Tests for the command line entry point."""
from pathlib import Path
from unittest.mock import patch

import pytest

from jjzettel import main as main_module
from jjzettel.exceptions import ConfigurationError


class TestEntryPoint:
    def test_parse_args(self):
        args = main_module.parse_args(["--repo", "/tmp/kb", "--jj-binary", "jj2", "--log-level", "DEBUG"])
        assert args.repo == "/tmp/kb"
        assert args.jj_binary == "jj2"
        assert args.log_level == "DEBUG"

    def test_build_config_applies_overrides(self, repo_dir):
        args = main_module.parse_args(["--repo", str(repo_dir), "--jj-binary", "jj2"])
        settings = main_module.build_config(args)
        assert settings.repo_path == Path(repo_dir)
        assert settings.jj_binary == "jj2"

    def test_build_config_rejects_invalid_settings(self, monkeypatch):
        monkeypatch.setenv("JJZETTEL_NOTES_SUBDIR", "a/b")
        with pytest.raises(ConfigurationError):
            main_module.build_config(main_module.parse_args([]))

    def test_main_exits_on_invalid_config(self, monkeypatch):
        monkeypatch.setenv("JJZETTEL_NOTES_SUBDIR", "..")
        with pytest.raises(SystemExit) as exc:
            main_module.main([])
        assert exc.value.code == 2

    def test_main_runs_server(self, repo_dir):
        with patch.object(main_module, "configure_logging", return_value=repo_dir), \
                patch.object(main_module, "JjzettelMcpServer") as server_cls:
            main_module.main(["--repo", str(repo_dir)])
        settings = server_cls.call_args.kwargs["settings"]
        assert settings.repo_path == Path(repo_dir)
        server_cls.return_value.run.assert_called_once()

    def test_main_exits_when_server_fails(self, repo_dir):
        with patch.object(main_module, "configure_logging", return_value=repo_dir), \
                patch.object(main_module, "JjzettelMcpServer", side_effect=RuntimeError("no jj")):
            with pytest.raises(SystemExit) as exc:
                main_module.main(["--repo", str(repo_dir)])
        assert exc.value.code == 1
