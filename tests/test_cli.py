"""Tests for the command-line interface."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from lsprelay import logging as relay_logging
from lsprelay.cli import apply_overrides, create_parser, run_cli
from lsprelay.config import Config, LoggingConfig
from lsprelay.config.schema import DEFAULT_CLIENT_LOG


class TestParser:
    """Tests for argument parsing."""

    def test_server_args(self) -> None:
        parsed = create_parser().parse_args(["-vv", "server", "--host", "0.0.0.0", "--port", "4000"])
        assert parsed.mode == "server"
        assert parsed.verbose == 2
        assert parsed.host == "0.0.0.0"
        assert parsed.port == 4000

    def test_client_args(self) -> None:
        parsed = create_parser().parse_args(
            ["client", "--workspaces", "ws.yaml", "--cwd", "/src/app"]
        )
        assert parsed.mode == "client"
        assert parsed.workspaces == Path("ws.yaml")
        assert parsed.cwd == Path("/src/app")

    def test_no_mode(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert run_cli([]) == 1


class TestApplyOverrides:
    """CLI flags override the loaded config."""

    def test_server_address(self) -> None:
        parsed = create_parser().parse_args(["server", "--port", "4000"])
        config = apply_overrides(Config(), parsed)
        assert config.server.port == 4000
        assert config.server.host == "127.0.0.1"
        assert config.logging.file is None

    def test_client_defaults_to_log_file(self) -> None:
        parsed = create_parser().parse_args(["client", "--host", "devbox"])
        config = apply_overrides(Config(), parsed)
        assert config.client.host == "devbox"
        assert config.logging.file == DEFAULT_CLIENT_LOG

    def test_client_keeps_configured_log_file(self) -> None:
        parsed = create_parser().parse_args(["--log-file", "/tmp/mine.log", "client"])
        config = apply_overrides(Config(), parsed)
        assert config.logging.file == "/tmp/mine.log"

    def test_log_level_clears_verbose(self) -> None:
        parsed = create_parser().parse_args(["--log-level", "debug", "server"])
        config = apply_overrides(Config(logging=LoggingConfig(verbose=4)), parsed)
        assert config.logging.level == "debug"
        assert config.logging.verbose is None

    def test_client_workspaces_file(self) -> None:
        parsed = create_parser().parse_args(["client", "--workspaces", "ws.yaml"])
        config = apply_overrides(Config(), parsed)
        assert config.client.workspaces_file == Path("ws.yaml")


class TestRunCli:
    """Tests for run_cli error paths."""

    def test_bad_config_file(self, tmp_path: Path) -> None:
        assert run_cli(["--config", str(tmp_path / "missing.yaml"), "server"]) == 1

    def test_client_without_matching_workspace(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(relay_logging, "_initialized", True)
        ws_file = tmp_path / "ws.yaml"
        ws_file.write_text("- {root: /nowhere, command: x, args: []}\n", encoding="utf-8")

        code = run_cli(["client", "--workspaces", str(ws_file), "--cwd", str(tmp_path)])

        assert code == 1


class TestLogging:
    """Tests for log level resolution and handler setup."""

    def test_default_is_info(self) -> None:
        assert relay_logging.resolve_level(None) == logging.INFO

    def test_verbose_beats_level(self) -> None:
        config = LoggingConfig(level="error", verbose=4)
        assert relay_logging.resolve_level(config) == relay_logging.TRACE

    def test_level_names(self) -> None:
        assert relay_logging.resolve_level(LoggingConfig(level="verbose")) == relay_logging.VERBOSE
        assert relay_logging.resolve_level(LoggingConfig(level="warn")) == logging.WARNING

    def test_verbosity_map(self) -> None:
        assert relay_logging.resolve_level(LoggingConfig(verbose=0)) == logging.ERROR
        assert relay_logging.resolve_level(LoggingConfig(verbose=2)) == logging.INFO

    def test_child_logger_names(self) -> None:
        assert relay_logging.get_logger("backend").name == "lsprelay.backend"
        assert relay_logging.get_logger().name == "lsprelay"

    def test_unwritable_log_file_falls_back_to_stderr(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(relay_logging, "_initialized", False)
        monkeypatch.setattr(relay_logging.logger, "handlers", [])
        monkeypatch.setattr(relay_logging.logger, "level", logging.NOTSET)

        relay_logging.setup_logging(LoggingConfig(file=str(tmp_path / "missing" / "x.log")))

        [handler] = relay_logging.logger.handlers
        assert type(handler) is logging.StreamHandler
        assert not (tmp_path / "missing").exists()
