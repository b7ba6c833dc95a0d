"""Tests for sessionkeeper logging utilities."""

import json
import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

import structlog

from sessionkeeper.logging import (
    APPLICATION_LOG,
    ERROR_LOG,
    add_log_level,
    bind_service_context,
    configure_logging,
    get_logger,
)


class TestAddLogLevel:
    """Tests for add_log_level processor."""

    def test_warn_translated(self):
        assert add_log_level(None, "warn", {})["level"] == "warning"

    def test_other_levels_pass_through(self):
        assert add_log_level(None, "error", {})["level"] == "error"


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_json_output_includes_service(self, capsys):
        configure_logging(level="INFO", json_output=True)
        bind_service_context()

        get_logger("test").info("login_succeeded", attempts=3)

        line = capsys.readouterr().err.strip().splitlines()[-1]
        data = json.loads(line)
        assert data["event"] == "login_succeeded"
        assert data["attempts"] == 3
        assert data["level"] == "info"
        assert data["service"] == "keep-alive-service"
        assert "timestamp" in data

    def test_level_filters(self, capsys):
        configure_logging(level="WARNING", json_output=True)

        get_logger("test").info("hidden")
        get_logger("test").warning("shown")

        err = capsys.readouterr().err
        assert "hidden" not in err
        assert "shown" in err

    def test_console_renderer(self):
        configure_logging(level="DEBUG", json_output=False)
        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)


class TestLogFiles:
    """Tests for rotated log files under a log directory."""

    def _flush(self) -> None:
        for handler in logging.getLogger().handlers:
            handler.flush()

    def _read_events(self, path) -> list[dict]:
        return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]

    def test_events_land_in_application_log(self, tmp_path):
        log_dir = tmp_path / "logs"
        configure_logging(level="INFO", json_output=True, log_dir=log_dir)
        bind_service_context()

        get_logger("test").info("login_succeeded", attempts=3)
        get_logger("test").debug("hidden")
        self._flush()

        events = self._read_events(log_dir / APPLICATION_LOG)
        assert [e["event"] for e in events] == ["login_succeeded"]
        assert events[0]["attempts"] == 3
        assert events[0]["level"] == "info"
        assert events[0]["service"] == "keep-alive-service"

    def test_error_log_only_gets_errors(self, tmp_path):
        configure_logging(level="DEBUG", log_dir=tmp_path)

        get_logger("test").info("cycle_started")
        get_logger("test").error("login_failed", error="down")
        self._flush()

        errors = self._read_events(tmp_path / ERROR_LOG)
        assert [e["event"] for e in errors] == ["login_failed"]
        assert len(self._read_events(tmp_path / APPLICATION_LOG)) == 2

    def test_rotates_daily_with_retention(self, tmp_path):
        configure_logging(log_dir=tmp_path, retention_days=5, error_retention_days=9)

        handlers = {
            Path(h.baseFilename).name: h
            for h in logging.getLogger().handlers
            if isinstance(h, TimedRotatingFileHandler)
        }
        assert handlers[APPLICATION_LOG].when == "MIDNIGHT"
        assert handlers[APPLICATION_LOG].backupCount == 5
        assert handlers[ERROR_LOG].backupCount == 9
        assert handlers[ERROR_LOG].level == logging.ERROR

    def test_stdlib_records_are_captured(self, tmp_path):
        configure_logging(log_dir=tmp_path)

        logging.getLogger("werkzeug").warning("address in use")
        self._flush()

        events = self._read_events(tmp_path / APPLICATION_LOG)
        assert events[-1]["event"] == "address in use"
        assert events[-1]["level"] == "warning"

    def test_console_output_still_written(self, tmp_path, capsys):
        configure_logging(json_output=True, log_dir=tmp_path)

        get_logger("test").warning("shown")

        assert "shown" in capsys.readouterr().err

    def test_reconfigure_replaces_handlers(self, tmp_path):
        configure_logging(log_dir=tmp_path)
        configure_logging(log_dir=tmp_path)
        assert len(_file_handlers()) == 2

        configure_logging()
        assert _file_handlers() == []


def _file_handlers() -> list[logging.Handler]:
    return [h for h in logging.getLogger().handlers if isinstance(h, TimedRotatingFileHandler)]
