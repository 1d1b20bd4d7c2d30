"""Tests for structlog configuration and the log-file tee."""

from __future__ import annotations

import pytest
import structlog

from cartcompare.config import settings
from cartcompare.logging import (
    MAX_FIELD_CHARS,
    _TeeWriter,
    _truncate_long_fields,
    configure_logging,
)


@pytest.fixture(autouse=True)
def restore_logging():
    yield
    settings.log_file = ""
    configure_logging(level="INFO")


class TestConfigureLogging:
    def test_log_level_respected(self):
        configure_logging(level="ERROR")
        # The wrapper class name encodes the filtering level
        bound = structlog.get_logger().bind()
        assert "Error" in type(bound).__name__

    def test_level_from_settings(self, monkeypatch):
        monkeypatch.setattr(settings, "log_level", "WARNING")
        configure_logging()
        assert "Warning" in type(structlog.get_logger().bind()).__name__

    def test_unknown_level_falls_back_to_info(self):
        configure_logging(level="BOGUS")
        assert "Info" in type(structlog.get_logger().bind()).__name__

    def test_json_renderer_outside_development(self, monkeypatch):
        monkeypatch.setattr(settings, "environment", "production")
        configure_logging()
        renderer = structlog.get_config()["processors"][-1]
        assert isinstance(renderer, structlog.processors.JSONRenderer)

    def test_console_renderer_in_development(self, monkeypatch):
        monkeypatch.setattr(settings, "environment", "development")
        configure_logging()
        renderer = structlog.get_config()["processors"][-1]
        assert isinstance(renderer, structlog.dev.ConsoleRenderer)

    def test_log_file_uses_tee_writer(self, monkeypatch, tmp_path):
        monkeypatch.setattr(settings, "log_file", str(tmp_path / "compare.log"))
        configure_logging()
        factory = structlog.get_config()["logger_factory"]
        assert isinstance(factory._file, _TeeWriter)


class TestTruncateLongFields:
    def test_long_values_cut(self):
        event = {"event": "model_output", "raw": "x" * (MAX_FIELD_CHARS + 100), "n": 3}
        result = _truncate_long_fields(None, "info", event)
        assert len(result["raw"]) == MAX_FIELD_CHARS + 1
        assert result["raw"].endswith("…")
        assert result["n"] == 3

    def test_event_name_untouched(self):
        name = "e" * (MAX_FIELD_CHARS + 10)
        assert _truncate_long_fields(None, "info", {"event": name})["event"] == name


class TestTeeWriter:
    def test_writes_to_stdout_and_file(self, tmp_path, capsys):
        log_path = tmp_path / "tee.log"
        writer = _TeeWriter(str(log_path))
        writer.write("comparison_start\n")
        writer.flush()

        assert "comparison_start" in log_path.read_text()
        assert "comparison_start" in capsys.readouterr().out

    def test_bad_path_degrades_to_stdout(self, capsys):
        writer = _TeeWriter("/nonexistent/dir/impossible.log")
        writer.write("still works\n")
        writer.flush()
        captured = capsys.readouterr()
        assert "still works" in captured.out
        assert "WARNING" in captured.err
