"""Unit tests for structlog configuration and run-scoped context."""

from __future__ import annotations

import io
import json
import logging
import sys

import pytest
import structlog

from src.utils.logging import configure_logging, get_logger, run_context


@pytest.fixture(autouse=True)
def _restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    library_levels = {name: logging.getLogger(name).level for name in ("httpx", "httpcore")}
    was_configured, config = structlog.is_configured(), structlog.get_config()
    yield
    if was_configured:
        structlog.configure(**config)
    else:
        structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    root.handlers[:] = handlers
    root.setLevel(level)
    for name, library_level in library_levels.items():
        logging.getLogger(name).setLevel(library_level)


def _json_lines(stream: io.StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line.strip()]


class TestConfigureLogging:
    def test_json_lines_go_to_given_stream(self) -> None:
        stream = io.StringIO()
        configure_logging(json_output=True, stream=stream)

        get_logger("release.test").info("artist_scanned", artist_id="a1")

        (line,) = _json_lines(stream)
        assert line["event"] == "artist_scanned"
        assert line["level"] == "info"
        assert line["logger_name"] == "release.test"
        assert line["artist_id"] == "a1"
        assert "timestamp" in line

    def test_level_filters_lower_messages(self) -> None:
        stream = io.StringIO()
        configure_logging(log_level="warning", json_output=True, stream=stream)

        logger = get_logger("release.test")
        logger.info("hidden")
        logger.warning("shown")

        assert [line["event"] for line in _json_lines(stream)] == ["shown"]

    def test_stdlib_records_share_stream_and_format(self) -> None:
        stream = io.StringIO()
        configure_logging(json_output=True, stream=stream)

        logging.getLogger("some.library").warning("connection reset")

        (line,) = _json_lines(stream)
        assert line["event"] == "connection reset"
        assert line["level"] == "warning"

    def test_console_renderer_writes_plain_text(self) -> None:
        stream = io.StringIO()
        configure_logging(stream=stream)

        get_logger("release.test").info("batch_started", batch=1)

        output = stream.getvalue()
        assert "batch_started" in output
        assert "batch=1" in output
        # StringIO is not a terminal, so no colour codes.
        assert "\x1b[" not in output

    def test_defaults_to_stderr(self, monkeypatch: pytest.MonkeyPatch) -> None:
        stream = io.StringIO()
        monkeypatch.setattr(sys, "stderr", stream)
        configure_logging(json_output=True)

        get_logger("release.test").info("to_stderr")

        assert _json_lines(stream)[0]["event"] == "to_stderr"

    @pytest.mark.parametrize(
        ("log_level", "expected"),
        [("INFO", logging.WARNING), ("DEBUG", logging.NOTSET)],
    )
    def test_http_client_logs_only_at_debug(self, log_level: str, expected: int) -> None:
        configure_logging(log_level=log_level, stream=io.StringIO())

        assert logging.getLogger("httpx").level == expected
        assert logging.getLogger("httpcore").level == expected


class TestRunContext:
    def test_binds_run_id_inside_block_only(self) -> None:
        stream = io.StringIO()
        configure_logging(json_output=True, stream=stream)
        logger = get_logger("release.test")

        with run_context("run-7", window_days=10):
            logger.info("inside")
            logging.getLogger("httpx").warning("slow response")
        logger.info("outside")

        inside, stdlib_line, outside = _json_lines(stream)
        assert inside["run_id"] == "run-7"
        assert inside["window_days"] == 10
        assert stdlib_line["run_id"] == "run-7"
        assert "run_id" not in outside

    def test_explicit_field_wins_over_bound_value(self) -> None:
        stream = io.StringIO()
        configure_logging(json_output=True, stream=stream)

        with run_context("run-7"):
            get_logger("release.test").info("override", run_id="other")

        assert _json_lines(stream)[0]["run_id"] == "other"
