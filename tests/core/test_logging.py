from __future__ import annotations

import json
import logging
import sys

from exam_service.core.logging import _ContainerFormatter, _JsonFormatter, setup_logging


def _record(msg: str = "test message", level: int = logging.INFO, **extra: object):
    record = logging.LogRecord(
        name="exam_service.services.attempt_service",
        level=level,
        pathname="attempt_service.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


# ---- setup_logging ----


def test_setup_logging_sets_root_level() -> None:
    setup_logging("debug")
    assert logging.getLogger().level == logging.DEBUG

    setup_logging("warning")
    assert logging.getLogger().level == logging.WARNING


def test_setup_logging_defaults_to_info_for_unknown_level() -> None:
    setup_logging("nonexistent")
    assert logging.getLogger().level == logging.INFO


def test_setup_logging_quiets_sql_echo_at_debug() -> None:
    setup_logging("debug")
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
    assert logging.getLogger("uvicorn").level == logging.WARNING


def test_setup_logging_allows_uvicorn_at_error() -> None:
    setup_logging("error")
    assert logging.getLogger("uvicorn").level == logging.ERROR


def test_setup_logging_json_installs_json_formatter() -> None:
    setup_logging("info", json_format=True)
    (handler,) = logging.getLogger().handlers
    assert isinstance(handler.formatter, _JsonFormatter)
    setup_logging("info")


# ---- formatters ----


def test_container_formatter_is_single_line_text() -> None:
    output = _ContainerFormatter().format(_record("attempt submitted"))
    assert "INFO" in output
    assert "exam_service.services.attempt_service" in output
    assert "attempt submitted" in output
    assert "[attempt_service.py:42]" not in output


def test_container_formatter_adds_location_for_warnings() -> None:
    output = _ContainerFormatter().format(_record("rejected", level=logging.WARNING))
    assert "[attempt_service.py:42]" in output


def test_json_formatter_includes_scoring_context() -> None:
    output = _JsonFormatter().format(
        _record(request_id="abc-123", exam_id="e-1", attempt_id="a-1", duration_ms=12.5)
    )
    parsed = json.loads(output)
    assert parsed["message"] == "test message"
    assert parsed["level"] == "INFO"
    assert parsed["request_id"] == "abc-123"
    assert parsed["exam_id"] == "e-1"
    assert parsed["attempt_id"] == "a-1"
    assert parsed["duration_ms"] == 12.5


def test_json_formatter_omits_unset_context() -> None:
    parsed = json.loads(_JsonFormatter().format(_record()))
    assert "exam_id" not in parsed
    assert "request_id" not in parsed


def test_json_formatter_includes_exception_info() -> None:
    try:
        raise ValueError("test error")
    except ValueError:
        record = _record("Something failed", level=logging.ERROR)
        record.exc_info = sys.exc_info()
        output = _JsonFormatter().format(record)

    parsed = json.loads(output)
    assert "ValueError: test error" in parsed["exception"]
