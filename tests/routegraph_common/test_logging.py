"""Tests for routegraph_common.logging module."""

from __future__ import annotations

import io
import json
import logging

from routegraph_common.logging import (
    CorrelationContext,
    JsonFormatter,
    LoggerAdapter,
    bind,
    get_correlation_id,
    get_logger,
    set_correlation_id,
    with_fields,
)


class _ListHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


def _capture(name: str) -> tuple[LoggerAdapter, _ListHandler]:
    logger = get_logger(name)
    handler = _ListHandler()
    logger.logger.addHandler(handler)
    logger.logger.setLevel(logging.DEBUG)
    return logger, handler


class TestGetLogger:
    """Tests for get_logger function."""

    def test_returns_logger_adapter(self) -> None:
        """get_logger returns a LoggerAdapter instance."""
        assert isinstance(get_logger(__name__), LoggerAdapter)

    def test_logger_has_null_handler(self) -> None:
        """Logger has NullHandler when no handlers configured."""
        logger = get_logger(f"{__name__}.test_null_handler")
        handlers = logger.logger.handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.NullHandler)


class TestLoggerAdapter:
    """Tests for structured field injection."""

    def test_status_inferred_from_level(self) -> None:
        """Warnings carry status=warning and a default operation."""
        logger, handler = _capture(f"{__name__}.status")
        logger.warning("careful")
        record = handler.records[-1]
        assert record.status == "warning"  # type: ignore[attr-defined]
        assert record.operation == "unknown"  # type: ignore[attr-defined]

    def test_explicit_fields_win(self) -> None:
        """Fields passed at the call site override bound fields."""
        logger, handler = _capture(f"{__name__}.explicit")
        bound = bind(logger, profile="car", operation="update")
        bound.info("hello", extra={"operation": "extract"})
        record = handler.records[-1]
        assert record.profile == "car"  # type: ignore[attr-defined]
        assert record.operation == "extract"  # type: ignore[attr-defined]

    def test_log_failure_records_exception_type(self) -> None:
        """log_failure adds error type and detail."""
        logger, handler = _capture(f"{__name__}.failure")
        logger.log_failure("boom", exception=ValueError("bad"), operation="activate")
        record = handler.records[-1]
        assert record.levelno == logging.ERROR
        assert record.error_type == "ValueError"  # type: ignore[attr-defined]
        assert record.status == "error"  # type: ignore[attr-defined]

    def test_log_io_records_size(self) -> None:
        """log_io records the transfer size."""
        logger, handler = _capture(f"{__name__}.io")
        logger.log_io("copied", operation="download", io_type="write", size_bytes=42)
        record = handler.records[-1]
        assert record.size_bytes == 42  # type: ignore[attr-defined]
        assert record.io_type == "write"  # type: ignore[attr-defined]


class TestJsonFormatter:
    """Tests for JsonFormatter class."""

    def test_formats_as_json(self) -> None:
        """JsonFormatter produces one JSON object with the structured fields."""
        stream = io.StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(JsonFormatter())
        logger = logging.getLogger(f"{__name__}.test_json")
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)

        logger.info("Test message", extra={"operation": "test", "profile": "car"})
        data = json.loads(stream.getvalue().strip())
        assert data["message"] == "Test message"
        assert data["operation"] == "test"
        assert data["profile"] == "car"
        assert {"ts", "level", "name"} <= data.keys()

    def test_includes_correlation_id_from_context(self) -> None:
        """JsonFormatter includes correlation_id from contextvars."""
        stream = io.StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(JsonFormatter())
        logger = logging.getLogger(f"{__name__}.test_correlation")
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)

        set_correlation_id("cycle-123")
        try:
            logger.info("Test message")
        finally:
            set_correlation_id(None)
        assert json.loads(stream.getvalue().strip())["correlation_id"] == "cycle-123"


class TestCorrelationContext:
    """Tests for CorrelationContext and with_fields."""

    def test_restores_previous_id(self) -> None:
        """The previous correlation id is restored on exit."""
        set_correlation_id("outer")
        try:
            with CorrelationContext("inner"):
                assert get_correlation_id() == "inner"
            assert get_correlation_id() == "outer"
        finally:
            set_correlation_id(None)

    def test_with_fields_binds_profile(self) -> None:
        """with_fields binds fields to every record in the block."""
        logger, handler = _capture(f"{__name__}.with_fields")
        with with_fields(logger, profile="bike", correlation_id="abc") as log:
            log.info("inside")
            assert get_correlation_id() == "abc"
        record = handler.records[-1]
        assert record.profile == "bike"  # type: ignore[attr-defined]
        assert record.correlation_id == "abc"  # type: ignore[attr-defined]
        assert get_correlation_id() is None
