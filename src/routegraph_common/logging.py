"""Structured logging helpers with correlation IDs and profile context.

This module provides a LoggerAdapter that injects the structured fields used
across routegraph (``correlation_id``, ``operation``, ``status``,
``profile``) and module-level loggers with a NullHandler so the library never
configures handlers on its own. Applications (the ``routegraph`` CLI, or the
hosting routing service) call :func:`setup_logging` once at startup.

Examples
--------
>>> from routegraph_common.logging import get_logger, with_fields
>>> logger = get_logger(__name__)
>>> with with_fields(logger, profile="car", operation="update_check") as log:
...     log.info("Checking repository")
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Any, Self, cast

if TYPE_CHECKING:
    from collections.abc import Mapping
    from types import TracebackType

__all__ = [
    "CorrelationContext",
    "JsonFormatter",
    "LoggerAdapter",
    "bind",
    "get_correlation_id",
    "get_logger",
    "set_correlation_id",
    "setup_logging",
    "with_fields",
]

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "routegraph_correlation_id", default=None
)

STRUCTURED_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "operation",
    "status",
    "profile",
    "duration_ms",
)

_RESERVED_RECORD_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
        "ts",
    }
)


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Formats log records as a single JSON object per line with timestamp,
    level, logger name, message and the structured fields. The correlation id
    is taken from the context variable when the record does not carry one.
    Exceptions are rendered into an ``exc_info`` string field.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Parameters
        ----------
        record : logging.LogRecord
            Log record to format. May include extra fields in record.__dict__.

        Returns
        -------
        str
            JSON-encoded log entry.
        """
        data: dict[str, object] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        for field in STRUCTURED_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                data[field] = value

        if "correlation_id" not in data:
            ctx_correlation_id = _correlation_id.get()
            if ctx_correlation_id is not None:
                data["correlation_id"] = ctx_correlation_id

        for key, value in record.__dict__.items():
            if (
                key not in _RESERVED_RECORD_KEYS
                and key not in data
                and not key.startswith("_")
                and value is not None
                and isinstance(value, (str, int, float, bool, list, dict))
            ):
                data[key] = value

        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(data, default=str)


class LoggerAdapter(logging.LoggerAdapter):  # type: ignore[type-arg]
    """Logger adapter that injects structured context fields.

    Fields bound at construction time (see :func:`with_fields`) are merged
    into every record unless the call site passes its own value. The
    correlation id is propagated from the context variable, and
    ``operation``/``status`` always exist (``status`` is inferred from the
    level when missing).

    Parameters
    ----------
    logger : logging.Logger
        Base logger instance to wrap.
    extra : Mapping[str, object] | None, optional
        Structured fields to inject into log entries. Defaults to None.
    """

    def __init__(self, logger: logging.Logger, extra: Mapping[str, object] | None = None) -> None:
        super().__init__(logger, dict(extra or {}))

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        """Merge bound fields and the correlation id into ``kwargs['extra']``.

        Parameters
        ----------
        msg : Any
            Log message.
        kwargs : Any
            Keyword arguments of the logging call.

        Returns
        -------
        tuple[Any, Any]
            Message and kwargs with the merged ``extra`` mapping.
        """
        extra = kwargs.get("extra")
        merged: dict[str, Any] = dict(extra) if isinstance(extra, dict) else {}
        for key, value in cast("dict[str, Any]", self.extra or {}).items():
            merged.setdefault(key, value)
        if "correlation_id" not in merged:
            ctx_correlation_id = _correlation_id.get()
            if ctx_correlation_id is not None:
                merged["correlation_id"] = ctx_correlation_id
        kwargs["extra"] = merged
        return msg, kwargs

    def log(self, level: int, msg: object, *args: object, **kwargs: Any) -> None:
        """Log ``msg`` at ``level`` with structured fields."""
        if not self.isEnabledFor(level):
            return
        msg, kwargs = self.process(msg, kwargs)
        extra = cast("dict[str, Any]", kwargs["extra"])
        extra.setdefault("operation", "unknown")
        if "status" not in extra:
            if level >= logging.ERROR:
                extra["status"] = "error"
            elif level >= logging.WARNING:
                extra["status"] = "warning"
            else:
                extra["status"] = "success"
        self.logger.log(level, msg, *args, **kwargs)

    def log_success(
        self,
        message: str,
        *,
        operation: str | None = None,
        duration_ms: float | None = None,
        **fields: object,
    ) -> None:
        """Log a successful operation with structured fields.

        Parameters
        ----------
        message : str
            Success message.
        operation : str | None, optional
            Operation name. Defaults to the bound value or ``"unknown"``.
        duration_ms : float | None, optional
            Operation duration in milliseconds. Defaults to ``None``.
        **fields : object
            Additional structured fields to include in log record.
        """
        extra: dict[str, object] = {"status": "success"}
        if operation is not None:
            extra["operation"] = operation
        if duration_ms is not None:
            extra["duration_ms"] = duration_ms
        extra.update(fields)
        self.info(message, extra=extra)

    def log_failure(
        self,
        message: str,
        *,
        exception: BaseException | None = None,
        operation: str | None = None,
        **fields: object,
    ) -> None:
        """Log a failure, recording the exception type and detail as fields.

        Parameters
        ----------
        message : str
            Failure message.
        exception : BaseException | None, optional
            Exception that caused the failure. Defaults to ``None``.
        operation : str | None, optional
            Operation name. Defaults to ``None``.
        **fields : object
            Additional structured fields.
        """
        extra: dict[str, object] = {"status": "error"}
        if operation is not None:
            extra["operation"] = operation
        if exception is not None:
            extra["error_type"] = exception.__class__.__name__
            extra["error_detail"] = str(exception)
        extra.update(fields)
        self.error(message, extra=extra)

    def log_io(
        self,
        message: str,
        *,
        operation: str | None = None,
        io_type: str = "unknown",
        size_bytes: int | None = None,
        duration_ms: float | None = None,
        **fields: object,
    ) -> None:
        """Log a filesystem or network transfer with structured fields.

        Parameters
        ----------
        message : str
            I/O operation message.
        operation : str | None, optional
            Operation name. Defaults to ``None``.
        io_type : str, optional
            I/O type ("read", "write", "move", "delete"). Defaults to ``"unknown"``.
        size_bytes : int | None, optional
            Bytes transferred/processed. Defaults to ``None``.
        duration_ms : float | None, optional
            I/O duration in milliseconds. Defaults to ``None``.
        **fields : object
            Additional structured fields.
        """
        extra: dict[str, object] = {"status": "success", "io_type": io_type}
        if operation is not None:
            extra["operation"] = operation
        if size_bytes is not None:
            extra["size_bytes"] = size_bytes
        if duration_ms is not None:
            extra["duration_ms"] = duration_ms
        extra.update(fields)
        self.info(message, extra=extra)


def get_logger(name: str) -> LoggerAdapter:
    """Get a logger adapter with structured logging support.

    Parameters
    ----------
    name : str
        Logger name (typically ``__name__`` of the calling module).

    Returns
    -------
    LoggerAdapter
        Adapter injecting correlation id, operation and status fields.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())
    return LoggerAdapter(logger, {})


def setup_logging(level: int | str = logging.INFO) -> None:
    """Configure the root logger with the JSON formatter on stdout.

    Parameters
    ----------
    level : int | str, optional
        Logging level threshold, as a number or a level name. Defaults to
        ``logging.INFO``.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    logging.basicConfig(level=level, handlers=[handler], force=True)


def set_correlation_id(correlation_id: str | None) -> None:
    """Set the correlation id of the current context (``None`` clears it)."""
    _correlation_id.set(correlation_id)


def get_correlation_id() -> str | None:
    """Return the correlation id of the current context, if any."""
    return _correlation_id.get()


class CorrelationContext:
    """Context manager scoping a correlation id to a block.

    The coordinator opens one context per scheduled cycle so every log line
    of one update check or activation pass can be grouped.

    Parameters
    ----------
    correlation_id : str | None
        Correlation ID to set in context.
    """

    def __init__(self, correlation_id: str | None) -> None:
        self.correlation_id = correlation_id
        self._token: contextvars.Token[str | None] | None = None

    def __enter__(self) -> Self:
        """Set the correlation id.

        Returns
        -------
        Self
            Self for use as context manager.
        """
        self._token = _correlation_id.set(self.correlation_id)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Restore the previous correlation id."""
        if self._token is not None:
            _correlation_id.reset(self._token)
        del exc_type, exc_val, exc_tb


class _WithFieldsContext(AbstractContextManager[LoggerAdapter]):
    """Context manager implementation for :func:`with_fields`."""

    def __init__(
        self, logger: logging.Logger | LoggerAdapter, fields: Mapping[str, object]
    ) -> None:
        self._logger = logger
        self._fields = dict(fields)
        self._token: contextvars.Token[str | None] | None = None

    def __enter__(self) -> LoggerAdapter:
        if isinstance(self._logger, LoggerAdapter):
            base_logger = self._logger.logger
            bound = dict(cast("dict[str, object]", self._logger.extra or {}))
        else:
            base_logger = self._logger
            bound = {}
        bound.update(self._fields)
        correlation_id = self._fields.get("correlation_id")
        if isinstance(correlation_id, str):
            self._token = _correlation_id.set(correlation_id)
        return LoggerAdapter(base_logger, bound)

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._token is not None:
            _correlation_id.reset(self._token)
        del exc_type, exc_value, exc_tb


def with_fields(
    logger: logging.Logger | LoggerAdapter,
    **fields: object,
) -> AbstractContextManager[LoggerAdapter]:
    """Bind structured fields to every log entry emitted inside a block.

    Parameters
    ----------
    logger : logging.Logger | LoggerAdapter
        Base logger to wrap (may already be an adapter; its bound fields are kept).
    **fields : object
        Structured fields such as ``profile`` or ``operation``. A
        ``correlation_id`` entry is also pushed into the context variable.

    Returns
    -------
    AbstractContextManager[LoggerAdapter]
        Context manager yielding the bound adapter.
    """
    return _WithFieldsContext(logger, fields)


def bind(logger: LoggerAdapter, **fields: object) -> LoggerAdapter:
    """Return a new adapter with ``fields`` bound permanently.

    Long-lived objects (one per profile) keep such an adapter instead of
    entering :func:`with_fields` for every call.
    """
    bound = dict(cast("dict[str, object]", logger.extra or {}))
    bound.update(fields)
    return LoggerAdapter(logger.logger, bound)
