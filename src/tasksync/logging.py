"""Structured logging for tasksync.

One process-wide :class:`StructuredLogger` (see :func:`get_logger`) wraps the
``tasksync`` stdlib logger. Keyword arguments passed to any helper become
record extras; in JSON mode they are emitted as top-level keys next to
``timestamp``, ``level``, ``logger`` and ``message``.
"""

from __future__ import annotations

import json
import logging
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import IO, Any

from .errors import redact

LOGGER_NAME = "tasksync"
TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# attributes every LogRecord carries; anything else arrived through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
}


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_") and key not in payload
        )
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class StructuredLogger:
    def __init__(
        self,
        name: str = LOGGER_NAME,
        json_logging: bool = False,
        level: str = "INFO",
        stream: IO[str] | None = None,
    ) -> None:
        self._logger = logging.getLogger(name)
        self._logger.setLevel(getattr(logging, level.upper(), logging.INFO))
        for old in list(self._logger.handlers):
            self._logger.removeHandler(old)
        handler = logging.StreamHandler(stream or sys.stdout)
        handler.setFormatter(JSONFormatter() if json_logging else logging.Formatter(TEXT_FORMAT))
        self._logger.addHandler(handler)
        self._logger.propagate = False

    def _log(self, level: int, message: str, fields: dict[str, Any]) -> None:
        # LogRecord refuses extras that shadow its own attributes (``created``, ``name``)
        extra = {
            (f"field_{key}" if key in _RECORD_ATTRS else key): value for key, value in fields.items()
        }
        self._logger.log(level, message, extra=extra)

    # ---- domain helpers ------------------------------------------------
    def log_operation(self, operation: str, **kw: Any) -> None:
        self._log(logging.INFO, f"Operation: {operation}", {"operation": operation, **kw})

    def log_issue_action(
        self,
        action: str,
        task_id: str,
        issue_number: int | None = None,
        dry_run: bool = False,
        **kw: Any,
    ) -> None:
        fields: dict[str, Any] = {"operation": f"issue_{action}", "task_id": task_id, "dry_run": dry_run}
        target = f"task {task_id}"
        if issue_number:
            fields["issue_number"] = issue_number
            target += f" -> #{issue_number}"
        fields.update(kw)
        prefix = "[dry-run] " if dry_run else ""
        self._log(logging.INFO, f"{prefix}{action} issue for {target}", fields)

    def log_performance(self, operation: str, duration_ms: float, **kw: Any) -> None:
        fields = {"operation": operation, "duration_ms": round(duration_ms, 2), **kw}
        self._log(logging.INFO, f"Performance: {operation} took {duration_ms:.2f}ms", fields)

    def log_error(self, message: str, error: str | None = None, **kw: Any) -> None:
        fields = dict(kw)
        if error:
            fields["error"] = redact(error)
        self._log(logging.ERROR, message, fields)

    # ---- plain levels ---------------------------------------------------
    def debug(self, message: str, **kw: Any) -> None:
        self._log(logging.DEBUG, message, kw)

    def info(self, message: str, **kw: Any) -> None:
        self._log(logging.INFO, message, kw)

    def warning(self, message: str, **kw: Any) -> None:
        self._log(logging.WARNING, message, kw)

    def error(self, message: str, **kw: Any) -> None:  # noqa: D401
        self._log(logging.ERROR, message, kw)

    @contextmanager
    def timed_operation(self, operation: str, **kw: Any) -> Iterator[None]:
        """Log ``<operation>_start``, then the duration, or the failure and re-raise."""
        self.log_operation(f"{operation}_start", **kw)
        started = time.perf_counter()
        try:
            yield
        except Exception as exc:
            self.log_error(f"Operation {operation} failed", error=str(exc), **kw)
            raise
        self.log_performance(operation, (time.perf_counter() - started) * 1000, **kw)


_GLOBAL: StructuredLogger | None = None


def get_logger() -> StructuredLogger:
    global _GLOBAL  # noqa: PLW0603
    if _GLOBAL is None:
        _GLOBAL = StructuredLogger()
    return _GLOBAL


def configure_logging(
    json_logging: bool = False, level: str = "INFO", stream: IO[str] | None = None
) -> StructuredLogger:
    global _GLOBAL  # noqa: PLW0603
    _GLOBAL = StructuredLogger(json_logging=json_logging, level=level, stream=stream)
    return _GLOBAL


__all__ = ["JSONFormatter", "StructuredLogger", "get_logger", "configure_logging"]
