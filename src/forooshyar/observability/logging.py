"""Structured logging for the cache layer.

Two output formats share one set of correlation fields:

- JSON lines (``configure_logging(json_format=True)``) for log shipping
- a single readable line per record for local development

Correlation ids live in contextvars so concurrent asyncio tasks keep their
own. ``request_id`` identifies the API request doing cache reads;
``event_id`` identifies the catalog mutation event being invalidated.

Usage:
    configure_logging(json_format=settings.log_json, level=settings.log_level)

    with LogContext(event_id=event.event_id):
        logger.info("Invalidating product")
"""

from __future__ import annotations

import contextvars
import logging
import sys
from datetime import UTC, datetime
from typing import Any

import orjson

request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="")
event_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("event_id", default="")

_CONTEXT_VARS: dict[str, contextvars.ContextVar[str]] = {
    "request_id": request_id_var,
    "event_id": event_id_var,
}

# Attributes every LogRecord has; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def current_context() -> dict[str, str]:
    """Correlation ids set in the current context."""
    return {name: value for name, var in _CONTEXT_VARS.items() if (value := var.get())}


class JsonFormatter(logging.Formatter):
    """One JSON object per record.

    Keys: timestamp, level, logger, message, module, function, line, any
    correlation ids, ``exception`` when exc_info is set, and ``extra`` fields.
    Values orjson cannot encode are written as their str().
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            **current_context(),
        }

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            payload["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
                "traceback": self.formatException(record.exc_info),
            }

        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        )
        return orjson.dumps(payload, default=str).decode()


class ConsoleFormatter(logging.Formatter):
    """Readable single-line format.

    2026-01-10 12:34:56 | INFO     | forooshyar.cache.service | Flushed 12 cache entries | evt=3f2a1b0c
    """

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"
    CONTEXT_LABELS = {"request_id": "req", "event_id": "evt"}

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self.use_colors = use_colors and sys.stderr.isatty()

    def _level(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:<8}"
        if not self.use_colors:
            return level
        return f"{self.LEVEL_COLORS.get(record.levelno, '')}{level}{self.RESET}"

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        parts = [stamp, self._level(record), record.name, record.getMessage()]

        context = current_context()
        if context:
            parts.append(
                " ".join(f"{self.CONTEXT_LABELS[name]}={value[:8]}" for name, value in context.items())
            )

        line = " | ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(
    json_format: bool = True,
    level: str = "INFO",
    use_colors: bool = True,
) -> None:
    """Replace the root logger's handlers with one stderr handler.

    Args:
        json_format: JSON lines when True, console lines otherwise
        level: Root log level name, case-insensitive
        use_colors: Colorize console output when stderr is a terminal
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter() if json_format else ConsoleFormatter(use_colors))

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level.upper())

    # Client libraries log every request at INFO
    for noisy in ("httpx", "httpcore", "redis"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


class LogContext:
    """Set correlation ids for the duration of a ``with`` block.

    Nested blocks restore the outer values on exit. Keys other than
    ``request_id`` and ``event_id`` are ignored.
    """

    def __init__(self, **ids: str) -> None:
        self.ids = ids
        self._tokens: list[tuple[contextvars.ContextVar[str], contextvars.Token[str]]] = []

    def __enter__(self) -> LogContext:
        for name, value in self.ids.items():
            if name in _CONTEXT_VARS:
                var = _CONTEXT_VARS[name]
                self._tokens.append((var, var.set(value)))
        return self

    def __exit__(self, *args: Any) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)
