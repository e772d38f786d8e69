"""Observability for the cache layer.

Structured JSON logging with request and event correlation.
"""

from forooshyar.observability.logging import (
    ConsoleFormatter,
    JsonFormatter,
    LogContext,
    configure_logging,
    event_id_var,
    request_id_var,
)

__all__ = [
    "configure_logging",
    "LogContext",
    "JsonFormatter",
    "ConsoleFormatter",
    "request_id_var",
    "event_id_var",
]
