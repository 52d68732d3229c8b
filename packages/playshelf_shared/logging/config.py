"""Stdout logging configuration for the Playshelf client.

Every record gets the bound task context plus any ``extra`` fields named in
``fields``; the presentation layer embedding this library decides whether the
output is JSON lines or plain text.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

from . import fields
from .context import bind_context, get_context

_EXTRA_FIELDS = (
    fields.EVENT,
    fields.PHASE,
    fields.IDENTITY_ID,
    fields.CREDENTIAL_SOURCE,
    fields.FAMILY,
    fields.FETCH_TOKEN,
    fields.CHANNEL,
    fields.ITEM_ID,
    fields.ITEM_COUNT,
    fields.METHOD,
    fields.URL,
    fields.STATUS_CODE,
    fields.OPERATION,
)


def _structured_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Collect bound context and recognised ``extra`` values for one record."""
    output: dict[str, Any] = {}
    context = getattr(record, "context", None)
    if isinstance(context, dict):
        output.update(context)
    for name in _EXTRA_FIELDS:
        if name in record.__dict__:
            output[name] = record.__dict__[name]
    return output


class ContextFilter(logging.Filter):
    """Attach the current task's logging context to each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.context = get_context()
        return True


class JsonFormatter(logging.Formatter):
    """Emit newline-delimited JSON logs with stable core fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            fields.TIMESTAMP: datetime.now(UTC).isoformat(),
            fields.LEVEL: record.levelname,
            fields.LOGGER: record.name,
            fields.MESSAGE: record.getMessage(),
        }
        payload.update(_structured_fields(record))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, separators=(",", ":"))


class PlainFormatter(logging.Formatter):
    """Human-readable formatter that appends structured fields as ``k=v``."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        structured = _structured_fields(record)
        if not structured:
            return message
        suffix = " ".join(f"{key}={value}" for key, value in sorted(structured.items()))
        return f"{message} {suffix}"


def configure_logging(
    *,
    level: str = "INFO",
    json_output: bool = True,
    service: str | None = None,
    environment: str | None = None,
) -> None:
    """Configure root logging with a single stdout handler.

    Calling this again replaces the previously installed handler.
    """
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level.upper())

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setLevel(level.upper())
    handler.addFilter(ContextFilter())
    handler.setFormatter(JsonFormatter() if json_output else PlainFormatter())
    root.addHandler(handler)

    bind_context(**{fields.SERVICE: service, fields.ENVIRONMENT: environment})


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a logger from Python's standard logging hierarchy."""
    return logging.getLogger(name)
