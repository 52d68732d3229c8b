"""Structured logging context carried across awaits.

Session and cache code runs on one event loop, interleaved at every network
await. A ``contextvars`` mapping keeps fields such as the resource family or
fetch token attached to log lines emitted by the task that bound them, without
leaking into sibling tasks.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Mapping

_FIELDS: ContextVar[dict[str, str]] = ContextVar("playshelf_log_fields", default={})


def get_context() -> dict[str, str]:
    """Return a copy of the fields bound in the current task."""
    return dict(_FIELDS.get())


def bind_context(**values: object) -> None:
    """Bind fields for the rest of the current task; ``None`` values are skipped."""
    updated = dict(_FIELDS.get())
    updated.update(
        {str(key): str(value) for key, value in values.items() if value is not None}
    )
    _FIELDS.set(updated)


def clear_context(*keys: str) -> None:
    """Drop the named fields, or every field when called without names."""
    if not keys:
        _FIELDS.set({})
        return
    _FIELDS.set({key: value for key, value in _FIELDS.get().items() if key not in keys})


@contextmanager
def log_context(values: Mapping[str, object]) -> Iterator[None]:
    """Bind fields for the duration of a block and restore the outer set after."""
    token = _FIELDS.set(dict(_FIELDS.get()))
    try:
        bind_context(**{str(key): value for key, value in values.items()})
        yield
    finally:
        _FIELDS.reset(token)
