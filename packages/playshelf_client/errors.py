"""Error types raised by Playshelf client operations."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PlayshelfError(Exception):
    """Base error type for client failures."""

    message: str

    def __str__(self) -> str:
        """Return the human-readable error message."""
        return self.message


@dataclass(frozen=True)
class NotAuthenticatedError(PlayshelfError):
    """An operation needed a credential but the session has none."""


@dataclass(frozen=True)
class ActionError(PlayshelfError):
    """A library action failed on the server or in transport."""

    operation: str
    status_code: int | None = None
    cause: Exception | None = None
