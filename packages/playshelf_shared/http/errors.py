"""Typed errors raised by the shared HTTP client wrapper."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping


@dataclass(frozen=True)
class HttpError(Exception):
    """Base error type for shared HTTP helper failures."""

    message: str

    def __str__(self) -> str:
        """Return the human-readable error message."""
        return self.message


@dataclass(frozen=True)
class HttpClientError(HttpError):
    """Base error for outbound HTTP client call failures."""

    method: str
    url: str
    retryable: bool = False


@dataclass(frozen=True)
class HttpRequestError(HttpClientError):
    """Transport-level failure: connection refused, DNS, timeout."""

    cause: Exception | None = None


@dataclass(frozen=True)
class HttpStatusError(HttpClientError):
    """Non-success status code."""

    status_code: int = 0
    response_body: str = ""
    response_headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def is_unauthorized(self) -> bool:
        """Return ``True`` when the server rejected the credential."""
        return self.status_code == 401


@dataclass(frozen=True)
class HttpJsonDecodeError(HttpClientError):
    """Successful response whose body is not valid JSON."""

    status_code: int = 0
    response_body: str = ""
    cause: Exception | None = None
