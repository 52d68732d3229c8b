"""Navigation seam between the session controller and its host surface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from urllib.parse import parse_qs, urlsplit, urlunsplit

CALLBACK_TOKEN_PARAM = "twitch_token"
CALLBACK_USER_PARAM = "user_id"


class Navigator(ABC):
    """Current navigation target plus the two ways of leaving it."""

    @abstractmethod
    def current_url(self) -> str:
        """Return the URL the client was opened with."""

    @abstractmethod
    def replace_url(self, url: str) -> None:
        """Rewrite the current URL in place, without navigating."""

    @abstractmethod
    def redirect(self, url: str) -> None:
        """Perform a full navigation away from the current URL."""


class MemoryNavigator(Navigator):
    """Headless navigator that records redirects instead of performing them."""

    def __init__(self, url: str = "/") -> None:
        self._url = url
        self.redirects: list[str] = []

    def current_url(self) -> str:
        return self._url

    def replace_url(self, url: str) -> None:
        self._url = url

    def redirect(self, url: str) -> None:
        self.redirects.append(url)
        self._url = url


def callback_credential(url: str) -> tuple[str, str] | None:
    """Return ``(token, user_id)`` from an OAuth callback URL, when both are present."""
    query = parse_qs(urlsplit(url).query)
    token = (query.get(CALLBACK_TOKEN_PARAM) or [""])[0].strip()
    user_id = (query.get(CALLBACK_USER_PARAM) or [""])[0].strip()
    if token == "" or user_id == "":
        return None
    return token, user_id


def strip_query(url: str) -> str:
    """Return ``url`` without its query string and fragment."""
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
