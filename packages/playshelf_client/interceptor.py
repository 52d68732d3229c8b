"""Response hook that turns rejected credentials into session invalidation.

Installed as an httpx response hook on the one client every API call goes
through. A 401 from our own API base calls the registered handler once per
response; 401s from exempt paths (the identity probe and similar) and from
other hosts are left to their callers.
"""

from __future__ import annotations

from typing import Callable, Sequence
from urllib.parse import urlsplit

import httpx

from packages.playshelf_shared.logging import fields, get_logger

_LOGGER = get_logger(__name__)

UnauthorizedHandler = Callable[[], None]


class UnauthorizedInterceptor:
    """Dispatch rejected-credential responses to the session's handler."""

    def __init__(self, *, api_base_url: str, exempt_paths: Sequence[str] = ()) -> None:
        self._base = api_base_url.rstrip("/")
        self._base_path = urlsplit(self._base).path.rstrip("/")
        self._exempt = frozenset(path.rstrip("/") for path in exempt_paths)
        self._handler: UnauthorizedHandler | None = None
        self.trigger_count = 0

    @property
    def handler(self) -> UnauthorizedHandler | None:
        return self._handler

    def set_handler(self, handler: UnauthorizedHandler | None) -> None:
        """Register (or with ``None`` remove) the handler for rejected credentials."""
        self._handler = handler

    def is_api_request(self, url: str) -> bool:
        """Return ``True`` when ``url`` targets the API base or a path below it."""
        bare = url.split("?", 1)[0].split("#", 1)[0]
        return bare == self._base or bare.startswith(self._base + "/")

    def is_exempt(self, url: str) -> bool:
        """Return ``True`` for endpoints whose 401 is an answer, not a revocation."""
        path = urlsplit(url).path
        if self._base_path and path.startswith(self._base_path):
            path = path[len(self._base_path) :]
        return path.rstrip("/") in self._exempt

    async def __call__(self, response: httpx.Response) -> None:
        if response.status_code != 401:
            return
        url = str(response.request.url)
        if not self.is_api_request(url) or self.is_exempt(url):
            return
        handler = self._handler
        if handler is None:
            _LOGGER.warning(
                "credential rejected with no unauthorized handler registered",
                extra={fields.URL: url, fields.STATUS_CODE: response.status_code},
            )
            return
        self.trigger_count += 1
        _LOGGER.warning(
            "credential rejected by API; invalidating session",
            extra={
                fields.METHOD: response.request.method,
                fields.URL: url,
                fields.STATUS_CODE: response.status_code,
            },
        )
        try:
            handler()
        except Exception:
            _LOGGER.exception("unauthorized handler failed", extra={fields.URL: url})
