"""Asynchronous httpx wrapper used for every call to the library API."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any

import httpx

from .errors import HttpJsonDecodeError, HttpRequestError, HttpStatusError

ResponseHook = Callable[[httpx.Response], Awaitable[None]]

# Statuses worth retrying later; everything else in the error range is final.
_TRANSIENT_STATUSES = frozenset({408, 425, 429})


def _body_text(response: httpx.Response) -> str:
    try:
        return response.text
    except UnicodeDecodeError:
        return ""


def _describe(response: httpx.Response) -> tuple[str, str]:
    request = response.request
    return request.method, str(request.url)


def status_error(response: httpx.Response) -> HttpStatusError:
    """Map one error response to ``HttpStatusError``."""
    method, url = _describe(response)
    code = response.status_code
    return HttpStatusError(
        message=f"{method} {url} answered {code}",
        method=method,
        url=url,
        retryable=code >= 500 or code in _TRANSIENT_STATUSES,
        status_code=code,
        response_body=_body_text(response),
        response_headers=dict(response.headers.items()),
    )


def decode_json(response: httpx.Response) -> Any:
    """Decode a response body, mapping malformed JSON to a typed error."""
    try:
        return response.json()
    except ValueError as exc:
        method, url = _describe(response)
        raise HttpJsonDecodeError(
            message=f"{method} {url} returned a body that is not JSON",
            method=method,
            url=url,
            status_code=response.status_code,
            response_body=_body_text(response),
            cause=exc,
        ) from exc


class AsyncHttpClient:
    """One ``httpx.AsyncClient`` bound to the library API base URL.

    ``response_hooks`` are installed as httpx response event hooks. They see
    every response before its status is mapped, including the ones a caller
    asked to receive unchecked with ``raise_for_status=False``.
    """

    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float = 10.0,
        headers: Mapping[str, str] | None = None,
        response_hooks: Sequence[ResponseHook] = (),
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout_seconds,
            headers=dict(headers or {}),
            transport=transport,
            event_hooks={"response": list(response_hooks)},
        )

    @property
    def base_url(self) -> str:
        return str(self._client.base_url).rstrip("/")

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> AsyncHttpClient:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        raise_for_status: bool = True,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send one request; transport and (optionally) status failures become typed errors."""
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.RequestError as exc:
            raise self._transport_error(exc, method, path) from exc
        if raise_for_status and response.is_error:
            raise status_error(response)
        return response

    async def get(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", path, **kwargs)

    async def get_json(self, path: str, **kwargs: Any) -> Any:
        return decode_json(await self.request("GET", path, **kwargs))

    async def post_json(self, path: str, *, json: Any, **kwargs: Any) -> Any:
        return decode_json(await self.request("POST", path, json=json, **kwargs))

    async def put_json(self, path: str, *, json: Any, **kwargs: Any) -> Any:
        return decode_json(await self.request("PUT", path, json=json, **kwargs))

    def _transport_error(
        self, exc: httpx.RequestError, method: str, path: str
    ) -> HttpRequestError:
        try:
            sent = exc.request
        except RuntimeError:
            # httpx raises when the error was created without a request.
            sent = None
        if sent is not None:
            method, url = sent.method, str(sent.url)
        else:
            method, url = method.upper(), f"{self.base_url}{path}"
        return HttpRequestError(
            message=f"{method} {url} failed before a response: {exc}",
            method=method,
            url=url,
            retryable=True,
            cause=exc,
        )
