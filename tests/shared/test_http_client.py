"""Unit tests for the shared async HTTP client wrapper."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from packages.playshelf_shared.http import (
    AsyncHttpClient,
    HttpJsonDecodeError,
    HttpRequestError,
    HttpStatusError,
)


def test_get_json_returns_decoded_payload() -> None:
    """AsyncHttpClient.get_json should decode and return JSON content."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"games": []}, request=request)

    async def _run() -> None:
        client = AsyncHttpClient(
            base_url="https://example.test",
            transport=httpx.MockTransport(handler),
        )
        try:
            assert await client.get_json("/games") == {"games": []}
        finally:
            await client.aclose()

    asyncio.run(_run())


def test_status_failure_maps_to_typed_error() -> None:
    """Non-2xx responses should raise HttpStatusError with response details."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable", request=request)

    async def _run() -> HttpStatusError:
        client = AsyncHttpClient(
            base_url="https://example.test",
            transport=httpx.MockTransport(handler),
        )
        try:
            with pytest.raises(HttpStatusError) as exc_info:
                await client.get("/games")
        finally:
            await client.aclose()
        return exc_info.value

    error = asyncio.run(_run())
    assert error.method == "GET"
    assert error.status_code == 503
    assert error.retryable is True
    assert error.response_body == "unavailable"
    assert error.is_unauthorized is False


def test_status_check_can_be_disabled() -> None:
    """raise_for_status=False should hand rejected responses back to the caller."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, request=request)

    async def _run() -> int:
        client = AsyncHttpClient(
            base_url="https://example.test",
            transport=httpx.MockTransport(handler),
        )
        try:
            response = await client.get("/auth/me", raise_for_status=False)
        finally:
            await client.aclose()
        return response.status_code

    assert asyncio.run(_run()) == 401


def test_transport_failure_maps_to_typed_error() -> None:
    """Transport failures should raise HttpRequestError with the cause attached."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection failed", request=request)

    async def _run() -> HttpRequestError:
        client = AsyncHttpClient(
            base_url="https://example.test",
            transport=httpx.MockTransport(handler),
        )
        try:
            with pytest.raises(HttpRequestError) as exc_info:
                await client.get("/games")
        finally:
            await client.aclose()
        return exc_info.value

    error = asyncio.run(_run())
    assert error.method == "GET"
    assert error.url == "https://example.test/games"
    assert error.retryable is True
    assert isinstance(error.cause, httpx.ConnectError)


def test_json_decode_failure_maps_to_typed_error() -> None:
    """Invalid JSON bodies should raise HttpJsonDecodeError."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="not-json", request=request)

    async def _run() -> HttpJsonDecodeError:
        client = AsyncHttpClient(
            base_url="https://example.test",
            transport=httpx.MockTransport(handler),
        )
        try:
            with pytest.raises(HttpJsonDecodeError) as exc_info:
                await client.get_json("/games")
        finally:
            await client.aclose()
        return exc_info.value

    error = asyncio.run(_run())
    assert error.status_code == 200
    assert error.response_body == "not-json"


def test_response_hooks_run_before_status_mapping() -> None:
    """Hooks should observe error responses even when the call then raises."""
    seen: list[int] = []

    async def hook(response: httpx.Response) -> None:
        seen.append(response.status_code)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, request=request)

    async def _run() -> None:
        client = AsyncHttpClient(
            base_url="https://example.test",
            response_hooks=[hook],
            transport=httpx.MockTransport(handler),
        )
        try:
            with pytest.raises(HttpStatusError):
                await client.put_json("/games/1", json={"stars": 5})
        finally:
            await client.aclose()

    asyncio.run(_run())
    assert seen == [401]


def test_base_url_drops_trailing_slash() -> None:
    async def _run() -> str:
        client = AsyncHttpClient(base_url="https://example.test/api/")
        try:
            return client.base_url
        finally:
            await client.aclose()

    assert asyncio.run(_run()) == "https://example.test/api"
