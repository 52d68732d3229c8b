"""Fake API and wiring helpers shared by client tests."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import httpx

from packages.playshelf_client.caches import ResourceCache, build_resource_caches
from packages.playshelf_client.events import EventBus
from packages.playshelf_client.interceptor import UnauthorizedInterceptor
from packages.playshelf_client.items import ResourceFamily
from packages.playshelf_client.navigation import MemoryNavigator
from packages.playshelf_client.session import SessionController
from packages.playshelf_shared.config import ApiSettings, AuthSettings, CacheSettings
from packages.playshelf_shared.http import AsyncHttpClient
from packages.playshelf_shared.storage import TWITCH_CLIENT_ID, TWITCH_TOKEN, MemoryStorage

BASE_URL = "http://api.test"
DEV_TOKEN = "dev-token"

Responder = Callable[[httpx.Request], httpx.Response | Awaitable[httpx.Response]]


def identity_body(user_id: str, name: str = "Player One", *, is_dev: bool = False) -> dict[str, Any]:
    """Return an identity-probe response body."""
    return {"userId": user_id, "userName": name, "userImage": None, "isDev": is_dev}


class FakeApi:
    """Route table served through ``httpx.MockTransport``, keyed by method and path."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Responder] = {}
        self.requests: list[httpx.Request] = []

    def on(self, method: str, path: str, responder: Responder) -> None:
        self.routes[(method.upper(), path)] = responder

    def json(self, method: str, path: str, body: Any, status_code: int = 200) -> None:
        """Serve a fixed JSON body."""
        self.on(method, path, lambda request: httpx.Response(status_code, json=body, request=request))

    def status(self, method: str, path: str, status_code: int) -> None:
        """Serve an empty body with ``status_code``."""
        self.on(method, path, lambda request: httpx.Response(status_code, request=request))

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        """Return recorded requests for one route."""
        return [
            request
            for request in self.requests
            if request.method == method.upper() and request.url.path == path
        ]

    def body(self, request: httpx.Request) -> Any:
        return json.loads(request.content.decode("utf-8"))

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        responder = self.routes.get((request.method, request.url.path))
        if responder is None:
            return httpx.Response(404, json={"error": "not found"}, request=request)
        response = responder(request)
        if asyncio.iscoroutine(response):
            response = await response
        return response

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


def identity_by_token(mapping: dict[str, dict[str, Any]]) -> Responder:
    """Answer the identity probe from a token-to-identity map; unknown tokens get 401."""

    def respond(request: httpx.Request) -> httpx.Response:
        identity = mapping.get(request.headers.get("X-Auth-Token", ""))
        if identity is None:
            return httpx.Response(401, json={"error": "unauthorized"}, request=request)
        return httpx.Response(200, json=identity, request=request)

    return respond


class Gate:
    """Responder that holds each request until ``release`` is called."""

    def __init__(self, response: Callable[[httpx.Request], httpx.Response]) -> None:
        self._response = response
        self.arrived = asyncio.Event()
        self._released = asyncio.Event()

    def release(self) -> None:
        self._released.set()

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.arrived.set()
        await self._released.wait()
        return self._response(request)


@dataclass
class Harness:
    """One wired session stack over a fake API."""

    api: FakeApi
    bus: EventBus
    storage: MemoryStorage
    navigator: MemoryNavigator
    interceptor: UnauthorizedInterceptor
    http: AsyncHttpClient
    controller: SessionController
    caches: dict[ResourceFamily, ResourceCache] = field(default_factory=dict)

    def cache(self, family: ResourceFamily) -> ResourceCache:
        return self.caches[family]

    def with_caches(self, **delays: float) -> Harness:
        """Build and bind the four caches, with zero load delays unless given."""
        settings = CacheSettings(
            games_load_delay_seconds=delays.get("games", 0.0),
            collections_load_delay_seconds=delays.get("collections", 0.0),
            developers_load_delay_seconds=delays.get("developers", 0.0),
            publishers_load_delay_seconds=delays.get("publishers", 0.0),
        )
        self.caches = build_resource_caches(
            http=self.http,
            sessions=self.controller,
            bus=self.bus,
            settings=settings,
        )
        for cache in self.caches.values():
            cache.bind()
        return self

    async def drain(self) -> None:
        """Let scheduled initial loads start, then wait for every cache task."""
        await asyncio.sleep(0.01)
        for cache in self.caches.values():
            await cache.drain()

    async def aclose(self) -> None:
        for cache in self.caches.values():
            await cache.aclose()
        await self.controller.aclose()
        await self.http.aclose()


def build_harness(
    api: FakeApi,
    *,
    storage: MemoryStorage | None = None,
    url: str = "/",
    dev_token: str = "",
    server_url: str | None = None,
    probe_timeout: float = 2.0,
) -> Harness:
    bus = EventBus()
    storage = storage if storage is not None else MemoryStorage()
    navigator = MemoryNavigator(url)
    api_settings = ApiSettings(base_url=BASE_URL, server_url=server_url)
    auth_settings = AuthSettings(dev_token=dev_token, probe_timeout_seconds=probe_timeout)
    interceptor = UnauthorizedInterceptor(
        api_base_url=api_settings.base_url,
        exempt_paths=auth_settings.exempt_paths,
    )
    http = AsyncHttpClient(
        base_url=api_settings.base_url,
        response_hooks=[interceptor],
        transport=api.transport(),
    )
    controller = SessionController(
        http=http,
        storage=storage,
        navigator=navigator,
        bus=bus,
        api_settings=api_settings,
        auth_settings=auth_settings,
    )
    controller.install(interceptor)
    return Harness(
        api=api,
        bus=bus,
        storage=storage,
        navigator=navigator,
        interceptor=interceptor,
        http=http,
        controller=controller,
    )


def persisted_storage(token: str = "stored-token", client_id: str = "client-1") -> MemoryStorage:
    """Return storage holding a persisted credential and its client id."""
    return MemoryStorage({TWITCH_TOKEN: token, TWITCH_CLIENT_ID: client_id, "twitch_user_id": "u-stored"})


async def signed_in(api: FakeApi, *, dev_token: str = "", **delays: float) -> Harness:
    """Return a harness whose session resolved from a persisted credential, with caches bound."""
    api.on("GET", "/auth/me", identity_by_token({"stored-token": identity_body("u-stored")}))
    harness = build_harness(api, storage=persisted_storage(), dev_token=dev_token).with_caches(**delays)
    await harness.controller.check_auth()
    return harness
