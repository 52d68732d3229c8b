"""Composition root wiring one session, one bus and the four caches together."""

from __future__ import annotations

import httpx

from packages.playshelf_client.actions import LibraryActions
from packages.playshelf_client.caches import CollectionsCache, ResourceCache, build_resource_caches
from packages.playshelf_client.events import EventBus
from packages.playshelf_client.interceptor import UnauthorizedInterceptor
from packages.playshelf_client.items import ResourceFamily
from packages.playshelf_client.navigation import MemoryNavigator, Navigator
from packages.playshelf_client.session import SessionController, SessionSnapshot
from packages.playshelf_shared.config import PlayshelfSettings
from packages.playshelf_shared.http import AsyncHttpClient
from packages.playshelf_shared.logging import get_logger
from packages.playshelf_shared.storage import JsonFileStorage, KeyValueStorage

_LOGGER = get_logger(__name__)


class LibraryClient:
    """Owns every long-lived collaborator of one running client instance.

    Construction only wires objects together. ``start()`` subscribes the
    caches and resolves the session, after which caches load themselves on
    their staggered schedule. ``aclose()`` releases timers, background tasks
    and the HTTP connection pool.
    """

    def __init__(
        self,
        settings: PlayshelfSettings,
        *,
        storage: KeyValueStorage | None = None,
        navigator: Navigator | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self.bus = EventBus()
        self.storage = storage if storage is not None else JsonFileStorage(settings.storage.path)
        self.navigator = navigator if navigator is not None else MemoryNavigator()
        self.interceptor = UnauthorizedInterceptor(
            api_base_url=settings.api.base_url,
            exempt_paths=settings.auth.exempt_paths,
        )
        self.http = AsyncHttpClient(
            base_url=settings.api.base_url,
            timeout_seconds=settings.api.timeout_seconds,
            response_hooks=[self.interceptor],
            transport=transport,
        )
        self.sessions = SessionController(
            http=self.http,
            storage=self.storage,
            navigator=self.navigator,
            bus=self.bus,
            api_settings=settings.api,
            auth_settings=settings.auth,
        )
        self.sessions.install(self.interceptor)
        self.caches: dict[ResourceFamily, ResourceCache] = build_resource_caches(
            http=self.http,
            sessions=self.sessions,
            bus=self.bus,
            settings=settings.cache,
        )
        self.actions = LibraryActions(
            http=self.http,
            sessions=self.sessions,
            bus=self.bus,
            storage=self.storage,
            collections=self.collections,
        )
        self._started = False

    @property
    def games(self) -> ResourceCache:
        return self.caches[ResourceFamily.GAMES]

    @property
    def collections(self) -> CollectionsCache:
        cache = self.caches[ResourceFamily.COLLECTIONS]
        assert isinstance(cache, CollectionsCache)
        return cache

    @property
    def developers(self) -> ResourceCache:
        return self.caches[ResourceFamily.DEVELOPERS]

    @property
    def publishers(self) -> ResourceCache:
        return self.caches[ResourceFamily.PUBLISHERS]

    async def start(self) -> SessionSnapshot:
        """Subscribe the caches and resolve the session."""
        if not self._started:
            for cache in self.caches.values():
                cache.bind()
            self._started = True
        snapshot = await self.sessions.check_auth()
        _LOGGER.info("library client started: phase=%s", snapshot.phase.value)
        return snapshot

    async def aclose(self) -> None:
        """Stop background work and close the HTTP client."""
        for cache in self.caches.values():
            await cache.aclose()
        await self.sessions.aclose()
        await self.http.aclose()
        self._started = False

    async def __aenter__(self) -> LibraryClient:
        await self.start()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()
