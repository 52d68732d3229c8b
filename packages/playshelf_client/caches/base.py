"""Resource cache: the authoritative in-memory list for one resource family.

Local mutations (``add``/``update``/``remove``) patch the list immediately.
Bus events carrying a full item are applied the same way; events carrying only
an id, ``metadataReloaded`` and the configured cross-family channels trigger
a full ``load()`` instead.

Every fetch takes a new fetch token before its request goes out and commits
only if that token is still the newest one when the response arrives, so the
last fetch issued wins regardless of completion order. Signing out also takes
a new token, which stops in-flight fetches from restoring data after logout.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Coroutine, Iterable, Mapping, Sequence

from pydantic import ValidationError

from packages.playshelf_client.events import (
    METADATA_RELOADED,
    SESSION_CHANGED,
    ChangeEvent,
    EventBus,
    EventKind,
    Unsubscribe,
    channel_for,
)
from packages.playshelf_client.items import (
    ItemRef,
    ResourceFamily,
    ResourceItem,
    parse_item,
)
from packages.playshelf_client.session import SessionController, SessionPhase, SessionSnapshot
from packages.playshelf_shared.http import AsyncHttpClient, HttpClientError
from packages.playshelf_shared.logging import fields, get_logger, log_context

_LOGGER = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """Point-in-time view of one cache."""

    items: tuple[ResourceItem, ...]
    is_loading: bool
    error: str | None
    last_fetch_token: int


def sort_items(items: Iterable[ResourceItem]) -> list[ResourceItem]:
    """Sort by title, case-insensitively; ties keep their current order."""
    return sorted(items, key=lambda item: item.sort_key)


class ResourceCache:
    """In-memory list for one family, kept in step with the event bus."""

    def __init__(
        self,
        *,
        family: ResourceFamily,
        path: str,
        http: AsyncHttpClient,
        sessions: SessionController,
        bus: EventBus,
        response_key: str | None = None,
        params: Mapping[str, str] | None = None,
        load_delay_seconds: float = 0.0,
        reload_on: Sequence[str] = (),
    ) -> None:
        self.family = family
        self._path = path
        self._http = http
        self._sessions = sessions
        self._bus = bus
        self._response_key = response_key or family.value
        self._params = dict(params or {})
        self._load_delay = load_delay_seconds
        self._reload_on = tuple(reload_on)

        self._items: tuple[ResourceItem, ...] = ()
        self._is_loading = False
        self._error: str | None = None
        self._fetch_token = 0

        self._unsubscribes: list[Unsubscribe] = []
        self._initial_load: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def items(self) -> tuple[ResourceItem, ...]:
        return self._items

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def state(self) -> CacheEntry:
        return CacheEntry(
            items=self._items,
            is_loading=self._is_loading,
            error=self._error,
            last_fetch_token=self._fetch_token,
        )

    @property
    def initial_load_pending(self) -> bool:
        """Return ``True`` while a staggered initial load is scheduled."""
        return self._initial_load is not None

    def get(self, item_id: str | int) -> ResourceItem | None:
        """Return the cached item with ``item_id``, if present."""
        wanted = str(item_id)
        return next((item for item in self._items if item.id == wanted), None)

    def __len__(self) -> int:
        return len(self._items)

    def bind(self) -> None:
        """Subscribe to this family's change events and the shared channels."""
        if self._unsubscribes:
            return
        routes = [
            (channel_for(EventKind.ADDED, self.family), self._on_added),
            (channel_for(EventKind.UPDATED, self.family), self._on_updated),
            (channel_for(EventKind.DELETED, self.family), self._on_deleted),
            (METADATA_RELOADED, self._on_reload_signal),
            (SESSION_CHANGED, self._on_session_changed),
        ]
        routes.extend((channel, self._on_reload_signal) for channel in self._reload_on)
        self._unsubscribes = [self._bus.subscribe(channel, handler) for channel, handler in routes]
        if self._sessions.session.snapshot.is_signed_in:
            self._schedule_initial_load()

    def unbind(self) -> None:
        """Drop bus subscriptions and any scheduled initial load."""
        for unsubscribe in self._unsubscribes:
            unsubscribe()
        self._unsubscribes = []
        self._cancel_initial_load()

    async def aclose(self) -> None:
        """Unbind and wait for reload tasks started from bus events."""
        self.unbind()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def drain(self) -> None:
        """Wait for every background load started so far, including ones they start."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def load(self) -> None:
        """Fetch the full list, replacing ``items`` on success.

        Does nothing until the session holds a credential. On failure the
        previous items are kept and ``error`` is set.
        """
        snapshot = self._sessions.session.snapshot
        if not snapshot.is_signed_in:
            _LOGGER.debug(
                "load skipped: session not signed in",
                extra={fields.FAMILY: self.family.value, fields.PHASE: snapshot.phase.value},
            )
            return

        self._fetch_token += 1
        token = self._fetch_token
        self._is_loading = True
        with log_context({fields.FAMILY: self.family.value, fields.FETCH_TOKEN: token}):
            try:
                data = await self._http.get_json(
                    self._path,
                    params=self._params or None,
                    headers={"Accept": "application/json", **self._sessions.auth_headers()},
                )
                items = self._parse_items(data)
            except (HttpClientError, ValidationError, ValueError) as exc:
                if token != self._fetch_token:
                    _LOGGER.debug("stale fetch failed; ignored")
                    return
                self._is_loading = False
                self._error = str(exc)
                _LOGGER.warning("resource list fetch failed: %s", exc)
                return

            if token != self._fetch_token:
                _LOGGER.debug("stale fetch result discarded")
                return
            self._items = tuple(items)
            self._error = None
            self._is_loading = False
            _LOGGER.debug("resource list loaded", extra={fields.ITEM_COUNT: len(items)})

    async def refresh(self) -> None:
        """Force a resync with the server."""
        await self.load()

    def add(self, item: ResourceItem | Mapping[str, Any]) -> ResourceItem:
        """Insert or replace ``item`` by id, keeping title order."""
        parsed = parse_item(self.family, item)
        others = [existing for existing in self._items if existing.id != parsed.id]
        self._items = tuple(sort_items([*others, parsed]))
        return parsed

    def update(self, item: ResourceItem | Mapping[str, Any]) -> bool:
        """Replace the entry with the same id in place; return ``False`` if absent."""
        parsed = parse_item(self.family, item)
        if self.get(parsed.id) is None:
            return False
        self._items = tuple(parsed if existing.id == parsed.id else existing for existing in self._items)
        return True

    def remove(self, item_id: str | int) -> bool:
        """Delete the entry with ``item_id``; return ``False`` if absent."""
        wanted = str(item_id)
        remaining = tuple(item for item in self._items if item.id != wanted)
        if len(remaining) == len(self._items):
            return False
        self._items = remaining
        return True

    def schedule_load(self) -> None:
        """Run ``load()`` as a tracked background task."""
        if running_loop() is None:
            _LOGGER.warning(
                "reload requested outside an event loop; skipped",
                extra={fields.FAMILY: self.family.value},
            )
            return
        self._spawn_load()

    def _parse_items(self, data: object) -> list[ResourceItem]:
        if not isinstance(data, Mapping):
            raise ValueError(f"expected an object with '{self._response_key}'")
        raw_items = data.get(self._response_key) or []
        if not isinstance(raw_items, list):
            raise ValueError(f"'{self._response_key}' must be a list")
        return [parse_item(self.family, raw) for raw in raw_items]

    def _spawn_load(self) -> None:
        self._spawn(self.load())

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._load_finished)

    def _load_finished(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _LOGGER.error(
                "background load crashed",
                exc_info=exc,
                extra={fields.FAMILY: self.family.value},
            )

    def _schedule_initial_load(self) -> None:
        self._cancel_initial_load()
        loop = running_loop()
        if loop is None:
            return
        self._initial_load = loop.call_later(self._load_delay, self._run_initial_load)

    def _run_initial_load(self) -> None:
        self._initial_load = None
        self._spawn_load()

    def _cancel_initial_load(self) -> None:
        if self._initial_load is not None:
            self._initial_load.cancel()
            self._initial_load = None

    def _forget(self) -> None:
        """Drop cached state and invalidate in-flight fetches."""
        self._fetch_token += 1
        self._items = ()
        self._error = None
        self._is_loading = False

    def _on_added(self, event: object) -> None:
        if not isinstance(event, ChangeEvent) or event.item is None:
            return
        self.add(event.item)

    def _on_updated(self, event: object) -> None:
        if not isinstance(event, ChangeEvent):
            return
        if event.item is not None:
            self.update(event.item)
        elif isinstance(event.payload, ItemRef):
            self._on_touched(event.payload.id)

    def _on_touched(self, item_id: str) -> None:
        """Membership of ``item_id`` changed elsewhere; the local copy is unreliable."""
        self.schedule_load()

    def _on_deleted(self, event: object) -> None:
        if isinstance(event, ChangeEvent) and event.item_id is not None:
            self.remove(event.item_id)

    def _on_reload_signal(self, _detail: object) -> None:
        self.schedule_load()

    def _on_session_changed(self, snapshot: object) -> None:
        if not isinstance(snapshot, SessionSnapshot):
            return
        self._cancel_initial_load()
        if snapshot.is_signed_in:
            self._schedule_initial_load()
        elif snapshot.phase is SessionPhase.UNAUTHENTICATED:
            self._forget()


def running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None
