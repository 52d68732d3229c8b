"""Collections cache with an on-demand per-collection membership map."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from packages.playshelf_client.caches.base import ResourceCache, running_loop
from packages.playshelf_client.events import ChangeEvent
from packages.playshelf_client.items import ResourceFamily
from packages.playshelf_client.session import SessionPhase, SessionSnapshot
from packages.playshelf_shared.http import HttpClientError
from packages.playshelf_shared.logging import fields, get_logger

_LOGGER = get_logger(__name__)


def membership_path(collection_id: str | int) -> str:
    """Return the endpoint listing the games of one collection."""
    return f"/collections/{collection_id}/games"


class CollectionsCache(ResourceCache):
    """Collections list plus which game ids each collection contains.

    Membership entries are fetched lazily by :meth:`game_ids` and patched by
    the library actions after a successful order update, so membership
    filters work before the next list reload.
    """

    def __init__(self, **kwargs: Any) -> None:
        kwargs.setdefault("family", ResourceFamily.COLLECTIONS)
        super().__init__(**kwargs)
        self._membership: dict[str, tuple[str, ...]] = {}
        self._membership_tokens: dict[str, int] = {}

    def cached_game_ids(self, collection_id: str | int) -> tuple[str, ...] | None:
        """Return the cached membership of one collection without fetching."""
        return self._membership.get(str(collection_id))

    async def game_ids(self, collection_id: str | int) -> list[str]:
        """Return the game ids in one collection, fetching them when not cached.

        A failed fetch returns an empty list and caches nothing.
        """
        key = str(collection_id)
        cached = self._membership.get(key)
        if cached is not None:
            return list(cached)
        loaded = await self._fetch_membership(key)
        return [] if loaded is None else list(loaded)

    async def refresh_membership(self, collection_id: str | int) -> None:
        """Refetch one membership entry, dropping it when the fetch fails."""
        key = str(collection_id)
        if await self._fetch_membership(key) is None:
            self._membership.pop(key, None)

    def add_game_to_membership(self, collection_id: str | int, game_id: str | int) -> None:
        """Record ``game_id`` as a member of a cached collection entry."""
        key = str(collection_id)
        current = self._membership.get(key)
        if current is None:
            return
        game = str(game_id)
        if game not in current:
            self._membership[key] = (*current, game)

    def remove_game_from_membership(self, collection_id: str | int, game_id: str | int) -> None:
        """Drop ``game_id`` from a cached collection entry."""
        key = str(collection_id)
        current = self._membership.get(key)
        if current is None:
            return
        game = str(game_id)
        self._membership[key] = tuple(member for member in current if member != game)

    def collections_containing(self, game_id: str | int) -> list[str]:
        """Return the ids of cached membership entries that include ``game_id``."""
        game = str(game_id)
        return [key for key, members in self._membership.items() if game in members]

    def remove(self, item_id: str | int) -> bool:
        self._membership.pop(str(item_id), None)
        return super().remove(item_id)

    async def _fetch_membership(self, key: str) -> tuple[str, ...] | None:
        if not self._sessions.session.snapshot.is_signed_in:
            return None
        token = self._membership_tokens.get(key, 0) + 1
        self._membership_tokens[key] = token
        try:
            data = await self._http.get_json(
                membership_path(key),
                headers={"Accept": "application/json", **self._sessions.auth_headers()},
            )
        except HttpClientError as exc:
            _LOGGER.warning(
                "collection membership fetch failed: %s",
                exc,
                extra={fields.FAMILY: self.family.value, fields.ITEM_ID: key},
            )
            return None
        members = _member_ids(data)
        if self._membership_tokens.get(key) != token:
            return self._membership.get(key, members)
        self._membership[key] = members
        return members

    def _on_touched(self, item_id: str) -> None:
        super()._on_touched(item_id)
        if item_id in self._membership and running_loop() is not None:
            self._spawn(self.refresh_membership(item_id))

    def _on_deleted(self, event: object) -> None:
        if isinstance(event, ChangeEvent) and event.item_id is not None:
            self._membership.pop(event.item_id, None)
        super()._on_deleted(event)

    def _on_session_changed(self, snapshot: object) -> None:
        if isinstance(snapshot, SessionSnapshot) and snapshot.phase is SessionPhase.UNAUTHENTICATED:
            self._membership.clear()
            self._membership_tokens.clear()
        super()._on_session_changed(snapshot)


def _member_ids(data: object) -> tuple[str, ...]:
    games: Sequence[Any] = []
    if isinstance(data, Mapping):
        games = data.get("games") or []
    ids: list[str] = []
    for game in games:
        raw = game.get("id") if isinstance(game, Mapping) else game
        if raw is not None:
            ids.append(str(raw))
    return tuple(ids)
