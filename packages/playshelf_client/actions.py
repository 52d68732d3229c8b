"""Server mutations that keep every cache coherent through change events.

Actions never write to caches' item lists directly. Each one performs its
request and publishes the matching change event; the caches react. When the
action has the resulting item it publishes it in full, otherwise it
publishes a ``touched`` reference and the receiving cache reloads.
"""

from __future__ import annotations

import json
from typing import Any, Mapping

import httpx

from packages.playshelf_client.caches import CollectionsCache, membership_path
from packages.playshelf_client.errors import ActionError, NotAuthenticatedError
from packages.playshelf_client.events import (
    EventBus,
    added,
    deleted,
    reload_all,
    touched,
    updated,
)
from packages.playshelf_client.items import (
    CollectionItem,
    GameItem,
    ResourceFamily,
    related_ids,
)
from packages.playshelf_client.session import SessionController
from packages.playshelf_shared.http import (
    AsyncHttpClient,
    HttpClientError,
    HttpJsonDecodeError,
    HttpStatusError,
    decode_json,
)
from packages.playshelf_shared.logging import fields, get_logger, log_context
from packages.playshelf_shared.storage import KeyValueStorage, remember_collection

_LOGGER = get_logger(__name__)

ADD_GAME_PATH = "/games/add-from-igdb"
RELOAD_METADATA_PATH = "/reload-games"

# Response envelope key per family, e.g. ``{"developer": {...}}``.
_SINGULAR = {
    ResourceFamily.GAMES: "game",
    ResourceFamily.COLLECTIONS: "collection",
    ResourceFamily.DEVELOPERS: "developer",
    ResourceFamily.PUBLISHERS: "publisher",
}


class LibraryActions:
    """User-triggered library mutations."""

    def __init__(
        self,
        *,
        http: AsyncHttpClient,
        sessions: SessionController,
        bus: EventBus,
        storage: KeyValueStorage,
        collections: CollectionsCache,
    ) -> None:
        self._http = http
        self._sessions = sessions
        self._bus = bus
        self._storage = storage
        self._collections = collections

    async def add_game(self, payload: Mapping[str, Any]) -> GameItem:
        """Add a game from an external metadata record and publish it."""
        data = await self._call("add_game", "POST", ADD_GAME_PATH, json=dict(payload))
        raw = dict(_envelope(data, "game") or {})
        if "id" not in raw and isinstance(data, Mapping) and data.get("gameId") is not None:
            raw["id"] = data["gameId"]
        if raw.get("id") is None:
            raise ActionError(message="add_game response did not identify the game", operation="add_game")
        raw.setdefault("title", payload.get("name") or payload.get("title") or "")
        game = GameItem.model_validate(raw)
        self._bus.emit(added(ResourceFamily.GAMES, game))
        return game

    async def edit_game(self, game_id: str | int, changes: Mapping[str, Any]) -> GameItem:
        """Apply field changes to one game and publish the resulting item."""
        data = await self._call("edit_game", "PUT", f"/games/{game_id}", json=dict(changes))
        raw = _envelope(data, "game")
        if raw is None:
            # Saved, but the caller cannot see the result; let the games list resync.
            self._bus.emit(touched(ResourceFamily.GAMES, game_id))
            raise ActionError(message="edit_game response did not include the game", operation="edit_game")
        game = GameItem.model_validate({"id": game_id, **raw})
        self._bus.emit(updated(ResourceFamily.GAMES, game))
        return game

    async def delete_game(self, game_id: str | int) -> None:
        """Delete one game; collections that contained it are told to reload."""
        affected = await self._collections_with_game(game_id)
        await self._call("delete_game", "DELETE", f"/games/{game_id}")
        self._bus.emit(deleted(ResourceFamily.GAMES, game_id))
        for collection_id in affected:
            self._collections.remove_game_from_membership(collection_id, game_id)
            self._bus.emit(touched(ResourceFamily.COLLECTIONS, collection_id))

    async def delete_collection(self, collection_id: str | int) -> None:
        await self._delete(ResourceFamily.COLLECTIONS, collection_id)

    async def delete_developer(self, developer_id: str | int) -> None:
        await self._delete(ResourceFamily.DEVELOPERS, developer_id)

    async def delete_publisher(self, publisher_id: str | int) -> None:
        await self._delete(ResourceFamily.PUBLISHERS, publisher_id)

    async def create_collection(self, title: str, summary: str = "") -> CollectionItem:
        return await self._create(ResourceFamily.COLLECTIONS, title, summary)

    async def create_developer(self, title: str, summary: str = "") -> CollectionItem:
        return await self._create(ResourceFamily.DEVELOPERS, title, summary)

    async def create_publisher(self, title: str, summary: str = "") -> CollectionItem:
        return await self._create(ResourceFamily.PUBLISHERS, title, summary)

    async def add_game_to_collection(self, game_id: str | int, collection_id: str | int) -> bool:
        """Append a game to a collection's order.

        Returns ``False`` without writing when the game is already a member.
        A successful add moves the collection to the front of the recent list.
        """
        operation = "add_game_to_collection"
        current = await self._current_members(operation, collection_id)
        game = str(game_id)
        if game in current:
            _LOGGER.info(
                "game already in collection",
                extra={fields.ITEM_ID: game, fields.OPERATION: operation},
            )
            return False
        await self._put_order(operation, collection_id, [*current, game])
        self._collections.add_game_to_membership(collection_id, game)
        self._bus.emit(touched(ResourceFamily.COLLECTIONS, collection_id))
        remember_collection(self._storage, str(collection_id))
        return True

    async def remove_game_from_collection(self, game_id: str | int, collection_id: str | int) -> bool:
        """Drop a game from a collection's order; ``False`` when it was not a member."""
        operation = "remove_game_from_collection"
        current = await self._current_members(operation, collection_id)
        game = str(game_id)
        if game not in current:
            return False
        await self._put_order(operation, collection_id, [member for member in current if member != game])
        self._collections.remove_game_from_membership(collection_id, game)
        self._bus.emit(touched(ResourceFamily.COLLECTIONS, collection_id))
        return True

    async def add_game_to_developer(
        self, game_id: str | int, developer_id: str | int, title: str
    ) -> GameItem | None:
        """Credit a developer on a game; ``None`` when already credited."""
        return await self._link_game(ResourceFamily.DEVELOPERS, game_id, developer_id, title)

    async def add_game_to_publisher(
        self, game_id: str | int, publisher_id: str | int, title: str
    ) -> GameItem | None:
        """Credit a publisher on a game; ``None`` when already credited."""
        return await self._link_game(ResourceFamily.PUBLISHERS, game_id, publisher_id, title)

    async def reload_metadata(self) -> None:
        """Ask the server to rescan game metadata, then have every cache reload."""
        await self._call("reload_metadata", "POST", RELOAD_METADATA_PATH)
        self._bus.emit(reload_all())

    async def _delete(self, family: ResourceFamily, item_id: str | int) -> None:
        await self._call(f"delete_{_SINGULAR[family]}", "DELETE", f"/{family.value}/{item_id}")
        self._bus.emit(deleted(family, item_id))

    async def _create(self, family: ResourceFamily, title: str, summary: str) -> CollectionItem:
        singular = _SINGULAR[family]
        operation = f"create_{singular}"
        clean_title = title.strip()
        if clean_title == "":
            raise ActionError(message=f"{singular} title is required", operation=operation)

        with log_context({fields.OPERATION: operation}):
            response = await self._send(
                operation,
                "POST",
                f"/{family.value}",
                json={"title": clean_title, "summary": summary.strip()},
                raise_for_status=False,
            )
            data = _decode_or_empty(response)
            raw = _envelope(data, singular)
            if response.status_code == 409 and raw is not None:
                _LOGGER.info("%s already exists; returning it", singular)
                return CollectionItem.model_validate(raw)
            if response.is_error or raw is None:
                raise ActionError(
                    message=_error_message(data, f"Failed to create {singular}: {response.status_code}"),
                    operation=operation,
                    status_code=response.status_code,
                )
            item = CollectionItem.model_validate({"gameCount": 0, **raw})
            self._bus.emit(added(family, item))
            return item

    async def _link_game(
        self,
        family: ResourceFamily,
        game_id: str | int,
        related_id: str | int,
        title: str,
    ) -> GameItem | None:
        field_name = family.value
        operation = f"add_game_to_{_SINGULAR[family]}"
        data = await self._call(operation, "GET", f"/games/{game_id}")
        game = _envelope(data, "game") or (data if isinstance(data, Mapping) else {})
        current = list(game.get(field_name) or [])
        if str(related_id) in related_ids(current):
            return None

        linked = [
            {"id": entry.get("id"), "name": entry.get("name")}
            if isinstance(entry, Mapping)
            else {"id": entry, "name": str(entry)}
            for entry in current
        ]
        linked.append({"id": _wire_id(related_id), "name": title.strip()})
        result = await self._call(operation, "PUT", f"/games/{game_id}", json={field_name: linked})

        raw = _envelope(result, "game")
        item: GameItem | None = None
        if raw is None:
            self._bus.emit(touched(ResourceFamily.GAMES, game_id))
        else:
            item = GameItem.model_validate({"id": game_id, **raw})
            self._bus.emit(updated(ResourceFamily.GAMES, item))
        self._bus.emit(touched(family, related_id))
        return item

    async def _collections_with_game(self, game_id: str | int) -> list[str]:
        """Return collections containing ``game_id``; lookup failures yield no ids."""
        collection_ids = [item.id for item in self._collections.items]
        if not collection_ids:
            try:
                data = await self._call("delete_game", "GET", "/collections")
            except ActionError as exc:
                _LOGGER.warning("could not list collections before delete: %s", exc)
                return []
            collection_ids = [
                str(raw["id"])
                for raw in (_envelope(data, "collections", list) or [])
                if isinstance(raw, Mapping) and raw.get("id") is not None
            ]
        game = str(game_id)
        affected: list[str] = []
        for collection_id in collection_ids:
            if game in await self._collections.game_ids(collection_id):
                affected.append(collection_id)
        return affected

    async def _current_members(self, operation: str, collection_id: str | int) -> list[str]:
        data = await self._call(operation, "GET", membership_path(collection_id))
        return [
            str(raw["id"])
            for raw in (_envelope(data, "games", list) or [])
            if isinstance(raw, Mapping) and raw.get("id") is not None
        ]

    async def _put_order(self, operation: str, collection_id: str | int, game_ids: list[str]) -> None:
        await self._call(
            operation,
            "PUT",
            f"{membership_path(collection_id)}/order",
            json={"gameIds": game_ids},
        )

    async def _call(self, operation: str, method: str, path: str, **kwargs: Any) -> Any:
        """Send one request and decode its JSON body (``{}`` when empty)."""
        response = await self._send(operation, method, path, **kwargs)
        if not response.content:
            return {}
        try:
            return decode_json(response)
        except HttpJsonDecodeError as exc:
            raise ActionError(
                message=str(exc), operation=operation, status_code=exc.status_code, cause=exc
            ) from exc

    async def _send(self, operation: str, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if not self._sessions.session.snapshot.is_signed_in:
            raise NotAuthenticatedError(message=f"{operation} requires a signed-in session")
        headers = self._sessions.auth_headers()
        try:
            return await self._http.request(
                method, path, headers={"Accept": "application/json", **headers}, **kwargs
            )
        except HttpStatusError as exc:
            _LOGGER.warning(
                "library action rejected",
                extra={fields.OPERATION: operation, fields.STATUS_CODE: exc.status_code},
            )
            raise ActionError(
                message=_error_message(_parse_body(exc.response_body), str(exc)),
                operation=operation,
                status_code=exc.status_code,
                cause=exc,
            ) from exc
        except HttpClientError as exc:
            _LOGGER.warning("library action failed", exc_info=exc, extra={fields.OPERATION: operation})
            raise ActionError(message=str(exc), operation=operation, cause=exc) from exc


def _envelope(data: object, key: str, kind: type = Mapping) -> Any:
    """Return ``data[key]`` when it has the expected shape."""
    if not isinstance(data, Mapping):
        return None
    value = data.get(key)
    return value if isinstance(value, kind) else None


def _wire_id(value: str | int) -> str | int:
    text = str(value)
    return int(text) if text.isdigit() else text


def _decode_or_empty(response: httpx.Response) -> Any:
    try:
        return decode_json(response)
    except HttpJsonDecodeError:
        return {}


def _parse_body(body: str | None) -> Any:
    try:
        return json.loads(body or "")
    except ValueError:
        return {}


def _error_message(data: object, default: str) -> str:
    if isinstance(data, Mapping) and isinstance(data.get("error"), str):
        return data["error"]
    return default
