"""Tests for library actions and the change events they publish."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import pytest

from packages.playshelf_client.actions import LibraryActions
from packages.playshelf_client.caches import CollectionsCache
from packages.playshelf_client.errors import ActionError, NotAuthenticatedError
from packages.playshelf_client.events import METADATA_RELOADED
from packages.playshelf_client.items import ResourceFamily
from packages.playshelf_client.session import SessionPhase
from packages.playshelf_shared.storage import TWITCH_TOKEN, get_recent_collections
from tests.client.helpers import DEV_TOKEN, FakeApi, Harness, build_harness, signed_in


def _actions(harness: Harness) -> LibraryActions:
    collections = harness.cache(ResourceFamily.COLLECTIONS)
    assert isinstance(collections, CollectionsCache)
    return LibraryActions(
        http=harness.http,
        sessions=harness.controller,
        bus=harness.bus,
        storage=harness.storage,
        collections=collections,
    )


async def _ready(api: FakeApi, *, dev_token: str = "") -> tuple[Harness, LibraryActions]:
    harness = await signed_in(api, dev_token=dev_token)
    await harness.drain()
    api.requests.clear()
    return harness, _actions(harness)


def test_add_game_publishes_the_new_game() -> None:
    """The games cache gains the item; developers and publishers refetch."""

    async def scenario() -> None:
        api = FakeApi()
        api.json("POST", "/games/add-from-igdb", {"gameId": 31, "game": {"title": "Tunic", "year": 2022}})
        harness, actions = await _ready(api)
        try:
            game = await actions.add_game({"igdbId": 9001, "name": "Tunic"})
            await harness.drain()
        finally:
            await harness.aclose()

        assert game.id == "31"
        assert game.year == 2022
        assert [item.id for item in harness.cache(ResourceFamily.GAMES).items] == ["31"]
        assert api.body(api.calls("POST", "/games/add-from-igdb")[0]) == {"igdbId": 9001, "name": "Tunic"}
        assert len(api.calls("GET", "/developers")) == 1
        assert len(api.calls("GET", "/publishers")) == 1

    asyncio.run(scenario())


def test_edit_game_patches_games_cache() -> None:
    async def scenario() -> None:
        api = FakeApi()
        api.json("PUT", "/games/1", {"game": {"id": 1, "title": "Alpha", "stars": 5}})
        harness, actions = await _ready(api)
        games = harness.cache(ResourceFamily.GAMES)
        try:
            games.add({"id": "1", "title": "Alpha"})
            await actions.edit_game(1, {"stars": 5})
        finally:
            await harness.aclose()

        assert games.items[0].stars == 5
        assert api.body(api.calls("PUT", "/games/1")[0]) == {"stars": 5}

    asyncio.run(scenario())


def test_create_developer_publishes_added() -> None:
    async def scenario() -> None:
        api = FakeApi()
        api.json("POST", "/developers", {"developer": {"id": 7, "title": "Nova Games"}}, status_code=201)
        harness, actions = await _ready(api)
        try:
            developer = await actions.create_developer("  Nova Games ")
        finally:
            await harness.aclose()

        assert developer.id == "7"
        assert developer.game_count == 0
        assert [item.title for item in harness.cache(ResourceFamily.DEVELOPERS).items] == ["Nova Games"]
        assert api.body(api.calls("POST", "/developers")[0]) == {"title": "Nova Games", "summary": ""}

    asyncio.run(scenario())


def test_create_conflict_returns_existing_without_publishing() -> None:
    """A 409 carrying the existing entity is treated as success."""

    async def scenario() -> None:
        api = FakeApi()
        api.json("POST", "/publishers", {"publisher": {"id": 3, "title": "Annapurna"}}, status_code=409)
        harness, actions = await _ready(api)
        try:
            publisher = await actions.create_publisher("Annapurna")
        finally:
            await harness.aclose()

        assert publisher.id == "3"
        assert harness.cache(ResourceFamily.PUBLISHERS).items == ()

    asyncio.run(scenario())


def test_create_requires_title() -> None:
    async def scenario() -> None:
        api = FakeApi()
        harness, actions = await _ready(api)
        try:
            with pytest.raises(ActionError) as exc_info:
                await actions.create_collection("   ")
        finally:
            await harness.aclose()

        assert exc_info.value.operation == "create_collection"
        assert api.requests == []

    asyncio.run(scenario())


def test_add_game_to_collection_appends_and_records_recent() -> None:
    async def scenario() -> None:
        api = FakeApi()
        api.json("GET", "/collections/4/games", {"games": [{"id": 1}]})
        api.json("PUT", "/collections/4/games/order", {"success": True})
        harness, actions = await _ready(api)
        collections = harness.cache(ResourceFamily.COLLECTIONS)
        assert isinstance(collections, CollectionsCache)
        try:
            await collections.game_ids(4)
            added = await actions.add_game_to_collection(2, 4)
            patched = collections.cached_game_ids(4)
            await harness.drain()
        finally:
            await harness.aclose()

        assert added is True
        assert patched == ("1", "2")
        order = api.calls("PUT", "/collections/4/games/order")
        assert api.body(order[0]) == {"gameIds": ["1", "2"]}
        assert get_recent_collections(harness.storage) == ["4"]

    asyncio.run(scenario())


def test_add_game_already_in_collection_is_skipped() -> None:
    async def scenario() -> None:
        api = FakeApi()
        api.json("GET", "/collections/4/games", {"games": [{"id": 2}]})
        harness, actions = await _ready(api)
        try:
            added = await actions.add_game_to_collection("2", "4")
        finally:
            await harness.aclose()

        assert added is False
        assert api.calls("PUT", "/collections/4/games/order") == []
        assert get_recent_collections(harness.storage) == []

    asyncio.run(scenario())


def test_remove_game_from_collection_writes_remaining_order() -> None:
    async def scenario() -> None:
        api = FakeApi()
        api.json("GET", "/collections/4/games", {"games": [{"id": 1}, {"id": 2}, {"id": 3}]})
        api.json("PUT", "/collections/4/games/order", {"success": True})
        harness, actions = await _ready(api)
        try:
            removed = await actions.remove_game_from_collection(2, 4)
            await harness.drain()
        finally:
            await harness.aclose()

        assert removed is True
        assert api.body(api.calls("PUT", "/collections/4/games/order")[0]) == {"gameIds": ["1", "3"]}
        # The touched collection reloads the collections list.
        assert len(api.calls("GET", "/collections")) == 1

    asyncio.run(scenario())


def test_delete_game_touches_collections_that_contained_it() -> None:
    async def scenario() -> None:
        api = FakeApi()
        api.json("GET", "/collections", {"collections": [{"id": 4, "title": "A"}, {"id": 5, "title": "B"}]})
        api.json("GET", "/collections/4/games", {"games": [{"id": 9}]})
        api.json("GET", "/collections/5/games", {"games": [{"id": 1}]})
        api.status("DELETE", "/games/9", 204)
        harness, actions = await _ready(api)
        games = harness.cache(ResourceFamily.GAMES)
        collections = harness.cache(ResourceFamily.COLLECTIONS)
        assert isinstance(collections, CollectionsCache)
        try:
            games.add({"id": "9", "title": "Doomed"})
            touched: list[str] = []
            harness.bus.subscribe("collectionsUpdated", lambda event: touched.append(event.item_id))
            await actions.delete_game(9)
            api.json("GET", "/collections/4/games", {"games": []})
            await harness.drain()
        finally:
            await harness.aclose()

        assert games.items == ()
        assert touched == ["4"]
        assert collections.cached_game_ids(4) == ()

    asyncio.run(scenario())


def test_delete_developer_removes_it_from_cache() -> None:
    async def scenario() -> None:
        api = FakeApi()
        api.status("DELETE", "/developers/7", 204)
        harness, actions = await _ready(api)
        developers = harness.cache(ResourceFamily.DEVELOPERS)
        try:
            developers.add({"id": "7", "title": "Nova Games"})
            await actions.delete_developer("7")
        finally:
            await harness.aclose()

        assert developers.items == ()

    asyncio.run(scenario())


def test_add_game_to_developer_extends_credit_list() -> None:
    async def scenario() -> None:
        api = FakeApi()
        api.json("GET", "/games/5", {"game": {"id": 5, "title": "Tunic", "developers": [{"id": 1, "name": "Isometricorp"}]}})

        def save(request: httpx.Request) -> httpx.Response:
            body: dict[str, Any] = api.body(request)
            return httpx.Response(
                200,
                json={"game": {"id": 5, "title": "Tunic", "developers": body["developers"]}},
                request=request,
            )

        api.on("PUT", "/games/5", save)
        harness, actions = await _ready(api)
        games = harness.cache(ResourceFamily.GAMES)
        try:
            games.add({"id": "5", "title": "Tunic"})
            updated = await actions.add_game_to_developer(5, "7", "Nova Games ")
            await harness.drain()
        finally:
            await harness.aclose()

        assert updated is not None
        assert api.body(api.calls("PUT", "/games/5")[0]) == {
            "developers": [{"id": 1, "name": "Isometricorp"}, {"id": 7, "name": "Nova Games"}]
        }
        assert games.items[0].developers == [{"id": 1, "name": "Isometricorp"}, {"id": 7, "name": "Nova Games"}]
        assert len(api.calls("GET", "/developers")) == 1

    asyncio.run(scenario())


def test_add_game_to_publisher_skips_existing_credit() -> None:
    async def scenario() -> None:
        api = FakeApi()
        api.json("GET", "/games/5", {"game": {"id": 5, "title": "Tunic", "publishers": [3]}})
        harness, actions = await _ready(api)
        try:
            result = await actions.add_game_to_publisher(5, 3, "Finji")
        finally:
            await harness.aclose()

        assert result is None
        assert api.calls("PUT", "/games/5") == []

    asyncio.run(scenario())


def test_reload_metadata_publishes_reload_all() -> None:
    async def scenario() -> None:
        api = FakeApi()
        api.json("POST", "/reload-games", {"count": 12})
        harness, actions = await _ready(api)
        seen: list[object] = []
        harness.bus.subscribe(METADATA_RELOADED, seen.append)
        try:
            await actions.reload_metadata()
            await harness.drain()
        finally:
            await harness.aclose()

        assert len(seen) == 1
        assert len(api.calls("GET", "/libraries/library/games")) == 1

    asyncio.run(scenario())


def test_server_failure_raises_action_error() -> None:
    async def scenario() -> None:
        api = FakeApi()
        api.json("DELETE", "/collections/4", {"error": "collection is locked"}, status_code=423)
        harness, actions = await _ready(api)
        try:
            with pytest.raises(ActionError) as exc_info:
                await actions.delete_collection(4)
        finally:
            await harness.aclose()

        assert exc_info.value.status_code == 423
        assert str(exc_info.value) == "collection is locked"

    asyncio.run(scenario())


def test_actions_require_a_credential() -> None:
    async def scenario() -> None:
        api = FakeApi()
        harness = build_harness(api).with_caches()
        actions = _actions(harness)
        try:
            with pytest.raises(NotAuthenticatedError):
                await actions.reload_metadata()
        finally:
            await harness.aclose()

        assert api.requests == []

    asyncio.run(scenario())


def test_actions_stop_after_logout_even_with_fallback_credentials() -> None:
    """Persisted or override tokens do not authorize actions once signed out."""

    async def scenario() -> None:
        api = FakeApi()
        api.status("POST", "/auth/logout", 204)
        api.json("POST", "/developers", {"developer": {"id": 9, "title": "Ghost Dev"}}, status_code=201)
        harness, actions = await _ready(api, dev_token=DEV_TOKEN)
        developers = harness.cache(ResourceFamily.DEVELOPERS)
        try:
            harness.controller.logout()
            harness.storage.set(TWITCH_TOKEN, "stored-token")
            with pytest.raises(NotAuthenticatedError):
                await actions.create_developer("Ghost Dev")
            await harness.drain()
        finally:
            await harness.aclose()

        assert harness.controller.session.phase is SessionPhase.UNAUTHENTICATED
        assert harness.controller.get_api_token() == "stored-token"
        assert developers.items == ()
        assert api.calls("POST", "/developers") == []

    asyncio.run(scenario())
