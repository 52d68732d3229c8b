"""Endpoint wiring for the four resource families."""

from __future__ import annotations

from dataclasses import dataclass, field

from packages.playshelf_client.caches.base import ResourceCache
from packages.playshelf_client.caches.collections import CollectionsCache
from packages.playshelf_client.events import EventBus, EventKind, channel_for
from packages.playshelf_client.items import ResourceFamily
from packages.playshelf_client.session import SessionController
from packages.playshelf_shared.config import CacheSettings
from packages.playshelf_shared.http import AsyncHttpClient

GAMES_ADDED = channel_for(EventKind.ADDED, ResourceFamily.GAMES)


@dataclass(frozen=True, slots=True)
class FamilySpec:
    """List endpoint and cross-family reload channels for one family."""

    family: ResourceFamily
    path: str
    params: dict[str, str] = field(default_factory=dict)
    reload_on: tuple[str, ...] = ()


FAMILY_SPECS: dict[ResourceFamily, FamilySpec] = {
    ResourceFamily.GAMES: FamilySpec(
        family=ResourceFamily.GAMES,
        path="/libraries/library/games",
        params={"sort": "title"},
    ),
    ResourceFamily.COLLECTIONS: FamilySpec(
        family=ResourceFamily.COLLECTIONS,
        path="/collections",
    ),
    # A new game may bring developers or publishers that were not listed yet.
    ResourceFamily.DEVELOPERS: FamilySpec(
        family=ResourceFamily.DEVELOPERS,
        path="/developers",
        reload_on=(GAMES_ADDED,),
    ),
    ResourceFamily.PUBLISHERS: FamilySpec(
        family=ResourceFamily.PUBLISHERS,
        path="/publishers",
        reload_on=(GAMES_ADDED,),
    ),
}


def build_resource_caches(
    *,
    http: AsyncHttpClient,
    sessions: SessionController,
    bus: EventBus,
    settings: CacheSettings,
) -> dict[ResourceFamily, ResourceCache]:
    """Create one unbound cache per family."""
    caches: dict[ResourceFamily, ResourceCache] = {}
    for family, spec in FAMILY_SPECS.items():
        cache_cls = CollectionsCache if family is ResourceFamily.COLLECTIONS else ResourceCache
        caches[family] = cache_cls(
            family=family,
            path=spec.path,
            params=spec.params,
            http=http,
            sessions=sessions,
            bus=bus,
            load_delay_seconds=settings.load_delay(family.value),
            reload_on=spec.reload_on,
        )
    return caches
