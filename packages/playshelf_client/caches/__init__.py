"""Per-family resource caches kept coherent through the event bus."""

from packages.playshelf_client.caches.base import CacheEntry, ResourceCache, sort_items
from packages.playshelf_client.caches.collections import CollectionsCache, membership_path
from packages.playshelf_client.caches.families import (
    FAMILY_SPECS,
    FamilySpec,
    build_resource_caches,
)

__all__ = [
    "FAMILY_SPECS",
    "CacheEntry",
    "CollectionsCache",
    "FamilySpec",
    "ResourceCache",
    "build_resource_caches",
    "membership_path",
    "sort_items",
]
