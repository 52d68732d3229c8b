"""Client-side state layer for the Playshelf game library."""

from packages.playshelf_client.actions import LibraryActions
from packages.playshelf_client.caches import CollectionsCache, ResourceCache
from packages.playshelf_client.client import LibraryClient
from packages.playshelf_client.errors import ActionError, NotAuthenticatedError, PlayshelfError
from packages.playshelf_client.events import ChangeEvent, EventBus, EventKind
from packages.playshelf_client.interceptor import UnauthorizedInterceptor
from packages.playshelf_client.items import CollectionItem, GameItem, ResourceFamily, ResourceItem
from packages.playshelf_client.navigation import MemoryNavigator, Navigator
from packages.playshelf_client.session import SessionController, SessionPhase, SessionSnapshot

__all__ = [
    "ActionError",
    "ChangeEvent",
    "CollectionItem",
    "CollectionsCache",
    "EventBus",
    "EventKind",
    "GameItem",
    "LibraryActions",
    "LibraryClient",
    "MemoryNavigator",
    "Navigator",
    "NotAuthenticatedError",
    "PlayshelfError",
    "ResourceCache",
    "ResourceFamily",
    "ResourceItem",
    "SessionController",
    "SessionPhase",
    "SessionSnapshot",
    "UnauthorizedInterceptor",
]
