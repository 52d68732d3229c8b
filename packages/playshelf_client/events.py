"""In-process event bus and the change-event envelope carried on it.

Delivery is synchronous, in registration order, to the handlers registered
when ``publish`` starts. Nothing is queued, persisted or replayed; a handler
that raises is logged and the remaining handlers still run.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Mapping

from pydantic import BaseModel, ConfigDict, model_validator

from packages.playshelf_client.items import (
    ItemRef,
    ResourceFamily,
    ResourceItem,
    parse_item,
)
from packages.playshelf_shared.logging import fields, get_logger

_LOGGER = get_logger(__name__)

METADATA_RELOADED = "metadataReloaded"
SESSION_CHANGED = "sessionChanged"

Handler = Callable[[Any], None]
Unsubscribe = Callable[[], None]


class EventKind(str, Enum):
    """What happened to a resource family."""

    ADDED = "Added"
    UPDATED = "Updated"
    DELETED = "Deleted"
    RELOAD_ALL = "ReloadAll"


def channel_for(kind: EventKind, family: ResourceFamily | None = None) -> str:
    """Return the channel name for one kind/family pair, e.g. ``gamesAdded``."""
    if kind is EventKind.RELOAD_ALL:
        return METADATA_RELOADED
    if family is None:
        raise ValueError(f"{kind.value} events require a resource family")
    return f"{family.value}{kind.value}"


class ChangeEvent(BaseModel):
    """Immutable ``{kind, family, payload}`` notification.

    ``Added``/``Updated`` carry a full item, or for ``Updated`` only an
    :class:`ItemRef` when the sender cannot build the resulting item.
    ``Deleted`` carries a reference and ``ReloadAll`` carries nothing.
    """

    model_config = ConfigDict(frozen=True)

    kind: EventKind
    family: ResourceFamily | None = None
    payload: ResourceItem | ItemRef | None = None

    @model_validator(mode="before")
    @classmethod
    def _coerce_payload(cls, value: object) -> object:
        if not isinstance(value, Mapping):
            return value
        data = dict(value)
        kind = EventKind(data.get("kind"))
        family = data.get("family")
        payload = data.get("payload")
        if kind is EventKind.RELOAD_ALL:
            data["family"] = None
            data["payload"] = None
            return data
        if family is None:
            raise ValueError(f"{kind.value} events require a resource family")
        family = ResourceFamily(family)
        data["family"] = family
        if payload is None:
            raise ValueError(f"{kind.value} events require a payload")
        if isinstance(payload, (str, int)):
            data["payload"] = ItemRef(id=payload)
        elif kind is EventKind.DELETED:
            data["payload"] = payload if isinstance(payload, ItemRef) else ItemRef.model_validate(
                payload.model_dump() if isinstance(payload, BaseModel) else payload
            )
        elif isinstance(payload, ItemRef):
            data["payload"] = payload
        elif isinstance(payload, ResourceItem) or "title" in payload:
            data["payload"] = parse_item(family, payload)
        else:
            data["payload"] = ItemRef.model_validate(payload)
        return data

    @model_validator(mode="after")
    def _reject_incomplete_add(self) -> "ChangeEvent":
        if self.kind is EventKind.ADDED and not isinstance(self.payload, ResourceItem):
            raise ValueError("Added events must carry the full item")
        return self

    @property
    def channel(self) -> str:
        """Return the bus channel this event is published on."""
        return channel_for(self.kind, self.family)

    @property
    def item(self) -> ResourceItem | None:
        """Return the full item when the payload carries one."""
        return self.payload if isinstance(self.payload, ResourceItem) else None

    @property
    def item_id(self) -> str | None:
        """Return the affected id, if any."""
        return None if self.payload is None else self.payload.id


def added(family: ResourceFamily, item: ResourceItem | Mapping[str, Any]) -> ChangeEvent:
    """Build an ``Added`` event carrying the full new item."""
    return ChangeEvent(kind=EventKind.ADDED, family=family, payload=parse_item(family, item))


def updated(family: ResourceFamily, item: ResourceItem | Mapping[str, Any]) -> ChangeEvent:
    """Build an ``Updated`` event carrying the full resulting item."""
    return ChangeEvent(kind=EventKind.UPDATED, family=family, payload=parse_item(family, item))


def touched(family: ResourceFamily, item_id: str | int) -> ChangeEvent:
    """Build an ``Updated`` event that only names the item; receivers reload."""
    return ChangeEvent(kind=EventKind.UPDATED, family=family, payload=ItemRef(id=item_id))


def deleted(family: ResourceFamily, item_id: str | int) -> ChangeEvent:
    """Build a ``Deleted`` event."""
    return ChangeEvent(kind=EventKind.DELETED, family=family, payload=ItemRef(id=item_id))


def reload_all() -> ChangeEvent:
    """Build the cross-family ``ReloadAll`` event."""
    return ChangeEvent(kind=EventKind.RELOAD_ALL)


class _Subscription:
    __slots__ = ("handler",)

    def __init__(self, handler: Handler) -> None:
        self.handler = handler


class EventBus:
    """Named-channel publish/subscribe within one process."""

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[_Subscription]] = {}

    def subscribe(self, channel: str, handler: Handler) -> Unsubscribe:
        """Register ``handler`` for ``channel`` and return its unsubscribe callable."""
        subscription = _Subscription(handler)
        self._subscriptions.setdefault(channel, []).append(subscription)

        def unsubscribe() -> None:
            current = self._subscriptions.get(channel)
            if current is None or subscription not in current:
                return
            current.remove(subscription)
            if not current:
                del self._subscriptions[channel]

        return unsubscribe

    def publish(self, channel: str, detail: Any = None) -> int:
        """Deliver ``detail`` to the current handlers of ``channel``.

        Returns the number of handlers that completed without raising.
        """
        registered = self._subscriptions.get(channel)
        if not registered:
            return 0
        delivered = 0
        for subscription in tuple(registered):
            if subscription not in registered:
                # Unsubscribed by an earlier handler in this same publish.
                continue
            try:
                subscription.handler(detail)
            except Exception:
                _LOGGER.exception(
                    "event handler failed",
                    extra={fields.CHANNEL: channel},
                )
                continue
            delivered += 1
        return delivered

    def emit(self, event: ChangeEvent) -> int:
        """Publish a change event on its own channel."""
        _LOGGER.debug(
            "change event published: kind=%s",
            event.kind.value,
            extra={
                fields.CHANNEL: event.channel,
                fields.FAMILY: None if event.family is None else event.family.value,
                fields.ITEM_ID: event.item_id,
            },
        )
        return self.publish(event.channel, event)

    def handler_count(self, channel: str) -> int:
        """Return how many handlers are registered for ``channel``."""
        return len(self._subscriptions.get(channel, ()))
