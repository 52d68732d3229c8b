"""Client-local projections of library entities, one model per family."""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class ResourceFamily(str, Enum):
    """Independently cached resource collections."""

    GAMES = "games"
    COLLECTIONS = "collections"
    DEVELOPERS = "developers"
    PUBLISHERS = "publishers"


def _coerce_id(value: object) -> object:
    """Make numeric server ids string-comparable."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return str(int(value)) if float(value).is_integer() else str(value)
    return value


class ItemRef(BaseModel):
    """Reference to one item by id, used when the full item is unknown."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str

    @field_validator("id", mode="before")
    @classmethod
    def _validate_id(cls, value: object) -> object:
        return _coerce_id(value)


class ResourceItem(BaseModel):
    """Fields shared by every family; unknown server fields are kept as extras."""

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    id: str
    title: str = ""
    summary: str | None = None
    cover: str | None = None
    background: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _validate_id(cls, value: object) -> object:
        return _coerce_id(value)

    @field_validator("title", mode="before")
    @classmethod
    def _validate_title(cls, value: object) -> object:
        return "" if value is None else value

    @property
    def sort_key(self) -> str:
        """Case-insensitive title used for list ordering."""
        return self.title.casefold()

    def ref(self) -> ItemRef:
        """Return a reference to this item."""
        return ItemRef(id=self.id)

    def to_payload(self) -> dict[str, Any]:
        """Serialize using server field names."""
        return self.model_dump(by_alias=True, exclude_none=True)


class GameItem(ResourceItem):
    """One library game with its release data and tag lists."""

    day: int | None = None
    month: int | None = None
    year: int | None = None
    stars: float | None = None
    genre: str | list[str] | None = None
    criticratings: float | None = None
    userratings: float | None = None
    command: str | None = None
    themes: list[str] | None = None
    platforms: list[str] | None = None
    game_modes: list[str] | None = None
    player_perspectives: list[str] | None = None
    websites: list[dict[str, Any]] | None = None
    age_ratings: list[dict[str, Any]] | None = None
    developers: list[Any] | None = None
    publishers: list[Any] | None = None
    franchise: str | None = None
    collection: str | None = None
    screenshots: list[str] | None = None
    videos: list[str] | None = None
    game_engines: list[str] | None = None
    keywords: list[str] | None = None
    alternative_names: list[str] | None = None
    similar_games: list[dict[str, Any]] | None = None


class CollectionItem(ResourceItem):
    """A collection-like grouping: collection, developer or publisher."""

    game_count: int | None = None
    show_title: bool = True

    @field_validator("show_title", mode="before")
    @classmethod
    def _validate_show_title(cls, value: object) -> object:
        # Only an explicit false hides the title.
        return True if value is None else value


ITEM_MODELS: dict[ResourceFamily, type[ResourceItem]] = {
    ResourceFamily.GAMES: GameItem,
    ResourceFamily.COLLECTIONS: CollectionItem,
    ResourceFamily.DEVELOPERS: CollectionItem,
    ResourceFamily.PUBLISHERS: CollectionItem,
}


def parse_item(family: ResourceFamily, raw: ResourceItem | Mapping[str, Any]) -> ResourceItem:
    """Validate one raw server record (or pass through a model) for ``family``."""
    model = ITEM_MODELS[family]
    if isinstance(raw, model):
        return raw
    if isinstance(raw, ResourceItem):
        return model.model_validate(raw.to_payload())
    return model.model_validate(dict(raw))


def related_ids(values: list[Any] | None) -> list[str]:
    """Return ids from a game's developer/publisher list.

    Entries are either bare ids or ``{"id": ..., "name": ...}`` objects.
    """
    output: list[str] = []
    for value in values or []:
        raw = value.get("id") if isinstance(value, Mapping) else value
        if raw is not None:
            output.append(str(_coerce_id(raw)))
    return output
