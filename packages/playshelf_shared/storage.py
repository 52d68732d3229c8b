"""Persisted key-value storage for client installation state.

Holds the long-lived OAuth credential, its owning identity id, the OAuth
client id/secret pair, the display language and recently used collections.
Values are strings; callers serialize anything richer themselves.
"""

from __future__ import annotations

import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from tempfile import NamedTemporaryFile

from packages.playshelf_shared.logging import get_logger

_LOGGER = get_logger(__name__)

TWITCH_TOKEN = "twitch_token"
TWITCH_USER_ID = "twitch_user_id"
TWITCH_CLIENT_ID = "twitch_client_id"
TWITCH_CLIENT_SECRET = "twitch_client_secret"
LANGUAGE = "language"
RECENT_COLLECTIONS = "recent_collections"


class KeyValueStorage(ABC):
    """String key-value store that survives process restarts."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the stored value, or ``None`` when absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store one value, replacing any previous one."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete one key; absent keys are ignored."""

    def remove_many(self, *keys: str) -> None:
        """Delete several keys."""
        for key in keys:
            self.remove(key)


class MemoryStorage(KeyValueStorage):
    """Process-local storage for headless sessions and tests."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def remove(self, key: str) -> None:
        self._values.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        """Return a copy of every stored value."""
        return dict(self._values)


class JsonFileStorage(KeyValueStorage):
    """Storage persisted as one JSON object, rewritten atomically per change."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._values = self._read()

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        if self._values.get(key) == value:
            return
        self._values[key] = value
        self._write()

    def remove(self, key: str) -> None:
        if self._values.pop(key, None) is not None:
            self._write()

    def _read(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            parsed = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            _LOGGER.warning(
                "client storage unreadable, starting empty: path=%s",
                self._path,
                exc_info=exc,
            )
            return {}
        if not isinstance(parsed, dict):
            _LOGGER.warning("client storage is not an object, starting empty: path=%s", self._path)
            return {}
        return {str(key): str(value) for key, value in parsed.items() if value is not None}

    def _write(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path: Path | None = None
        try:
            with NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                prefix=f".{self._path.name}-",
                suffix=".tmp",
                dir=self._path.parent,
                delete=False,
            ) as handle:
                tmp_path = Path(handle.name)
                json.dump(self._values, handle, indent=2, sort_keys=True)
                handle.flush()
            os.replace(tmp_path, self._path)
        finally:
            if tmp_path is not None and tmp_path.exists():
                tmp_path.unlink()


def get_oauth_client(storage: KeyValueStorage) -> tuple[str, str] | None:
    """Return the configured OAuth ``(client_id, client_secret)`` pair, if complete."""
    client_id = (storage.get(TWITCH_CLIENT_ID) or "").strip()
    client_secret = (storage.get(TWITCH_CLIENT_SECRET) or "").strip()
    if client_id == "" or client_secret == "":
        return None
    return client_id, client_secret


def set_oauth_client(storage: KeyValueStorage, *, client_id: str, client_secret: str) -> None:
    """Persist the OAuth client id/secret pair used by login."""
    storage.set(TWITCH_CLIENT_ID, client_id.strip())
    storage.set(TWITCH_CLIENT_SECRET, client_secret.strip())


def get_language(storage: KeyValueStorage, default: str = "en") -> str:
    """Return the last selected display language."""
    return storage.get(LANGUAGE) or default


def set_language(storage: KeyValueStorage, language: str) -> None:
    """Persist the selected display language."""
    storage.set(LANGUAGE, language)


def get_recent_collections(storage: KeyValueStorage) -> list[str]:
    """Return recently used collection ids, most recent first."""
    raw = storage.get(RECENT_COLLECTIONS)
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return []
    if not isinstance(parsed, list):
        return []
    return [str(value) for value in parsed]


def remember_collection(storage: KeyValueStorage, collection_id: str, *, limit: int = 10) -> list[str]:
    """Move ``collection_id`` to the front of the recent list and persist it."""
    recent = [value for value in get_recent_collections(storage) if value != collection_id]
    recent.insert(0, collection_id)
    recent = recent[:limit]
    storage.set(RECENT_COLLECTIONS, json.dumps(recent))
    return recent
