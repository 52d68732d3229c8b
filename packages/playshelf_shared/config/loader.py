"""Configuration loading utilities with deterministic precedence.

The cascade is always:
1) Explicit overrides (``cli_params``)
2) Environment variables
3) ~/.config/playshelf/playshelf.yaml
4) Built-in model defaults

Environment variable format:
- Prefix: ``PLAYSHELF_``
- Nested keys: ``__`` separator
- Example: ``PLAYSHELF_AUTH__DEV_TOKEN=abc`` -> ``auth.dev_token = "abc"``
"""

from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any, Mapping

from pydantic_settings import SettingsConfigDict

from .models import PlayshelfSettings

ENV_PREFIX = "PLAYSHELF_"


def load_settings(
    *,
    cli_params: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
    config_path: str | Path | None = None,
) -> PlayshelfSettings:
    """Load typed settings by applying the standard Playshelf cascade.

    ``environ`` replaces process environment lookup for the prefixed keys it
    carries; process variables are still consulted by pydantic-settings at a
    lower precedence than anything passed here.
    """
    settings_cls = (
        PlayshelfSettings if config_path is None else _scoped_settings(Path(config_path))
    )
    init_values: dict[str, Any] = {}
    if environ is not None:
        init_values = _merge_dicts(
            init_values, _load_env_config(environ=environ, prefix=ENV_PREFIX)
        )
    if cli_params is not None:
        init_values = _merge_dicts(init_values, cli_params)
    return settings_cls(**init_values)


def _scoped_settings(path: Path) -> type[PlayshelfSettings]:
    """Return a settings class reading YAML from ``path`` instead of the default."""

    class _ScopedPlayshelfSettings(PlayshelfSettings):
        model_config = SettingsConfigDict(yaml_file=path)

    return _ScopedPlayshelfSettings


def _load_env_config(*, environ: Mapping[str, str], prefix: str) -> dict[str, Any]:
    """Turn ``PREFIX_SECTION__FIELD=value`` pairs into a nested mapping."""
    nested: dict[str, Any] = {}
    for name, raw in environ.items():
        if not name.startswith(prefix):
            continue
        keys = [part.strip().lower() for part in name[len(prefix) :].split("__")]
        keys = [key for key in keys if key]
        if not keys:
            continue
        section = nested
        for key in keys[:-1]:
            if not isinstance(section.get(key), dict):
                section[key] = {}
            section = section[key]
        section[keys[-1]] = _coerce_scalar(raw)
    return nested


def _merge_dicts(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Deep-merge two mappings; values from ``override`` win."""
    merged = copy.deepcopy(dict(base))
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            merged[key] = _merge_dicts(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _coerce_scalar(raw: str) -> Any:
    """Interpret booleans, nulls and JSON lists/objects in an env value.

    Numbers stay strings; pydantic coerces them per field, which keeps
    all-digit tokens intact.
    """
    text = raw.strip()
    lowered = text.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if lowered in ("null", "none"):
        return None
    if text[:1] in ("{", "["):
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return raw
    return raw
