"""Typed configuration models for Playshelf client runtime settings."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "playshelf" / "playshelf.yaml"
DEFAULT_STORAGE_PATH = Path.home() / ".config" / "playshelf" / "storage.json"


class LoggingSettings(BaseModel):
    """Structured logging configuration for the client process."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    json_output: bool = True
    service: str = "playshelf"
    environment: str = "dev"


class ApiSettings(BaseModel):
    """Location and transport behavior of the library API."""

    model_config = ConfigDict(frozen=True)

    base_url: str = "http://localhost:3000"
    server_url: str | None = None
    timeout_seconds: float = Field(default=90.0, gt=0)
    token_header: str = "X-Auth-Token"
    client_id_header: str = "X-Twitch-Client-Id"

    @field_validator("base_url", mode="before")
    @classmethod
    def _validate_base_url(cls, value: object) -> object:
        """Reject blank API base URLs and drop trailing slashes."""
        if isinstance(value, str):
            normalized = value.strip().rstrip("/")
            if normalized == "":
                raise ValueError("api.base_url must be non-empty")
            return normalized
        return value

    @property
    def resolved_server_url(self) -> str:
        """Return the hard-reset redirect target for session invalidation."""
        if self.server_url is None or self.server_url.strip() == "":
            return self.base_url
        return self.server_url


class AuthSettings(BaseModel):
    """Session validation settings."""

    model_config = ConfigDict(frozen=True)

    dev_token: str = ""
    probe_timeout_seconds: float = Field(default=30.0, gt=0)
    exempt_paths: tuple[str, ...] = ("/auth/me", "/auth/logout", "/settings")


class CacheSettings(BaseModel):
    """Initial-load stagger delays, in seconds, per resource family."""

    model_config = ConfigDict(frozen=True)

    games_load_delay_seconds: float = Field(default=0.0, ge=0)
    collections_load_delay_seconds: float = Field(default=0.3, ge=0)
    developers_load_delay_seconds: float = Field(default=0.6, ge=0)
    publishers_load_delay_seconds: float = Field(default=1.2, ge=0)

    def load_delay(self, family: str) -> float:
        """Return the stagger delay configured for one family name."""
        return float(getattr(self, f"{family}_load_delay_seconds", 0.0))


class StorageSettings(BaseModel):
    """Persisted key-value storage location."""

    model_config = ConfigDict(frozen=True)

    path: Path = DEFAULT_STORAGE_PATH


class PlayshelfSettings(BaseSettings):
    """Root runtime settings resolved from init/env/yaml/defaults sources."""

    model_config = SettingsConfigDict(
        env_prefix="PLAYSHELF_",
        env_nested_delimiter="__",
        extra="ignore",
        nested_model_default_partial_update=True,
        yaml_file=DEFAULT_CONFIG_PATH,
        yaml_file_encoding="utf-8",
    )

    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    @model_validator(mode="after")
    def _reject_relative_exempt_paths(self) -> "PlayshelfSettings":
        """Require exempt paths to be absolute API paths."""
        for path in self.auth.exempt_paths:
            if not path.startswith("/"):
                raise ValueError(f"auth.exempt_paths entry must start with '/': {path}")
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Apply Playshelf precedence: init > env > yaml > defaults."""
        return (
            init_settings,
            env_settings,
            YamlConfigSettingsSource(settings_cls),
        )
