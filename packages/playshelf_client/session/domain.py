"""Session state: phases, identity and the single owned session record."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class SessionPhase(str, Enum):
    """Authentication phase of the running client."""

    CHECKING = "Checking"
    UNAUTHENTICATED = "Unauthenticated"
    DEV_OVERRIDE = "DevOverride"
    AUTHENTICATED = "Authenticated"


class Identity(BaseModel):
    """Signed-in user as reported by the identity probe."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = Field(alias="userId")
    display_name: str = Field(default="", alias="userName")
    avatar_url: str | None = Field(default=None, alias="userImage")
    is_development_identity: bool = Field(default=False, alias="isDev")

    @field_validator("id", mode="before")
    @classmethod
    def _validate_id(cls, value: object) -> object:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


DEVELOPMENT_IDENTITY = Identity(
    id="dev",
    display_name="Development User",
    avatar_url=None,
    is_development_identity=True,
)

_SIGNED_IN = frozenset({SessionPhase.DEV_OVERRIDE, SessionPhase.AUTHENTICATED})


class SessionSnapshot(BaseModel):
    """Immutable view of the session at one point in time."""

    model_config = ConfigDict(frozen=True)

    phase: SessionPhase
    identity: Identity | None = None
    credential: str | None = None

    @model_validator(mode="after")
    def _check_phase_invariant(self) -> "SessionSnapshot":
        signed_in = self.phase in _SIGNED_IN
        if signed_in != (self.identity is not None):
            raise ValueError(f"identity must be set exactly when signed in (phase={self.phase.value})")
        if signed_in != bool(self.credential):
            raise ValueError(f"credential must be set exactly when signed in (phase={self.phase.value})")
        return self

    @property
    def is_signed_in(self) -> bool:
        """Return ``True`` in ``Authenticated`` and ``DevOverride`` phases."""
        return self.phase in _SIGNED_IN

    @property
    def is_checking(self) -> bool:
        return self.phase is SessionPhase.CHECKING


CHECKING = SessionSnapshot(phase=SessionPhase.CHECKING)
SIGNED_OUT = SessionSnapshot(phase=SessionPhase.UNAUTHENTICATED)


class Session:
    """The one session record per client, written only by the session controller.

    Everything else reads ``snapshot`` (or the shortcut properties) when it
    needs the phase or credential, rather than keeping its own copy.
    """

    def __init__(self) -> None:
        self._snapshot = CHECKING

    @property
    def snapshot(self) -> SessionSnapshot:
        return self._snapshot

    @property
    def phase(self) -> SessionPhase:
        return self._snapshot.phase

    @property
    def identity(self) -> Identity | None:
        return self._snapshot.identity

    @property
    def credential(self) -> str | None:
        return self._snapshot.credential

    def _replace(self, snapshot: SessionSnapshot) -> bool:
        """Swap in ``snapshot``; return ``False`` when nothing changed."""
        if snapshot == self._snapshot:
            return False
        self._snapshot = snapshot
        return True
