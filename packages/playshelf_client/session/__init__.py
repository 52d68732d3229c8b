"""Session state and the controller that owns it."""

from packages.playshelf_client.session.controller import (
    ProbeOutcome,
    ProbeResult,
    SessionController,
)
from packages.playshelf_client.session.domain import (
    DEVELOPMENT_IDENTITY,
    Identity,
    Session,
    SessionPhase,
    SessionSnapshot,
)

__all__ = [
    "DEVELOPMENT_IDENTITY",
    "Identity",
    "ProbeOutcome",
    "ProbeResult",
    "Session",
    "SessionController",
    "SessionPhase",
    "SessionSnapshot",
]
