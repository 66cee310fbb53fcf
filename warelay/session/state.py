"""Session lifecycle state as a single tagged value."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SessionPhase(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    AWAITING_PAIRING = "awaiting_pairing"
    AUTHENTICATED = "authenticated"
    READY = "ready"
    DISCONNECTED = "disconnected"


# Phases in which the adapter has been started and owns a live browser session.
LIVE_PHASES = frozenset(
    {SessionPhase.AWAITING_PAIRING, SessionPhase.AUTHENTICATED, SessionPhase.READY}
)


@dataclass(frozen=True, slots=True)
class SessionState:
    """Immutable snapshot of the session.

    ``qr`` is only carried while awaiting pairing; every other phase drops it.
    """

    phase: SessionPhase = SessionPhase.UNINITIALIZED
    qr: str | None = None

    def __post_init__(self) -> None:
        if self.phase is not SessionPhase.AWAITING_PAIRING and self.qr is not None:
            object.__setattr__(self, "qr", None)

    @classmethod
    def uninitialized(cls) -> "SessionState":
        return cls(SessionPhase.UNINITIALIZED)

    @classmethod
    def initializing(cls) -> "SessionState":
        return cls(SessionPhase.INITIALIZING)

    @classmethod
    def awaiting_pairing(cls, qr: str | None = None) -> "SessionState":
        return cls(SessionPhase.AWAITING_PAIRING, qr)

    @classmethod
    def authenticated(cls) -> "SessionState":
        return cls(SessionPhase.AUTHENTICATED)

    @classmethod
    def ready(cls) -> "SessionState":
        return cls(SessionPhase.READY)

    @classmethod
    def disconnected(cls) -> "SessionState":
        return cls(SessionPhase.DISCONNECTED)

    @property
    def is_ready(self) -> bool:
        return self.phase is SessionPhase.READY

    @property
    def is_live(self) -> bool:
        return self.phase in LIVE_PHASES

    @property
    def status(self) -> str:
        """Status string pushed to frontends on connect."""
        if self.is_ready:
            return "ready"
        if self.qr:
            return "qr_received"
        return "disconnected"
