"""Per-connection call state."""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone


class SessionPhase(str, enum.Enum):
    IDLE = "idle"
    ACTIVE = "active"
    CLOSED = "closed"


@dataclass(slots=True)
class CallSession:
    """Mutable state for one relay connection.

    Created empty when the WebSocket is accepted; populated by the setup event.
    Only the session handler for that connection mutates it.
    """

    call_sid: str | None = None
    from_number: str | None = None
    to_number: str | None = None
    turn_seq: int = 0
    pending_generation: asyncio.Task | None = None
    interrupted: bool = False
    created_at: datetime | None = None
    phase: SessionPhase = SessionPhase.IDLE
    end_reason: str | None = field(default=None)

    @property
    def active(self) -> bool:
        return self.phase is SessionPhase.ACTIVE

    @property
    def closed(self) -> bool:
        return self.phase is SessionPhase.CLOSED

    def activate(self, call_sid: str, from_number: str, to_number: str) -> None:
        self.call_sid = call_sid
        self.from_number = from_number
        self.to_number = to_number
        self.turn_seq = 0
        self.interrupted = False
        self.created_at = datetime.now(timezone.utc)
        self.phase = SessionPhase.ACTIVE

    def begin_turn(self) -> int:
        self.turn_seq += 1
        self.interrupted = False
        return self.turn_seq

    def interrupt(self) -> None:
        self.interrupted = True

    def is_current(self, turn: int) -> bool:
        """Turn fence: only the latest, uninterrupted turn of a live call may speak."""

        return self.active and turn == self.turn_seq and not self.interrupted

    def close(self, reason: str) -> None:
        self.phase = SessionPhase.CLOSED
        self.end_reason = reason
