"""
Session Model

One authenticated WebSocket connection.

Session Lifecycle:
1. CONNECTING - Socket opened, credential not yet verified
2. AUTHENTICATED - Identity established, not yet attached to the relay
3. IDLE - Attached, no event in flight
4. PROCESSING - At least one inbound event is being handled
5. DISCONNECTED - Terminal; memberships and outbound queue dropped

Several events of one session may be in flight at once, so PROCESSING is
tracked with a counter rather than a flag.
"""

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field

from chat_relay.auth.verifier import Identity


class SessionState(str, Enum):
    """Connection lifecycle states."""
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    IDLE = "idle"
    PROCESSING = "processing"
    DISCONNECTED = "disconnected"


class Session(BaseModel):
    """Per-connection state owned by the session router."""

    connection_id: str = Field(
        default_factory=lambda: uuid4().hex,
        description="Unique connection identifier"
    )
    user_id: str = Field(..., description="Authenticated user id")
    role: str | None = Field(default=None, description="Role claim, informational")
    joined_channels: set[str] = Field(
        default_factory=set,
        description="Channels this connection is subscribed to"
    )
    state: SessionState = Field(default=SessionState.AUTHENTICATED)
    in_flight: int = Field(default=0, description="Events currently being handled")
    connected_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def for_identity(cls, identity: Identity) -> "Session":
        return cls(user_id=identity.user_id, role=identity.role)

    @property
    def identity(self) -> Identity:
        return Identity(user_id=self.user_id, role=self.role)

    @property
    def is_closed(self) -> bool:
        return self.state == SessionState.DISCONNECTED

    def begin_event(self) -> None:
        self.in_flight += 1
        if not self.is_closed:
            self.state = SessionState.PROCESSING

    def end_event(self) -> None:
        self.in_flight = max(0, self.in_flight - 1)
        if self.in_flight == 0 and self.state == SessionState.PROCESSING:
            self.state = SessionState.IDLE
