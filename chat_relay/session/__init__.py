# Session Management
# Per-connection state from authentication to disconnect

from chat_relay.session.manager import SessionManager
from chat_relay.session.session import Session, SessionState

__all__ = ["Session", "SessionManager", "SessionState"]
