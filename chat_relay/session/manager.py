"""
Session Manager

Tracks the live sessions of this process: creation on authentication,
per-user bookkeeping, and removal on disconnect.

Sessions are never persisted. A restart drops every connection and clients
reconnect and re-join their rooms.
"""

import asyncio
import logging

from chat_relay.auth.verifier import Identity
from chat_relay.session.session import Session, SessionState

logger = logging.getLogger(__name__)


class SessionManager:
    """
    In-memory registry of sessions.

    Thread-safe for async operations using an asyncio lock.
    """

    def __init__(self):
        # Primary index: connection_id -> Session
        self._sessions: dict[str, Session] = {}

        # Secondary index: user_id -> connection_ids (a user may have several tabs)
        self._by_user: dict[str, set[str]] = {}

        self._lock = asyncio.Lock()

    async def create_session(self, identity: Identity) -> Session:
        """Create and register a session for an authenticated identity."""
        session = Session.for_identity(identity)

        async with self._lock:
            self._sessions[session.connection_id] = session
            self._by_user.setdefault(session.user_id, set()).add(session.connection_id)

        logger.info(f"Session created: {session.connection_id} (user: {session.user_id})")
        return session

    async def remove_session(self, connection_id: str) -> Session | None:
        """Mark a session disconnected and drop it from the registry."""
        async with self._lock:
            session = self._sessions.pop(connection_id, None)
            if session is None:
                return None
            user_conns = self._by_user.get(session.user_id)
            if user_conns is not None:
                user_conns.discard(connection_id)
                if not user_conns:
                    del self._by_user[session.user_id]

        session.state = SessionState.DISCONNECTED
        session.joined_channels.clear()
        logger.info(f"Session removed: {connection_id} (user: {session.user_id})")
        return session

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def get_stats(self) -> dict[str, int]:
        return {
            "sessions": len(self._sessions),
            "users": len(self._by_user),
        }
