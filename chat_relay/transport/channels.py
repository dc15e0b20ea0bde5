"""
Channel Registry

Named subscription groups keyed by channel key. A connection subscribes to
a channel by joining it and receives every frame broadcast to it until it
leaves or disconnects. Empty channels are dropped.

All methods are synchronous: membership changes never await, so a join or
leave is atomic with respect to other tasks on the event loop.
"""

import logging

logger = logging.getLogger(__name__)


class ChannelRegistry:
    """channel key -> subscribed connection ids."""

    def __init__(self):
        self._members: dict[str, set[str]] = {}
        self._channels_by_conn: dict[str, set[str]] = {}

    def join(self, channel: str, conn_id: str) -> bool:
        """Subscribe a connection. Returns False if it was already subscribed."""
        members = self._members.setdefault(channel, set())
        if conn_id in members:
            return False
        members.add(conn_id)
        self._channels_by_conn.setdefault(conn_id, set()).add(channel)
        return True

    def leave(self, channel: str, conn_id: str) -> bool:
        """Unsubscribe a connection. Returns False if it was not subscribed."""
        members = self._members.get(channel)
        if not members or conn_id not in members:
            return False
        members.discard(conn_id)
        if not members:
            del self._members[channel]
        conn_channels = self._channels_by_conn.get(conn_id)
        if conn_channels is not None:
            conn_channels.discard(channel)
            if not conn_channels:
                del self._channels_by_conn[conn_id]
        return True

    def leave_all(self, conn_id: str) -> list[str]:
        """Drop every subscription of a connection. Returns the channels left."""
        channels = list(self._channels_by_conn.get(conn_id, ()))
        for channel in channels:
            self.leave(channel, conn_id)
        return channels

    def members(self, channel: str) -> set[str]:
        """Snapshot of a channel's subscribers."""
        return set(self._members.get(channel, ()))

    def subscriber_count(self, channel: str) -> int:
        return len(self._members.get(channel, ()))

    def channels_of(self, conn_id: str) -> set[str]:
        return set(self._channels_by_conn.get(conn_id, ()))

    @property
    def channel_count(self) -> int:
        return len(self._members)
