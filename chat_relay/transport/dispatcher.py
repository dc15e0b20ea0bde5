"""
Broadcast Dispatcher

Fans persisted messages and typing indicators out to subscribed connections.

A message is serialized once and delivered as:
- message-received to every subscriber of the thread channel
- new-message to every connection of the receiver's private channel

Both events carry the identical payload. Delivery is fire-and-forget through
the per-connection outbound queues: no acknowledgement, no retry.
"""

import logging
from dataclasses import dataclass

from chat_relay.messages.models import Message
from chat_relay.protocol.events import (
    create_message_received,
    create_new_message,
    create_user_typing,
    message_payload,
)
from chat_relay.session.session import Session
from chat_relay.threads.references import ThreadReference, private_channel
from chat_relay.transport.channels import ChannelRegistry
from chat_relay.transport.queue import OutboundQueueManager

logger = logging.getLogger(__name__)


@dataclass
class DeliveryReport:
    """How many connections a broadcast was handed to."""
    channel: str
    channel_deliveries: int = 0
    private_deliveries: int = 0
    dropped: int = 0


class BroadcastDispatcher:
    """Delivers frames to channel subscribers via their outbound queues."""

    def __init__(self, channels: ChannelRegistry, queues: OutboundQueueManager):
        self._channels = channels
        self._queues = queues

    def _fan_out(self, channel: str, frame: str, exclude: str | None = None) -> tuple[int, int]:
        delivered = dropped = 0
        for conn_id in self._channels.members(channel):
            if conn_id == exclude:
                continue
            if self._queues.deliver(conn_id, frame):
                delivered += 1
            else:
                dropped += 1
        return delivered, dropped

    async def dispatch(self, message: Message, channel: str, ref: ThreadReference) -> DeliveryReport:
        """
        Broadcast a persisted message.

        Args:
            message: The stored message
            channel: Thread channel key
            ref: Thread the message belongs to
        """
        payload = message_payload(message, ref)
        report = DeliveryReport(channel=channel)

        delivered, dropped = self._fan_out(channel, create_message_received(payload).to_json())
        report.channel_deliveries = delivered
        report.dropped += dropped

        receiver_channel = private_channel(message.receiver)
        delivered, dropped = self._fan_out(receiver_channel, create_new_message(payload).to_json())
        report.private_deliveries = delivered
        report.dropped += dropped

        logger.info(
            f"Message {message.id} broadcast to {channel} "
            f"({report.channel_deliveries} sockets) and {receiver_channel} "
            f"({report.private_deliveries} sockets)"
        )
        if report.dropped:
            logger.warning(f"Message {message.id}: {report.dropped} deliveries dropped")
        return report

    async def dispatch_typing(self, session: Session, channel: str, typing: bool) -> int:
        """Send user-typing to the channel's other subscribers. Returns the delivery count."""
        frame = create_user_typing(session.user_id, typing).to_json()
        delivered, _ = self._fan_out(channel, frame, exclude=session.connection_id)
        logger.debug(
            f"Typing {'start' if typing else 'stop'} from {session.user_id} "
            f"on {channel} ({delivered} sockets)"
        )
        return delivered
