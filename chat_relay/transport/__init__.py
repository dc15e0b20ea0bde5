# Transport Layer
# WebSocket connections, channel fan-out and per-connection outbound queues
# The FastAPI application lives in chat_relay.transport.app

from chat_relay.transport.channels import ChannelRegistry
from chat_relay.transport.dispatcher import BroadcastDispatcher, DeliveryReport
from chat_relay.transport.handler import WebSocketHandler
from chat_relay.transport.queue import OutboundQueue, OutboundQueueManager
from chat_relay.transport.router import SessionRouter

__all__ = [
    "BroadcastDispatcher",
    "ChannelRegistry",
    "DeliveryReport",
    "OutboundQueue",
    "OutboundQueueManager",
    "SessionRouter",
    "WebSocketHandler",
]
