# Relay Protocol
# JSON event frames {"event": ..., "data": ...} exchanged over the WebSocket

from chat_relay.protocol.events import (
    ClientEvent,
    EventFrame,
    ServerEvent,
    create_error,
    create_error_from,
    create_joined_room,
    create_left_room,
    create_message_received,
    create_new_message,
    create_user_typing,
    message_payload,
    parse_frame,
)

__all__ = [
    "ClientEvent",
    "EventFrame",
    "ServerEvent",
    "parse_frame",
    "message_payload",
    "create_error",
    "create_error_from",
    "create_joined_room",
    "create_left_room",
    "create_message_received",
    "create_new_message",
    "create_user_typing",
]
