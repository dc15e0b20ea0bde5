"""
Relay Event Frames

Every frame exchanged over the WebSocket, in either direction, is a JSON
object with a fixed two-field shape:

    {"event": "<name>", "data": {...}}

Client events:
1. join-quotation-room -> subscribe to a quotation thread
2. join-rfq-room -> subscribe to an RFQ thread
3. join-product-room -> subscribe to a product thread with a counterpart
4. leave-room -> unsubscribe from a channel
5. send-message -> persist a message and fan it out
6. typing / stop-typing -> ephemeral typing indicator

Server events:
- joined-room / left-room -> membership confirmations
- message-received -> a message posted in a joined thread channel
- new-message -> the same payload, delivered to the receiver's private channel
- user-typing -> another participant started or stopped typing
- error -> a request failed; the session stays open
"""

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from chat_relay.errors import RelayError, ValidationError
from chat_relay.messages.models import Message
from chat_relay.threads.references import ThreadReference, thread_ids


class ClientEvent(str, Enum):
    """Events a client may send."""
    JOIN_QUOTATION_ROOM = "join-quotation-room"
    JOIN_RFQ_ROOM = "join-rfq-room"
    JOIN_PRODUCT_ROOM = "join-product-room"
    LEAVE_ROOM = "leave-room"
    SEND_MESSAGE = "send-message"
    TYPING = "typing"
    STOP_TYPING = "stop-typing"


class ServerEvent(str, Enum):
    """Events the relay emits."""
    JOINED_ROOM = "joined-room"
    LEFT_ROOM = "left-room"
    MESSAGE_RECEIVED = "message-received"
    NEW_MESSAGE = "new-message"
    USER_TYPING = "user-typing"
    ERROR = "error"


class EventFrame(BaseModel):
    """A single frame on the wire."""
    event: str = Field(..., description="Event name")
    data: dict[str, Any] = Field(default_factory=dict, description="Event payload")

    def to_json(self) -> str:
        return json.dumps({"event": self.event, "data": self.data}, default=str)


def parse_frame(raw: str) -> EventFrame:
    """
    Parse an inbound text frame.

    Raises:
        ValidationError: If the frame is not valid JSON or lacks an event name
    """
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError("Invalid frame: not valid JSON", details=str(e)) from None

    if not isinstance(decoded, dict):
        raise ValidationError("Invalid frame: expected a JSON object")

    if decoded.get("data") is None:
        decoded["data"] = {}

    try:
        return EventFrame.model_validate(decoded)
    except PydanticValidationError as e:
        raise ValidationError("Invalid frame", details=str(e)) from None


# === Convenience constructors for server events ===

def create_joined_room(channel: str, ref: ThreadReference) -> EventFrame:
    """Membership confirmation carrying the thread id that was joined."""
    ids = {key: value for key, value in thread_ids(ref).items() if value is not None}
    return EventFrame(event=ServerEvent.JOINED_ROOM.value, data={"room": channel, **ids})


def create_left_room(channel: str) -> EventFrame:
    return EventFrame(event=ServerEvent.LEFT_ROOM.value, data={"room": channel})


def message_payload(message: Message, ref: ThreadReference) -> dict[str, Any]:
    """
    Broadcast payload shared by message-received and new-message.

    Both events carry the same object so every recipient sees identical data.
    """
    return {"message": message.to_payload(), **thread_ids(ref)}


def create_message_received(payload: dict[str, Any]) -> EventFrame:
    return EventFrame(event=ServerEvent.MESSAGE_RECEIVED.value, data=payload)


def create_new_message(payload: dict[str, Any]) -> EventFrame:
    return EventFrame(event=ServerEvent.NEW_MESSAGE.value, data=payload)


def create_user_typing(user_id: str, typing: bool) -> EventFrame:
    return EventFrame(
        event=ServerEvent.USER_TYPING.value,
        data={"userId": user_id, "typing": typing},
    )


def create_error(message: str, details: str | None = None) -> EventFrame:
    data: dict[str, Any] = {"message": message}
    if details:
        data["details"] = details
    return EventFrame(event=ServerEvent.ERROR.value, data=data)


def create_error_from(error: RelayError) -> EventFrame:
    return EventFrame(event=ServerEvent.ERROR.value, data=error.to_payload())
