# Message Store
# Validated, bounded persistence of chat messages with read-back

from chat_relay.messages.models import Message, MessageDraft, SenderProjection
from chat_relay.messages.store import MessageStore, validate_draft

__all__ = [
    "Message",
    "MessageDraft",
    "SenderProjection",
    "MessageStore",
    "validate_draft",
]
