"""
Message Store

Persists chat messages straight into the shared messages collection and
reads them back so every recipient sees the stored document.

The write path:
1. Validate the draft (exactly one thread, body, receiver) before touching storage
2. Insert, bounded by the insert timeout
3. Read back by id, bounded by the read-back timeout
4. Enrich the sender with username/email/profile (best-effort)

Only steps 1-3 can fail the operation. Enrichment failures are logged and
the message is returned with an unresolved sender.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from chat_relay.errors import NotReadyError, OperationTimeout, ValidationError, WriteError
from chat_relay.messages.models import Message, MessageDraft, SenderProjection
from chat_relay.storage.ports import (
    Collections,
    DocumentStore,
    InvalidIdentifierError,
    StorageError,
    StorageUnavailableError,
)
from chat_relay.timing import bounded

logger = logging.getLogger(__name__)

SENDER_FIELDS = ["username", "email", "profile"]


def validate_draft(draft: MessageDraft) -> None:
    """
    Check a draft before any write.

    Raises:
        ValidationError: If body/receiver are missing or the thread is not exactly one
    """
    if not draft.body or not draft.receiver:
        raise ValidationError("Message and receiver are required")

    present = [name for name, value in draft.thread_fields().items() if value]
    if not present:
        raise ValidationError("Either quotationId, rfqId, or productId is required")
    if len(present) > 1:
        raise ValidationError(
            "Only one of quotationId, rfqId, or productId may be set",
            details=f"received: {', '.join(present)}",
        )


class MessageStore:
    """Writes and reads back messages through the document store port."""

    def __init__(
        self,
        store: DocumentStore,
        insert_timeout_seconds: float = 8.0,
        readback_timeout_seconds: float = 5.0,
        sender_timeout_seconds: float = 5.0,
    ):
        self._store = store
        self._insert_timeout = insert_timeout_seconds
        self._readback_timeout = readback_timeout_seconds
        self._sender_timeout = sender_timeout_seconds

    async def persist(self, draft: MessageDraft) -> Message:
        """
        Validate, insert and read back a message.

        Raises:
            ValidationError: Draft is incomplete or carries an id the store
                cannot reference (nothing written)
            OperationTimeout: Insert or read-back exceeded its bound
            NotReadyError: Storage dropped during the write
            WriteError: Storage rejected the write, or the read-back found nothing
        """
        validate_draft(draft)

        now = datetime.now(timezone.utc)
        document: dict[str, Any] = {
            **draft.thread_fields(),
            "sender": draft.sender,
            "receiver": draft.receiver,
            "message": draft.body,
            "attachments": list(draft.attachments),
            "readAt": None,
            "createdAt": now,
            "updatedAt": now,
        }

        try:
            message_id = await bounded(
                self._store.insert_one(Collections.MESSAGES, document),
                self._insert_timeout,
                "Insert",
            )
        except StorageUnavailableError:
            raise NotReadyError() from None
        except InvalidIdentifierError as e:
            logger.warning(f"Message insert refused: {e}")
            raise ValidationError(f"Invalid {e.field or 'reference'} ID", details=str(e)) from None
        except StorageError as e:
            logger.error(f"Message insert rejected: {e}")
            raise WriteError("Failed to save message", details=str(e)) from None

        logger.info(f"Message saved: {message_id}")

        try:
            stored = await bounded(
                self._store.find_one(Collections.MESSAGES, message_id),
                self._readback_timeout,
                "Find",
            )
        except StorageUnavailableError:
            raise NotReadyError() from None
        except StorageError as e:
            raise WriteError("Message saved but could not be retrieved", details=str(e)) from None

        if stored is None:
            raise WriteError("Message saved but could not be retrieved")

        sender = await self._lookup_sender(draft.sender)
        return Message.from_document(stored, sender)

    async def _lookup_sender(self, sender_id: str) -> SenderProjection | None:
        try:
            doc = await bounded(
                self._store.find_one(Collections.USERS, sender_id, projection=SENDER_FIELDS),
                self._sender_timeout,
                "Sender lookup",
            )
        except InvalidIdentifierError as e:
            logger.warning(f"Sender id {sender_id} is not a valid identifier: {e}")
            return None
        except (OperationTimeout, StorageError) as e:
            logger.warning(f"Could not populate sender {sender_id}: {e}")
            return None

        if doc is None:
            logger.warning(f"Sender {sender_id} not found, returning message without sender details")
            return None
        return SenderProjection.from_document(doc)
