"""
Message Models

A message belongs to exactly one thread (quotation, RFQ or product) and
flows from a sender to a receiver. Drafts are what a session asks to send;
messages are what was actually persisted and read back.

Wire shape (shared with the primary backend's message documents):
    {_id, quotation, rfq, product, sender, receiver, message,
     attachments, readAt, createdAt}

`sender` is a projection {_id, username, email, profile} when the sender
could be resolved, otherwise null.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class SenderProjection(BaseModel):
    """Public fields of the sending user."""
    id: str = Field(..., description="User id")
    username: str | None = None
    email: str | None = None
    profile: Any = None

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "SenderProjection":
        return cls(
            id=str(doc["_id"]),
            username=doc.get("username"),
            email=doc.get("email"),
            profile=doc.get("profile"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "_id": self.id,
            "username": self.username,
            "email": self.email,
            "profile": self.profile,
        }


class MessageDraft(BaseModel):
    """A message a session wants to send, before validation and persistence."""
    quotation: str | None = None
    rfq: str | None = None
    product: str | None = None
    sender: str = Field(..., description="Authenticated sender id")
    receiver: str | None = None
    body: str | None = None
    attachments: list[Any] = Field(default_factory=list)

    def thread_fields(self) -> dict[str, str | None]:
        return {"quotation": self.quotation, "rfq": self.rfq, "product": self.product}


class Message(BaseModel):
    """A persisted message as read back from storage."""
    id: str
    quotation: str | None = None
    rfq: str | None = None
    product: str | None = None
    sender: SenderProjection | None = None
    sender_id: str
    receiver: str
    body: str
    attachments: list[Any] = Field(default_factory=list)
    created_at: datetime | None = None
    read_at: datetime | None = None

    @classmethod
    def from_document(
        cls,
        doc: dict[str, Any],
        sender: SenderProjection | None = None,
    ) -> "Message":
        """Build from a stored message document (string ids)."""
        return cls(
            id=str(doc["_id"]),
            quotation=doc.get("quotation"),
            rfq=doc.get("rfq"),
            product=doc.get("product"),
            sender=sender,
            sender_id=str(doc.get("sender")),
            receiver=str(doc.get("receiver")),
            body=doc.get("message") or "",
            attachments=list(doc.get("attachments") or []),
            created_at=doc.get("createdAt"),
            read_at=doc.get("readAt"),
        )

    def to_payload(self) -> dict[str, Any]:
        """Serialize for the wire."""
        return {
            "_id": self.id,
            "quotation": self.quotation,
            "rfq": self.rfq,
            "product": self.product,
            "sender": self.sender.to_dict() if self.sender else None,
            "receiver": self.receiver,
            "message": self.body,
            "attachments": list(self.attachments),
            "readAt": _iso(self.read_at),
            "createdAt": _iso(self.created_at),
        }
