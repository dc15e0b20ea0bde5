"""
Access Authorizer

Decides whether a user may join a thread's channel or send a message into
the thread. Decisions are pure: they read only the identity, a fresh thread
snapshot and the declared receiver. No I/O, no state.

Rules:
- Quotation: the supplier who quoted or the buyer of the parent RFQ
- RFQ: the buyer who requested it
- Product: the declared counterpart, the shop owner, or anyone addressing
  the shop owner. An unresolved shop owner fails closed unless the user is
  the counterpart.

Sending additionally requires the receiver to be the other party of the
thread. RFQs record only the requester, so for RFQ threads any receiver
other than the requester is accepted.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from chat_relay.auth.verifier import Identity
from chat_relay.errors import AccessDeniedError, InvalidReceiverError, RelayError
from chat_relay.threads.references import channel_for
from chat_relay.threads.snapshot import (
    ProductSnapshot,
    QuotationSnapshot,
    RFQSnapshot,
    ThreadSnapshot,
)

logger = logging.getLogger(__name__)

PRODUCT_JOIN_DENIED = "Access denied. You do not have permission to join this room."
SHOP_UNAVAILABLE = "Product shop information not available"


class Action(str, Enum):
    """What the user is trying to do with the thread."""
    JOIN = "join"
    SEND = "send"


class DenyReason(str, Enum):
    """Why a request was refused."""
    NOT_PARTICIPANT = "not_participant"
    INVALID_RECEIVER = "invalid_receiver"
    SHOP_UNAVAILABLE = "shop_unavailable"


@dataclass(frozen=True)
class AccessDecision:
    """
    Result of an authorization check.

    `channel` is set on allow; `reason` and `message` on deny.
    """
    allowed: bool
    channel: str | None = None
    reason: DenyReason | None = None
    message: str | None = None

    @classmethod
    def allow(cls, channel: str) -> "AccessDecision":
        return cls(allowed=True, channel=channel)

    @classmethod
    def deny(cls, reason: DenyReason, message: str) -> "AccessDecision":
        return cls(allowed=False, reason=reason, message=message)

    def to_error(self) -> RelayError:
        """Exception to surface for a denial."""
        if self.allowed:
            raise ValueError("Decision is not a denial")
        if self.reason == DenyReason.INVALID_RECEIVER:
            return InvalidReceiverError(self.message or "Invalid receiver")
        return AccessDeniedError(self.message or "Access denied")


class AccessAuthorizer:
    """Evaluates thread membership for join and send requests."""

    def authorize(
        self,
        identity: Identity,
        snapshot: ThreadSnapshot,
        action: Action,
        receiver: str | None = None,
    ) -> AccessDecision:
        """
        Evaluate a request against a thread snapshot.

        Args:
            identity: Requesting user
            snapshot: Fresh thread snapshot
            action: JOIN or SEND
            receiver: Declared receiver (SEND only)

        Returns:
            AccessDecision, never raises for a refusal
        """
        if isinstance(snapshot, QuotationSnapshot):
            decision = self._quotation(identity, snapshot, action, receiver)
        elif isinstance(snapshot, RFQSnapshot):
            decision = self._rfq(identity, snapshot, action, receiver)
        elif isinstance(snapshot, ProductSnapshot):
            decision = self._product(identity, snapshot, action, receiver)
        else:
            raise TypeError(f"Unknown thread snapshot: {snapshot!r}")

        if decision.allowed:
            logger.debug(
                f"ALLOW {action.value} for user {identity.user_id} on {decision.channel}"
            )
        else:
            logger.warning(
                f"DENY {action.value} for user {identity.user_id}: "
                f"{decision.reason.value} ({decision.message})"
            )
        return decision

    def _quotation(
        self,
        identity: Identity,
        snapshot: QuotationSnapshot,
        action: Action,
        receiver: str | None,
    ) -> AccessDecision:
        parties = {p for p in (snapshot.quoted_by, snapshot.requested_by) if p}
        if identity.user_id not in parties:
            return AccessDecision.deny(DenyReason.NOT_PARTICIPANT, "Access denied")

        if action == Action.SEND and receiver not in parties:
            return AccessDecision.deny(DenyReason.INVALID_RECEIVER, "Invalid receiver")

        return AccessDecision.allow(channel_for(snapshot.thread, identity.user_id))

    def _rfq(
        self,
        identity: Identity,
        snapshot: RFQSnapshot,
        action: Action,
        receiver: str | None,
    ) -> AccessDecision:
        if not snapshot.requested_by or identity.user_id != snapshot.requested_by:
            return AccessDecision.deny(DenyReason.NOT_PARTICIPANT, "Access denied")

        if action == Action.SEND and (not receiver or receiver == snapshot.requested_by):
            return AccessDecision.deny(DenyReason.INVALID_RECEIVER, "Invalid receiver")

        return AccessDecision.allow(channel_for(snapshot.thread, identity.user_id))

    def _product(
        self,
        identity: Identity,
        snapshot: ProductSnapshot,
        action: Action,
        receiver: str | None,
    ) -> AccessDecision:
        counterpart = snapshot.thread.counterpart_id
        owner = snapshot.shop_owner_id
        denied_message = PRODUCT_JOIN_DENIED if action == Action.JOIN else "Access denied"

        if owner is None and identity.user_id != counterpart:
            return AccessDecision.deny(DenyReason.SHOP_UNAVAILABLE, SHOP_UNAVAILABLE)

        has_access = (
            identity.user_id == counterpart
            or identity.user_id == owner
            or counterpart == owner
        )
        if not has_access:
            return AccessDecision.deny(DenyReason.NOT_PARTICIPANT, denied_message)

        if action == Action.SEND and receiver != counterpart:
            return AccessDecision.deny(DenyReason.INVALID_RECEIVER, "Invalid receiver")

        return AccessDecision.allow(channel_for(snapshot.thread, identity.user_id))
