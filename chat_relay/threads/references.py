"""
Thread References and Channel Keys

A thread reference says what a message or a room-join request is about.
It is a closed union of three frozen types, built from inbound payloads by
a single factory that enforces "exactly one thread id".

Channel keys are deterministic strings derived from a reference:
- quotation-{quotationId}
- rfq-{rfqId}
- product-{productId}-{low}-{high}   (participant ids sorted)
- user-{userId}                      (private notification channel)

Product threads pair two users symmetrically, so both participants compute
the same key whoever initiates.
"""

from dataclasses import dataclass
from typing import Any, Union

from chat_relay.errors import ValidationError

QUOTATION_FIELD = "quotationId"
RFQ_FIELD = "rfqId"
PRODUCT_FIELD = "productId"
THREAD_FIELDS = (QUOTATION_FIELD, RFQ_FIELD, PRODUCT_FIELD)


@dataclass(frozen=True)
class QuotationThread:
    quotation_id: str


@dataclass(frozen=True)
class RFQThread:
    rfq_id: str


@dataclass(frozen=True)
class ProductThread:
    product_id: str
    counterpart_id: str


ThreadReference = Union[QuotationThread, RFQThread, ProductThread]


def _clean_id(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def thread_from_payload(data: dict[str, Any], counterpart_field: str) -> ThreadReference:
    """
    Build a thread reference from an inbound payload.

    Args:
        data: Event payload carrying quotationId / rfqId / productId
        counterpart_field: Field naming the other participant of a product thread

    Raises:
        ValidationError: If zero or several thread ids are set, or a product
            thread has no counterpart
    """
    present = {
        name: value
        for name in THREAD_FIELDS
        if (value := _clean_id(data.get(name))) is not None
    }

    if not present:
        raise ValidationError("Either quotationId, rfqId, or productId is required")
    if len(present) > 1:
        raise ValidationError(
            "Only one of quotationId, rfqId, or productId may be set",
            details=f"received: {', '.join(sorted(present))}",
        )

    if QUOTATION_FIELD in present:
        return QuotationThread(quotation_id=present[QUOTATION_FIELD])
    if RFQ_FIELD in present:
        return RFQThread(rfq_id=present[RFQ_FIELD])

    counterpart_id = _clean_id(data.get(counterpart_field))
    if counterpart_id is None:
        raise ValidationError("Product ID and receiver ID are required")
    return ProductThread(product_id=present[PRODUCT_FIELD], counterpart_id=counterpart_id)


def thread_ids(ref: ThreadReference) -> dict[str, str | None]:
    """Wire form: all three thread id fields, exactly one of them set."""
    return {
        QUOTATION_FIELD: ref.quotation_id if isinstance(ref, QuotationThread) else None,
        RFQ_FIELD: ref.rfq_id if isinstance(ref, RFQThread) else None,
        PRODUCT_FIELD: ref.product_id if isinstance(ref, ProductThread) else None,
    }


def thread_label(ref: ThreadReference) -> str:
    """Short human-readable name ("quotation Q1")."""
    if isinstance(ref, QuotationThread):
        return f"quotation {ref.quotation_id}"
    if isinstance(ref, RFQThread):
        return f"rfq {ref.rfq_id}"
    if isinstance(ref, ProductThread):
        return f"product {ref.product_id}"
    raise TypeError(f"Unknown thread reference: {ref!r}")


# =============================================================================
# Channel keys
# =============================================================================

def quotation_channel(quotation_id: str) -> str:
    return f"quotation-{quotation_id}"


def rfq_channel(rfq_id: str) -> str:
    return f"rfq-{rfq_id}"


def product_channel(product_id: str, user_a: str, user_b: str) -> str:
    low, high = sorted([user_a, user_b])
    return f"product-{product_id}-{low}-{high}"


def private_channel(user_id: str) -> str:
    return f"user-{user_id}"


def channel_for(ref: ThreadReference, user_id: str) -> str:
    """Channel key of a thread as seen by `user_id`."""
    if isinstance(ref, QuotationThread):
        return quotation_channel(ref.quotation_id)
    if isinstance(ref, RFQThread):
        return rfq_channel(ref.rfq_id)
    if isinstance(ref, ProductThread):
        return product_channel(ref.product_id, user_id, ref.counterpart_id)
    raise TypeError(f"Unknown thread reference: {ref!r}")
