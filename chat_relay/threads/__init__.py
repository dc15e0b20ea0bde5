# Thread Resolver
# Thread references, channel keys and fresh participant snapshots

from chat_relay.threads.references import (
    ProductThread,
    QuotationThread,
    RFQThread,
    ThreadReference,
    channel_for,
    private_channel,
    product_channel,
    quotation_channel,
    rfq_channel,
    thread_from_payload,
    thread_ids,
    thread_label,
)
from chat_relay.threads.resolver import ThreadResolver, reference_id
from chat_relay.threads.snapshot import (
    ProductSnapshot,
    QuotationSnapshot,
    RFQSnapshot,
    ThreadSnapshot,
)

__all__ = [
    # References
    "ProductThread",
    "QuotationThread",
    "RFQThread",
    "ThreadReference",
    "thread_from_payload",
    "thread_ids",
    "thread_label",
    # Channel keys
    "channel_for",
    "private_channel",
    "product_channel",
    "quotation_channel",
    "rfq_channel",
    # Resolution
    "ThreadResolver",
    "reference_id",
    "ProductSnapshot",
    "QuotationSnapshot",
    "RFQSnapshot",
    "ThreadSnapshot",
]
