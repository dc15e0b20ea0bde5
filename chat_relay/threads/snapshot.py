"""
Thread Snapshots

Read-only views of a thread holding just what authorization needs.
Snapshots are fetched fresh for every operation and never cached: a
quotation or shop can be reassigned between two requests.
"""

from dataclasses import dataclass
from typing import Union

from chat_relay.threads.references import ProductThread, QuotationThread, RFQThread


@dataclass(frozen=True)
class QuotationSnapshot:
    thread: QuotationThread
    quoted_by: str | None
    requested_by: str | None


@dataclass(frozen=True)
class RFQSnapshot:
    thread: RFQThread
    requested_by: str | None


@dataclass(frozen=True)
class ProductSnapshot:
    """shop_owner_id is None when the shop could not be resolved."""
    thread: ProductThread
    shop_owner_id: str | None
    product_name: str | None = None


ThreadSnapshot = Union[QuotationSnapshot, RFQSnapshot, ProductSnapshot]
