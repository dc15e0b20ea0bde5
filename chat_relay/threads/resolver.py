"""
Thread Resolver

Maps a thread reference to the participant data needed for authorization:
- Quotation: the supplier who quoted (quotedBy) and the buyer of the parent
  RFQ (requestedBy)
- RFQ: the buyer who requested it
- Product: the owner of the product's shop

Every resolution is bounded by a single lookup timeout. Shop resolution is
best-effort: a failure there yields a snapshot with no owner rather than an
error, and the authorizer fails closed on it.
"""

import logging
from typing import Any

from chat_relay.errors import NotFoundError, NotReadyError, ValidationError
from chat_relay.storage.ports import (
    Collections,
    DocumentStore,
    InvalidIdentifierError,
    StorageError,
    StorageUnavailableError,
)
from chat_relay.threads.references import (
    ProductThread,
    QuotationThread,
    RFQThread,
    ThreadReference,
)
from chat_relay.threads.snapshot import (
    ProductSnapshot,
    QuotationSnapshot,
    RFQSnapshot,
    ThreadSnapshot,
)
from chat_relay.timing import bounded

logger = logging.getLogger(__name__)


def _kind(ref: ThreadReference) -> str:
    if isinstance(ref, QuotationThread):
        return "Quotation"
    if isinstance(ref, RFQThread):
        return "RFQ"
    return "Product"


def reference_id(value: Any) -> str | None:
    """
    Read a reference field that may hold a bare id or a populated document.

    Returns:
        The id as a string, or None if the field is empty
    """
    if value is None:
        return None
    if isinstance(value, dict):
        value = value.get("_id")
        if value is None:
            return None
    text = str(value)
    return text or None


class ThreadResolver:
    """Fetches fresh thread snapshots from the document store."""

    def __init__(self, store: DocumentStore, lookup_timeout_seconds: float = 5.0):
        self._store = store
        self._timeout = lookup_timeout_seconds

    async def resolve(self, ref: ThreadReference) -> ThreadSnapshot:
        """
        Resolve a thread reference.

        Raises:
            ValidationError: If an id is malformed
            NotFoundError: If the thread (or a quotation's parent RFQ) does not exist
            NotReadyError: If the store dropped mid-lookup
            OperationTimeout: If the lookup exceeds its bound
        """
        return await bounded(self._resolve(ref), self._timeout, f"{_kind(ref)} lookup")

    async def _resolve(self, ref: ThreadReference) -> ThreadSnapshot:
        try:
            if isinstance(ref, QuotationThread):
                return await self._resolve_quotation(ref)
            if isinstance(ref, RFQThread):
                return await self._resolve_rfq(ref)
            if isinstance(ref, ProductThread):
                return await self._resolve_product(ref)
        except InvalidIdentifierError as e:
            raise ValidationError(f"Invalid {_kind(ref)} ID", details=str(e)) from None
        except StorageUnavailableError:
            raise NotReadyError() from None
        raise TypeError(f"Unknown thread reference: {ref!r}")

    async def _resolve_quotation(self, ref: QuotationThread) -> QuotationSnapshot:
        quotation = await self._store.find_one(
            Collections.QUOTATIONS, ref.quotation_id, projection=["quotedBy", "rfq"]
        )
        if quotation is None:
            raise NotFoundError("Quotation not found")

        rfq_id = reference_id(quotation.get("rfq"))
        rfq = None
        if rfq_id is not None:
            rfq = await self._store.find_one(Collections.RFQS, rfq_id, projection=["requestedBy"])
        if rfq is None:
            logger.warning(f"Quotation {ref.quotation_id} has no resolvable parent RFQ")
            raise NotFoundError("RFQ not found")

        return QuotationSnapshot(
            thread=ref,
            quoted_by=reference_id(quotation.get("quotedBy")),
            requested_by=reference_id(rfq.get("requestedBy")),
        )

    async def _resolve_rfq(self, ref: RFQThread) -> RFQSnapshot:
        rfq = await self._store.find_one(Collections.RFQS, ref.rfq_id, projection=["requestedBy"])
        if rfq is None:
            raise NotFoundError("RFQ not found")
        return RFQSnapshot(thread=ref, requested_by=reference_id(rfq.get("requestedBy")))

    async def _resolve_product(self, ref: ProductThread) -> ProductSnapshot:
        product = await self._store.find_one(
            Collections.PRODUCTS, ref.product_id, projection=["name", "shop"]
        )
        if product is None:
            logger.warning(f"Product not found: {ref.product_id}")
            raise NotFoundError(f"Product not found: {ref.product_id}")

        return ProductSnapshot(
            thread=ref,
            shop_owner_id=await self._shop_owner(product),
            product_name=product.get("name"),
        )

    async def _shop_owner(self, product: dict[str, Any]) -> str | None:
        shop = product.get("shop")
        if isinstance(shop, dict) and "owner" in shop:
            return reference_id(shop.get("owner"))

        shop_id = reference_id(shop)
        if shop_id is None:
            logger.warning(f"Product {product.get('_id')} has no shop reference")
            return None

        try:
            shop_doc = await self._store.find_one(Collections.SHOPS, shop_id, projection=["owner"])
        except StorageError as e:
            logger.warning(f"Error resolving shop {shop_id}: {e}")
            return None

        if shop_doc is None:
            logger.warning(f"Shop not found: {shop_id}")
            return None
        return reference_id(shop_doc.get("owner"))
