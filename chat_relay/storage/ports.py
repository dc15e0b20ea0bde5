"""
Storage Port Interface

Abstract base class defining the document store contract for the chat relay.
All persistence APIs are async. No sync DB calls allowed.

The relay reads records owned by the primary backend (users, quotations,
RFQs, products, shops) and writes chat messages. It does so through this
single port:
- Core components depend only on this interface
- Adapters (in-memory, MongoDB) implement it
- Writes go straight to the collection: no buffering, no implicit queuing
  while a connection is mid-transition

Identifiers cross the port as strings. Adapters translate them to and from
their native id type.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class Collections:
    """Collection names shared with the primary backend."""
    USERS = "users"
    QUOTATIONS = "quotations"
    RFQS = "rfqs"
    PRODUCTS = "products"
    SHOPS = "shops"
    MESSAGES = "quotationmessages"


# Message references of which exactly one is set; unset ones are not stored
THREAD_FIELDS = frozenset({"quotation", "rfq", "product"})


class ConnectionEvent(str, Enum):
    """Connectivity changes reported asynchronously by an adapter."""
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


ConnectionListener = Callable[[ConnectionEvent], None]


class DocumentStore(ABC):
    """
    Storage interface for the shared document database.

    Connection listeners are plain callables invoked on the event loop
    whenever the adapter observes a connectivity change.
    """

    def __init__(self) -> None:
        self._listeners: list[ConnectionListener] = []

    def add_connection_listener(self, listener: ConnectionListener) -> Callable[[], None]:
        """Register a connectivity listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return remove

    def _emit_connection_event(self, event: ConnectionEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Connection listener failed on {event.value}: {e}")

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether the adapter currently believes the backend is reachable."""
        ...

    @abstractmethod
    async def connect(self) -> None:
        """
        Open the backend connection.

        Raises:
            StorageUnavailableError: If the backend cannot be reached
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the backend connection. Called during shutdown."""
        ...

    @abstractmethod
    async def ping(self) -> None:
        """
        Cheap liveness probe.

        Raises:
            StorageUnavailableError: If the backend does not answer
        """
        ...

    @abstractmethod
    async def count_documents(self, collection: str, limit: int = 1) -> int:
        """
        Count documents in a collection, stopping at `limit`.

        Used to verify a collection is actually queryable, not only that
        the server answers pings.
        """
        ...

    @abstractmethod
    async def find_one(
        self,
        collection: str,
        document_id: str,
        projection: list[str] | None = None,
    ) -> dict[str, Any] | None:
        """
        Read a document by id.

        Args:
            collection: Collection name
            document_id: String identifier
            projection: Optional list of fields to return (plus "_id")

        Returns:
            The document with string ids, or None if not found

        Raises:
            InvalidIdentifierError: If document_id is not a valid identifier
            StorageUnavailableError: If the backend is not reachable
        """
        ...

    @abstractmethod
    async def insert_one(self, collection: str, document: dict[str, Any]) -> str:
        """
        Insert a document directly into the collection.

        Returns:
            The inserted document id

        Raises:
            StorageError: If the write is rejected
            StorageUnavailableError: If the backend is not reachable
        """
        ...


# =============================================================================
# Exceptions
# =============================================================================

class StorageError(Exception):
    """Base exception for storage errors."""
    pass


class StorageUnavailableError(StorageError):
    """Backend not connected or not answering."""
    pass


class InvalidIdentifierError(StorageError):
    """Identifier is not valid for this backend."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field
