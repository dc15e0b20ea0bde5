"""
In-Memory Storage Adapter

Implementation of the document store for development and testing.
Uses an asyncio lock for concurrent async safety.

Everything is lost on restart. Use for:
- Local development without a database
- Unit/integration testing
- Simulating disconnections (set_connected)
"""

import asyncio
import copy
from typing import Any
from uuid import uuid4

from chat_relay.storage.ports import (
    ConnectionEvent,
    DocumentStore,
    InvalidIdentifierError,
    StorageUnavailableError,
    THREAD_FIELDS,
)


def new_document_id() -> str:
    """24 hex characters, same shape as the ids the primary backend issues."""
    return uuid4().hex[:24]


class InMemoryDocumentStore(DocumentStore):
    """
    In-memory document storage.

    Uses nested dicts (collection -> id -> document) with an asyncio.Lock.
    """

    def __init__(self, connected: bool = True):
        super().__init__()
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._connected = connected
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._connected

    def set_connected(self, connected: bool) -> None:
        """Flip connectivity and notify listeners, as a real driver would."""
        if connected == self._connected:
            return
        self._connected = connected
        self._emit_connection_event(
            ConnectionEvent.CONNECTED if connected else ConnectionEvent.DISCONNECTED
        )

    def seed(self, collection: str, document: dict[str, Any]) -> str:
        """Insert a document synchronously (fixtures, local development)."""
        doc = copy.deepcopy(document)
        doc_id = str(doc.setdefault("_id", new_document_id()))
        doc["_id"] = doc_id
        self._collections.setdefault(collection, {})[doc_id] = doc
        return doc_id

    def documents(self, collection: str) -> list[dict[str, Any]]:
        """Snapshot of a collection's documents."""
        return [copy.deepcopy(doc) for doc in self._collections.get(collection, {}).values()]

    def _require_connection(self) -> None:
        if not self._connected:
            raise StorageUnavailableError("Database not connected")

    async def connect(self) -> None:
        self.set_connected(True)

    async def close(self) -> None:
        self._connected = False

    async def ping(self) -> None:
        self._require_connection()

    async def count_documents(self, collection: str, limit: int = 1) -> int:
        self._require_connection()
        async with self._lock:
            count = len(self._collections.get(collection, {}))
        return min(count, limit) if limit else count

    async def find_one(
        self,
        collection: str,
        document_id: str,
        projection: list[str] | None = None,
    ) -> dict[str, Any] | None:
        self._require_connection()
        if not document_id or not isinstance(document_id, str):
            raise InvalidIdentifierError(f"Invalid id: {document_id!r}")

        async with self._lock:
            doc = self._collections.get(collection, {}).get(document_id)
            if doc is None:
                return None
            if projection is None:
                return copy.deepcopy(doc)
            fields = set(projection) | {"_id"}
            return {key: copy.deepcopy(value) for key, value in doc.items() if key in fields}

    async def insert_one(self, collection: str, document: dict[str, Any]) -> str:
        self._require_connection()
        async with self._lock:
            doc = {
                key: copy.deepcopy(value)
                for key, value in document.items()
                if not (key in THREAD_FIELDS and value is None)
            }
            doc_id = new_document_id()
            doc["_id"] = doc_id
            self._collections.setdefault(collection, {})[doc_id] = doc
            return doc_id
