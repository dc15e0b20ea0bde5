"""
MongoDB Storage Adapter

Document store backed by the shared MongoDB database, using the PyMongo
async client directly on raw collections. There is no ODM layer in between,
so nothing buffers or queues operations while the connection is
reconnecting: an operation either reaches the server or fails.

Connectivity changes are picked up from server heartbeat events and
forwarded to connection listeners on the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from bson import ObjectId
from pymongo import AsyncMongoClient, monitoring
from pymongo.errors import ConnectionFailure, PyMongoError

from chat_relay.storage.ports import (
    ConnectionEvent,
    DocumentStore,
    InvalidIdentifierError,
    StorageError,
    StorageUnavailableError,
    THREAD_FIELDS,
)

logger = logging.getLogger(__name__)

# Reference fields stored as ObjectId by the primary backend
REFERENCE_FIELDS = frozenset({
    "_id",
    "quotation",
    "rfq",
    "product",
    "sender",
    "receiver",
    "shop",
    "owner",
    "quotedBy",
    "requestedBy",
})


def _normalize(value: Any) -> Any:
    """Convert ObjectIds to strings, recursively."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {key: _normalize(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_normalize(item) for item in value]
    return value


def _to_bson(document: dict[str, Any]) -> dict[str, Any]:
    """
    Convert string references back to ObjectIds before writing.

    Unset thread references are left out of the document.

    Raises:
        InvalidIdentifierError: A reference is set but is not an ObjectId
    """
    converted: dict[str, Any] = {}
    for key, value in document.items():
        if key in THREAD_FIELDS and value is None:
            continue
        if key in REFERENCE_FIELDS and value is not None:
            converted[key] = _object_id(value, field=key)
        else:
            converted[key] = value
    return converted


def _object_id(document_id: Any, field: str = "_id") -> ObjectId:
    if isinstance(document_id, ObjectId):
        return document_id
    if isinstance(document_id, str) and ObjectId.is_valid(document_id):
        return ObjectId(document_id)
    raise InvalidIdentifierError(f"Invalid {field}: {document_id!r}", field=field)


class _HeartbeatRelay(monitoring.ServerHeartbeatListener):
    """Forwards server heartbeat outcomes to the owning store."""

    def __init__(self, store: "MongoDocumentStore"):
        self._store = store

    def started(self, event: monitoring.ServerHeartbeatStartedEvent) -> None:
        pass

    def succeeded(self, event: monitoring.ServerHeartbeatSucceededEvent) -> None:
        self._store._on_heartbeat(True)

    def failed(self, event: monitoring.ServerHeartbeatFailedEvent) -> None:
        logger.warning(f"MongoDB heartbeat failed for {event.connection_id}: {event.reply}")
        self._store._on_heartbeat(False)


class MongoDocumentStore(DocumentStore):
    """
    MongoDB document storage.

    Args:
        uri: MongoDB connection URI
        database_name: Database override (defaults to the URI's database)
        server_selection_timeout_ms: Driver server selection bound
        connect_timeout_ms: Driver connect bound
        socket_timeout_ms: Driver socket bound
    """

    def __init__(
        self,
        uri: str,
        database_name: str | None = None,
        server_selection_timeout_ms: int = 30000,
        connect_timeout_ms: int = 30000,
        socket_timeout_ms: int = 45000,
    ):
        super().__init__()
        self._uri = uri
        self._database_name = database_name
        self._server_selection_timeout_ms = server_selection_timeout_ms
        self._connect_timeout_ms = connect_timeout_ms
        self._socket_timeout_ms = socket_timeout_ms
        self._client: AsyncMongoClient | None = None
        self._db: Any = None
        self._connected = False
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._connected

    @property
    def database_name(self) -> str | None:
        return self._db.name if self._db is not None else None

    def _on_heartbeat(self, ok: bool) -> None:
        # Heartbeats may arrive off the event loop thread
        if self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._set_connected, ok)

    def _set_connected(self, connected: bool) -> None:
        if connected == self._connected:
            return
        self._connected = connected
        if connected:
            logger.info("MongoDB connection event: connected")
        else:
            logger.warning("MongoDB disconnected")
        self._emit_connection_event(
            ConnectionEvent.CONNECTED if connected else ConnectionEvent.DISCONNECTED
        )

    def _database(self) -> Any:
        if self._db is None:
            raise StorageUnavailableError("Database not available")
        return self._db

    async def connect(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._client = AsyncMongoClient(
            self._uri,
            serverSelectionTimeoutMS=self._server_selection_timeout_ms,
            connectTimeoutMS=self._connect_timeout_ms,
            socketTimeoutMS=self._socket_timeout_ms,
            event_listeners=[_HeartbeatRelay(self)],
        )
        if self._database_name:
            self._db = self._client.get_database(self._database_name)
        else:
            self._db = self._client.get_default_database(default="test")

        try:
            await self._db.command("ping")
        except PyMongoError as e:
            raise StorageUnavailableError(f"MongoDB connection error: {e}") from e

        self._set_connected(True)
        logger.info(f"MongoDB connected (database: {self._db.name})")

    async def close(self) -> None:
        self._connected = False
        if self._client is not None:
            await self._client.close()
            self._client = None
            self._db = None

    async def ping(self) -> None:
        try:
            await self._database().command("ping")
        except ConnectionFailure as e:
            self._set_connected(False)
            raise StorageUnavailableError(f"Ping failed: {e}") from e
        except PyMongoError as e:
            raise StorageUnavailableError(f"Ping failed: {e}") from e

    async def count_documents(self, collection: str, limit: int = 1) -> int:
        try:
            return await self._database()[collection].count_documents({}, limit=limit)
        except PyMongoError as e:
            raise StorageUnavailableError(f"Count on {collection} failed: {e}") from e

    async def find_one(
        self,
        collection: str,
        document_id: str,
        projection: list[str] | None = None,
    ) -> dict[str, Any] | None:
        oid = _object_id(document_id)
        fields = {field: 1 for field in projection} if projection else None
        try:
            doc = await self._database()[collection].find_one({"_id": oid}, fields)
        except ConnectionFailure as e:
            raise StorageUnavailableError(f"Lookup on {collection} failed: {e}") from e
        except PyMongoError as e:
            raise StorageError(f"Lookup on {collection} failed: {e}") from e
        return _normalize(doc) if doc is not None else None

    async def insert_one(self, collection: str, document: dict[str, Any]) -> str:
        doc = _to_bson(document)
        doc.setdefault("createdAt", datetime.now(timezone.utc))
        doc.setdefault("__v", 0)
        try:
            result = await self._database()[collection].insert_one(doc)
        except ConnectionFailure as e:
            raise StorageUnavailableError(f"Insert into {collection} failed: {e}") from e
        except PyMongoError as e:
            raise StorageError(f"Insert into {collection} failed: {e}") from e

        if result.inserted_id is None:
            raise StorageError("Failed to save message")
        return str(result.inserted_id)
