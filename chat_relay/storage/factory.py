"""
Storage Factory

Configuration-based selection of the document store adapter.

Supported backends:
- memory: In-memory storage (development/testing)
- mongodb: The shared MongoDB database (production)

Usage:
    # From environment
    store = create_storage(settings_from_env())

    # From settings
    store = create_storage(RelaySettings(storage_backend="mongodb", mongodb_uri="mongodb://..."))
"""

from __future__ import annotations

from enum import Enum

from chat_relay.config import RelaySettings
from chat_relay.storage.memory import InMemoryDocumentStore
from chat_relay.storage.ports import DocumentStore


class StorageBackend(str, Enum):
    """Supported storage backends."""
    MEMORY = "memory"
    MONGODB = "mongodb"


def create_storage(settings: RelaySettings) -> DocumentStore:
    """
    Create the document store from settings.

    The store is returned unconnected; the readiness gate connects it.

    Raises:
        ValueError: If settings are invalid
    """
    backend = StorageBackend(settings.storage_backend)

    if backend == StorageBackend.MEMORY:
        return InMemoryDocumentStore(connected=False)

    if not settings.mongodb_uri:
        raise ValueError("MONGODB_URI is not set")

    from chat_relay.storage.mongo import MongoDocumentStore

    return MongoDocumentStore(
        uri=settings.mongodb_uri,
        database_name=settings.database_name,
    )
