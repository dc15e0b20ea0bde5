# Storage Layer
# Pluggable access to the shared document database
#
# This module provides:
# - The DocumentStore port (ABC) defining the storage contract
# - An in-memory implementation for development/testing
# - A MongoDB implementation on the raw async driver
# - A factory for configuration-based adapter selection

from .ports import (
    Collections,
    ConnectionEvent,
    ConnectionListener,
    DocumentStore,
    StorageError,
    StorageUnavailableError,
    InvalidIdentifierError,
)
from .memory import InMemoryDocumentStore, new_document_id
from .factory import (
    StorageBackend,
    create_storage,
)

__all__ = [
    # Port
    "Collections",
    "ConnectionEvent",
    "ConnectionListener",
    "DocumentStore",
    "StorageError",
    "StorageUnavailableError",
    "InvalidIdentifierError",
    # Adapters
    "InMemoryDocumentStore",
    "new_document_id",
    # Factory
    "StorageBackend",
    "create_storage",
]
