"""
Relay Configuration

Environment-based settings for the chat relay.

Environment variables can be loaded from a .env file in the working
directory. When MONGODB_URI or JWT_SECRET are still missing afterwards,
RELAY_BACKEND_ENV may point at the primary backend's .env file so both
services share one source of truth.

Environment variables:
    MONGODB_URI: Shared document database URI
    RELAY_STORAGE_BACKEND: "memory" or "mongodb"
    RELAY_DATABASE_NAME: Database name (defaults to the one in the URI)
    JWT_SECRET: Credential verification secret
    JWT_ALGORITHMS: Comma-separated accepted algorithms
    CORS_ORIGIN: "*" or comma-separated allowed origins
    HOST / PORT: Bind address
    RELAY_BACKEND_ENV: Fallback .env of the primary backend
    RELAY_READY_MAX_ATTEMPTS / RELAY_READY_INTERVAL: Readiness wait budget
    RELAY_HEALTH_POLL_INTERVAL: Background readiness poll period
    RELAY_LOOKUP_TIMEOUT: Thread resolution bound
    RELAY_INSERT_TIMEOUT / RELAY_READBACK_TIMEOUT / RELAY_SENDER_TIMEOUT: Message store bounds
    RELAY_MAX_QUEUE_SIZE: Outbound frames buffered per connection
    LOG_LEVEL: Root log level
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def parse_cors_origins(value: str | None) -> list[str]:
    """
    Parse CORS_ORIGIN.

    "*" (or unset) allows every origin; otherwise a comma-separated list.
    """
    if not value or value.strip() == "*":
        return ["*"]
    origins = [origin.strip() for origin in value.split(",") if origin.strip()]
    return origins or ["*"]


@dataclass
class RelaySettings:
    """
    Runtime configuration for the relay.

    Attributes:
        storage_backend: "memory" or "mongodb"
        mongodb_uri: Shared document database URI
        database_name: Database name override
        jwt_secret: Secret used to verify bearer credentials
        jwt_algorithms: Accepted signing algorithms
        cors_origins: Allowed origins ("*" for all)
        host: Bind host
        port: Bind port
        ready_max_attempts: Attempts made by await_ready before giving up
        ready_interval_seconds: Pause between attempts
        health_poll_interval_seconds: Background readiness poll period
        lookup_timeout_seconds: Bound for a full thread resolution
        insert_timeout_seconds: Bound for a message insert
        readback_timeout_seconds: Bound for the read-back after insert
        sender_timeout_seconds: Bound for the sender projection lookup
        max_queue_size: Outbound queue depth per connection
        log_level: Root log level name
    """
    storage_backend: str = "memory"
    mongodb_uri: str | None = None
    database_name: str | None = None
    jwt_secret: str | None = None
    jwt_algorithms: list[str] = field(default_factory=lambda: ["HS256"])
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    host: str = "0.0.0.0"
    port: int = 3001
    ready_max_attempts: int = 15
    ready_interval_seconds: float = 1.0
    health_poll_interval_seconds: float = 30.0
    lookup_timeout_seconds: float = 5.0
    insert_timeout_seconds: float = 8.0
    readback_timeout_seconds: float = 5.0
    sender_timeout_seconds: float = 5.0
    max_queue_size: int = 200
    log_level: str = "INFO"


def _load_backend_env() -> None:
    """Fill MONGODB_URI / JWT_SECRET from the primary backend's .env if still unset."""
    if os.getenv("MONGODB_URI") and os.getenv("JWT_SECRET"):
        return

    backend_env = os.getenv("RELAY_BACKEND_ENV")
    if not backend_env:
        return

    path = Path(backend_env)
    if not path.is_file():
        logger.warning(f"Backend env file not found: {path}, using local environment only")
        return

    load_dotenv(path, override=False)
    logger.info(f"Using backend env file for MongoDB and JWT settings: {path}")


def settings_from_env() -> RelaySettings:
    """Create RelaySettings from environment variables (and .env files)."""
    load_dotenv()
    _load_backend_env()

    mongodb_uri = os.getenv("MONGODB_URI")
    backend = os.getenv("RELAY_STORAGE_BACKEND") or ("mongodb" if mongodb_uri else "memory")

    algorithms = [
        alg.strip() for alg in os.getenv("JWT_ALGORITHMS", "HS256").split(",") if alg.strip()
    ]

    return RelaySettings(
        storage_backend=backend.lower(),
        mongodb_uri=mongodb_uri,
        database_name=os.getenv("RELAY_DATABASE_NAME"),
        jwt_secret=os.getenv("JWT_SECRET") or None,
        jwt_algorithms=algorithms or ["HS256"],
        cors_origins=parse_cors_origins(os.getenv("CORS_ORIGIN")),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3001")),
        ready_max_attempts=int(os.getenv("RELAY_READY_MAX_ATTEMPTS", "15")),
        ready_interval_seconds=float(os.getenv("RELAY_READY_INTERVAL", "1.0")),
        health_poll_interval_seconds=float(os.getenv("RELAY_HEALTH_POLL_INTERVAL", "30")),
        lookup_timeout_seconds=float(os.getenv("RELAY_LOOKUP_TIMEOUT", "5")),
        insert_timeout_seconds=float(os.getenv("RELAY_INSERT_TIMEOUT", "8")),
        readback_timeout_seconds=float(os.getenv("RELAY_READBACK_TIMEOUT", "5")),
        sender_timeout_seconds=float(os.getenv("RELAY_SENDER_TIMEOUT", "5")),
        max_queue_size=int(os.getenv("RELAY_MAX_QUEUE_SIZE", "200")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
