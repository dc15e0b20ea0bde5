"""
Tests for environment-based settings and storage selection.
"""

import pytest

from chat_relay.config import RelaySettings, parse_cors_origins, settings_from_env
from chat_relay.storage import InMemoryDocumentStore, create_storage
from chat_relay.storage.mongo import MongoDocumentStore

RELAY_ENV = [
    "MONGODB_URI",
    "RELAY_STORAGE_BACKEND",
    "RELAY_DATABASE_NAME",
    "JWT_SECRET",
    "JWT_ALGORITHMS",
    "CORS_ORIGIN",
    "HOST",
    "PORT",
    "RELAY_BACKEND_ENV",
    "RELAY_READY_MAX_ATTEMPTS",
    "RELAY_READY_INTERVAL",
    "RELAY_HEALTH_POLL_INTERVAL",
    "RELAY_LOOKUP_TIMEOUT",
    "RELAY_INSERT_TIMEOUT",
    "RELAY_READBACK_TIMEOUT",
    "RELAY_SENDER_TIMEOUT",
    "RELAY_MAX_QUEUE_SIZE",
    "LOG_LEVEL",
]


@pytest.fixture
def env(monkeypatch):
    for name in RELAY_ENV:
        # Registered with monkeypatch so values loaded from .env files are undone too
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return monkeypatch


# ─────────────────────────────────────────────
# CORS_ORIGIN
# ─────────────────────────────────────────────

@pytest.mark.parametrize(
    "value, expected",
    [
        (None, ["*"]),
        ("", ["*"]),
        ("*", ["*"]),
        (" * ", ["*"]),
        ("https://shop.example.com", ["https://shop.example.com"]),
        (
            "https://shop.example.com, https://admin.example.com,",
            ["https://shop.example.com", "https://admin.example.com"],
        ),
        (" , ", ["*"]),
    ],
)
def test_parse_cors_origins(value, expected):
    assert parse_cors_origins(value) == expected


# ─────────────────────────────────────────────
# settings_from_env
# ─────────────────────────────────────────────

def test_defaults(env):
    settings = settings_from_env()

    assert settings == RelaySettings()
    assert settings.storage_backend == "memory"
    assert settings.port == 3001
    assert settings.ready_max_attempts == 15
    assert settings.insert_timeout_seconds == 8.0


def test_values_from_environment(env):
    env.setenv("MONGODB_URI", "mongodb://db:27017/marketplace")
    env.setenv("JWT_SECRET", "s3cret")
    env.setenv("JWT_ALGORITHMS", "HS256, HS512")
    env.setenv("CORS_ORIGIN", "https://shop.example.com")
    env.setenv("PORT", "4000")
    env.setenv("RELAY_READY_MAX_ATTEMPTS", "5")
    env.setenv("RELAY_LOOKUP_TIMEOUT", "2.5")
    env.setenv("RELAY_MAX_QUEUE_SIZE", "50")
    env.setenv("LOG_LEVEL", "debug")

    settings = settings_from_env()

    assert settings.storage_backend == "mongodb"
    assert settings.mongodb_uri == "mongodb://db:27017/marketplace"
    assert settings.jwt_secret == "s3cret"
    assert settings.jwt_algorithms == ["HS256", "HS512"]
    assert settings.cors_origins == ["https://shop.example.com"]
    assert settings.port == 4000
    assert settings.ready_max_attempts == 5
    assert settings.lookup_timeout_seconds == 2.5
    assert settings.max_queue_size == 50
    assert settings.log_level == "DEBUG"


def test_explicit_backend_wins_over_uri(env):
    env.setenv("MONGODB_URI", "mongodb://db:27017/marketplace")
    env.setenv("RELAY_STORAGE_BACKEND", "MEMORY")

    assert settings_from_env().storage_backend == "memory"


def test_backend_env_fills_missing_values(env, tmp_path):
    backend_env = tmp_path / ".env"
    backend_env.write_text(
        "MONGODB_URI=mongodb://backend:27017/marketplace\n"
        "JWT_SECRET=backend-secret\n"
    )
    env.setenv("RELAY_BACKEND_ENV", str(backend_env))
    env.setenv("JWT_SECRET", "local-secret")

    settings = settings_from_env()

    assert settings.mongodb_uri == "mongodb://backend:27017/marketplace"
    assert settings.jwt_secret == "local-secret"
    assert settings.storage_backend == "mongodb"


def test_missing_backend_env_file_is_ignored(env, tmp_path):
    env.setenv("RELAY_BACKEND_ENV", str(tmp_path / "missing.env"))

    settings = settings_from_env()

    assert settings.mongodb_uri is None
    assert settings.jwt_secret is None


# ─────────────────────────────────────────────
# Storage selection
# ─────────────────────────────────────────────

def test_memory_backend_starts_unconnected():
    store = create_storage(RelaySettings(storage_backend="memory"))

    assert isinstance(store, InMemoryDocumentStore)
    assert store.is_connected is False


def test_mongodb_backend():
    store = create_storage(RelaySettings(
        storage_backend="mongodb",
        mongodb_uri="mongodb://db:27017/marketplace",
    ))

    assert isinstance(store, MongoDocumentStore)


def test_mongodb_backend_requires_uri():
    with pytest.raises(ValueError, match="MONGODB_URI"):
        create_storage(RelaySettings(storage_backend="mongodb"))


def test_unknown_backend():
    with pytest.raises(ValueError):
        create_storage(RelaySettings(storage_backend="redis"))
