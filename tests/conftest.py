"""
Shared fixtures for the chat relay tests.

Everything runs against the in-memory document store seeded with a small
marketplace:

    U1 buyer, U2 supplier (owns shop S1), U3 outsider
    R1   RFQ requested by U1
    Q1   quotation by U2 on R1
    Q2   quotation whose parent RFQ is gone
    P1   product of shop S1
    P2   product whose shop is gone
    P3   product with its shop (and owner) embedded
"""

import asyncio
import json
import time
from typing import Any

import jwt
import pytest

from chat_relay.config import RelaySettings
from chat_relay.readiness.gate import ReadinessGate
from chat_relay.storage.memory import InMemoryDocumentStore
from chat_relay.storage.ports import Collections
from chat_relay.transport.app import RelayComponents, build_components

SECRET = "chat-relay-test-secret-0123456789abcdef"
BUYER = "U1"
SUPPLIER = "U2"
OUTSIDER = "U3"


def make_token(user_id: Any, secret: str = SECRET, expires_in: int = 3600, **claims) -> str:
    payload = {"exp": int(time.time()) + expires_in, **claims}
    if user_id is not None:
        payload["userId"] = user_id
    return jwt.encode(payload, secret, algorithm="HS256")


class ScriptedDocumentStore(InMemoryDocumentStore):
    """
    In-memory store with injectable latency and failures.

    Keys are "<op>:<collection>" with op in {"find", "insert"}. A gated
    operation records its key in `waiting` and blocks until the event is set.
    """

    def __init__(self, connected: bool = True):
        super().__init__(connected=connected)
        self.delays: dict[str, float] = {}
        self.failures: dict[str, Exception] = {}
        self.missing: set[str] = set()
        self.gates: dict[str, asyncio.Event] = {}
        self.waiting: set[str] = set()

    async def _script(self, key: str) -> None:
        gate = self.gates.get(key)
        if gate is not None:
            self.waiting.add(key)
            await gate.wait()
        delay = self.delays.get(key)
        if delay:
            await asyncio.sleep(delay)
        failure = self.failures.get(key)
        if failure is not None:
            raise failure

    async def find_one(self, collection, document_id, projection=None):
        await self._script(f"find:{collection}")
        if f"find:{collection}" in self.missing:
            return None
        return await super().find_one(collection, document_id, projection)

    async def insert_one(self, collection, document):
        await self._script(f"insert:{collection}")
        return await super().insert_one(collection, document)


def seed_marketplace(store: InMemoryDocumentStore) -> None:
    store.seed(Collections.USERS, {
        "_id": BUYER, "username": "buyer", "email": "buyer@example.com",
        "profile": {"company": "Acme Imports"}, "password": "hashed",
    })
    store.seed(Collections.USERS, {
        "_id": SUPPLIER, "username": "supplier", "email": "supplier@example.com",
        "profile": {"company": "Steelworks"},
    })
    store.seed(Collections.USERS, {"_id": OUTSIDER, "username": "outsider", "email": "o@example.com"})

    store.seed(Collections.SHOPS, {"_id": "S1", "name": "Steelworks Store", "owner": SUPPLIER})

    store.seed(Collections.PRODUCTS, {"_id": "P1", "name": "Steel pipe", "shop": "S1"})
    store.seed(Collections.PRODUCTS, {"_id": "P2", "name": "Orphan bolt", "shop": "S404"})
    store.seed(Collections.PRODUCTS, {
        "_id": "P3", "name": "Copper wire",
        "shop": {"_id": "S1", "owner": {"_id": SUPPLIER}},
    })

    store.seed(Collections.RFQS, {"_id": "R1", "title": "200m steel pipe", "requestedBy": BUYER})

    store.seed(Collections.QUOTATIONS, {"_id": "Q1", "quotedBy": SUPPLIER, "rfq": "R1", "price": 1200})
    store.seed(Collections.QUOTATIONS, {"_id": "Q2", "quotedBy": SUPPLIER, "rfq": "R404"})


@pytest.fixture
def store() -> ScriptedDocumentStore:
    s = ScriptedDocumentStore(connected=True)
    seed_marketplace(s)
    return s


@pytest.fixture
def settings() -> RelaySettings:
    return RelaySettings(
        jwt_secret=SECRET,
        ready_max_attempts=3,
        ready_interval_seconds=0.01,
        health_poll_interval_seconds=60,
        lookup_timeout_seconds=0.2,
        insert_timeout_seconds=0.2,
        readback_timeout_seconds=0.2,
        sender_timeout_seconds=0.2,
    )


class ChatClient:
    """An attached session plus every frame delivered to it."""

    def __init__(self, relay: RelayComponents, session):
        self.relay = relay
        self.session = session
        self.frames: list[dict[str, Any]] = []

    async def send(self, text: str) -> None:
        self.frames.append(json.loads(text))

    async def flush(self) -> None:
        queue = self.relay.queues.get(self.session.connection_id)
        if queue is not None:
            await queue.drain()

    async def emit(self, event: str, data: dict[str, Any]) -> None:
        await self.relay.router.handle_event(self.session, event, data)
        await self.flush()

    def events(self, name: str) -> list[dict[str, Any]]:
        return [frame["data"] for frame in self.frames if frame["event"] == name]

    def last(self, name: str) -> dict[str, Any]:
        matching = self.events(name)
        assert matching, f"no {name} frame received (got {[f['event'] for f in self.frames]})"
        return matching[-1]


@pytest.fixture
def relay_factory(store, settings):
    async def build() -> RelayComponents:
        gate = ReadinessGate(store, poll_interval_seconds=60, probe_timeout_seconds=0.2)
        await gate.connect()
        return build_components(settings, store, gate)

    return build


@pytest.fixture
def connect():
    async def open_client(relay: RelayComponents, user_id: str) -> ChatClient:
        identity = relay.router.authenticate(make_token(user_id))
        session = await relay.router.open_session(identity)
        client = ChatClient(relay, session)
        await relay.router.attach(session, client.send)
        return client

    return open_client
