"""
Chat Relay Application

FastAPI application with the WebSocket endpoint of the negotiation chat
relay. This is the main entry point for running the relay.

Storage is configured via environment variables:
- MONGODB_URI: Shared MongoDB database of the primary backend
- RELAY_STORAGE_BACKEND: "memory" or "mongodb"

Credentials are verified with JWT_SECRET (see chat_relay.config for the
full list). Environment variables can be loaded from a .env file in the
working directory.

Startup order: settings -> storage -> readiness connect -> poller ->
components. A storage connection failure at startup aborts the process.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from chat_relay.auth.verifier import IdentityVerifier
from chat_relay.config import RelaySettings, settings_from_env
from chat_relay.messages.store import MessageStore
from chat_relay.policy.engine import AccessAuthorizer
from chat_relay.readiness.gate import ReadinessGate
from chat_relay.session.manager import SessionManager
from chat_relay.storage import DocumentStore, StorageError, create_storage
from chat_relay.threads.resolver import ThreadResolver
from chat_relay.transport.channels import ChannelRegistry
from chat_relay.transport.dispatcher import BroadcastDispatcher
from chat_relay.transport.handler import CLOSE_INTERNAL_ERROR, WebSocketHandler
from chat_relay.transport.queue import OutboundQueueManager
from chat_relay.transport.router import SessionRouter

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

SERVICE_NAME = "chat-relay"


@dataclass
class RelayComponents:
    """Everything built at startup, torn down at shutdown."""
    settings: RelaySettings
    store: DocumentStore
    gate: ReadinessGate
    sessions: SessionManager
    channels: ChannelRegistry
    queues: OutboundQueueManager
    router: SessionRouter
    handler: WebSocketHandler


def build_components(settings: RelaySettings, store: DocumentStore, gate: ReadinessGate) -> RelayComponents:
    """Construct the relay around a connected store."""
    sessions = SessionManager()
    channels = ChannelRegistry()
    queues = OutboundQueueManager(max_queue_size=settings.max_queue_size)

    router = SessionRouter(
        verifier=IdentityVerifier(settings.jwt_secret, settings.jwt_algorithms),
        gate=gate,
        resolver=ThreadResolver(store, lookup_timeout_seconds=settings.lookup_timeout_seconds),
        authorizer=AccessAuthorizer(),
        message_store=MessageStore(
            store,
            insert_timeout_seconds=settings.insert_timeout_seconds,
            readback_timeout_seconds=settings.readback_timeout_seconds,
            sender_timeout_seconds=settings.sender_timeout_seconds,
        ),
        dispatcher=BroadcastDispatcher(channels, queues),
        channels=channels,
        queues=queues,
        sessions=sessions,
        ready_max_attempts=settings.ready_max_attempts,
        ready_interval_seconds=settings.ready_interval_seconds,
    )

    return RelayComponents(
        settings=settings,
        store=store,
        gate=gate,
        sessions=sessions,
        channels=channels,
        queues=queues,
        router=router,
        handler=WebSocketHandler(router),
    )


def create_app(
    settings: RelaySettings | None = None,
    store: DocumentStore | None = None,
) -> FastAPI:
    """
    Create the relay application.

    Args:
        settings: Relay settings (defaults to settings_from_env())
        store: Document store to use instead of the configured backend
    """
    settings = settings or settings_from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting chat relay...")

        document_store = store or create_storage(settings)
        gate = ReadinessGate(
            document_store,
            poll_interval_seconds=settings.health_poll_interval_seconds,
            probe_timeout_seconds=settings.lookup_timeout_seconds,
        )

        try:
            await gate.connect()
        except StorageError as e:
            logger.error(f"Failed to start chat relay: {e}")
            raise

        await gate.start()
        components = build_components(settings, document_store, gate)
        app.state.relay = components

        if not settings.jwt_secret:
            logger.warning("JWT_SECRET not configured, every connection will be refused")

        logger.info(f"Chat relay started (storage: {type(document_store).__name__})")

        yield

        # Shutdown
        logger.info("Shutting down chat relay...")
        app.state.relay = None
        await components.queues.shutdown()
        await gate.close()
        logger.info("Chat relay stopped")

    app = FastAPI(
        title="Chat Relay",
        description="Real-time negotiation chat relay for quotations, RFQs and products",
        version="0.1.0",
        lifespan=lifespan
    )
    app.state.relay = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """
        WebSocket endpoint for chat clients.

        Connect with ?token=<jwt> or an Authorization: Bearer header.
        """
        components: RelayComponents | None = websocket.app.state.relay
        if components is None:
            await websocket.accept()
            await websocket.close(code=CLOSE_INTERNAL_ERROR, reason="Relay not initialized")
            return

        await components.handler.handle_connection(websocket)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        components: RelayComponents | None = app.state.relay
        health = {
            "status": "OK",
            "service": SERVICE_NAME,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if components is None:
            health.update(readiness="disconnected", sessions=0, channels=0)
            return health

        health.update(components.router.get_stats())
        health["inflight_events"] = components.handler.inflight_count
        return health

    return app


def main() -> None:
    """Run the relay with uvicorn. Exits with status 1 if startup fails."""
    settings = settings_from_env()
    logging.getLogger().setLevel(settings.log_level)

    config = uvicorn.Config(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
    server = uvicorn.Server(config)
    server.run()

    if not server.started:
        logger.error("Chat relay did not start")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
