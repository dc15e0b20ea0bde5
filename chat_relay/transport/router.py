"""
Session Router

Owns the per-connection lifecycle and turns inbound events into work:

    authenticate -> attach -> handle_event* -> disconnect

Each inbound event runs the same pipeline:
1. Parse the payload into a thread reference
2. Wait for persistence readiness (join and send only)
3. Resolve a fresh thread snapshot
4. Authorize the action
5. Act: join the channel, or persist and broadcast the message

Every failure is contained to the event that caused it. Relay errors come
back to the session as `error` frames with their own message; anything
unexpected is reported as "Failed to ...". The session stays open either way.

The router is the only component that mutates sessions and channel
membership.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

from chat_relay.auth.verifier import Identity, IdentityVerifier, extract_bearer_token
from chat_relay.errors import NotReadyError, OperationTimeout, RelayError, ValidationError
from chat_relay.messages.models import MessageDraft
from chat_relay.messages.store import MessageStore
from chat_relay.policy.engine import AccessAuthorizer, Action
from chat_relay.protocol.events import (
    ClientEvent,
    EventFrame,
    create_error,
    create_error_from,
    create_joined_room,
    create_left_room,
    parse_frame,
)
from chat_relay.readiness.gate import ReadinessGate
from chat_relay.session.manager import SessionManager
from chat_relay.session.session import Session, SessionState
from chat_relay.threads.references import (
    PRODUCT_FIELD,
    QUOTATION_FIELD,
    RFQ_FIELD,
    ProductThread,
    QuotationThread,
    RFQThread,
    ThreadReference,
    channel_for,
    private_channel,
    thread_from_payload,
    thread_ids,
    thread_label,
)
from chat_relay.threads.resolver import ThreadResolver
from chat_relay.threads.snapshot import ThreadSnapshot
from chat_relay.transport.channels import ChannelRegistry
from chat_relay.transport.dispatcher import BroadcastDispatcher
from chat_relay.transport.queue import OutboundQueueManager, SendFn

logger = logging.getLogger(__name__)

NOT_READY_MESSAGE = "Server not ready. Please try again."
QUERY_TIMEOUT_MESSAGE = "Query timeout. Please try again."

EventHandler = Callable[[Session, dict[str, Any]], Awaitable[None]]


def _required_id(data: dict[str, Any], field: str, message: str) -> str:
    value = data.get(field)
    if value is None or str(value).strip() == "":
        raise ValidationError(message)
    return str(value).strip()


class SessionRouter:
    """
    Routes session events through resolver, authorizer, store and dispatcher.

    All collaborators are constructed eagerly at startup; attach() refuses
    sessions until the readiness gate reports READY.
    """

    def __init__(
        self,
        verifier: IdentityVerifier,
        gate: ReadinessGate,
        resolver: ThreadResolver,
        authorizer: AccessAuthorizer,
        message_store: MessageStore,
        dispatcher: BroadcastDispatcher,
        channels: ChannelRegistry,
        queues: OutboundQueueManager,
        sessions: SessionManager,
        ready_max_attempts: int = 15,
        ready_interval_seconds: float = 1.0,
    ):
        self._verifier = verifier
        self._gate = gate
        self._resolver = resolver
        self._authorizer = authorizer
        self._messages = message_store
        self._dispatcher = dispatcher
        self._channels = channels
        self._queues = queues
        self._sessions = sessions
        self._ready_max_attempts = ready_max_attempts
        self._ready_interval = ready_interval_seconds

        self._handlers: dict[str, tuple[EventHandler, str]] = {
            ClientEvent.JOIN_QUOTATION_ROOM.value: (self._handle_join_quotation, "join room"),
            ClientEvent.JOIN_RFQ_ROOM.value: (self._handle_join_rfq, "join room"),
            ClientEvent.JOIN_PRODUCT_ROOM.value: (self._handle_join_product, "join room"),
            ClientEvent.LEAVE_ROOM.value: (self._handle_leave_room, "leave room"),
            ClientEvent.SEND_MESSAGE.value: (self._handle_send_message, "send message"),
            ClientEvent.TYPING.value: (self._handle_typing, "update typing status"),
            ClientEvent.STOP_TYPING.value: (self._handle_stop_typing, "update typing status"),
        }

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def authenticate(
        self,
        auth_token: str | None,
        authorization_header: str | None = None,
    ) -> Identity:
        """
        Verify the handshake credential.

        Raises:
            AuthenticationFailed: Missing or invalid credential
            MisconfiguredError: No verification secret configured
        """
        credential = extract_bearer_token(auth_token, authorization_header)
        return self._verifier.authenticate(credential)

    async def open_session(self, identity: Identity) -> Session:
        """Create the session of an authenticated connection."""
        return await self._sessions.create_session(identity)

    async def attach(self, session: Session, send_fn: SendFn) -> None:
        """
        Second phase of initialization: wire the session into the relay.

        Registers the outbound queue and subscribes the private channel.

        Raises:
            NotReadyError: If persistence is not READY
        """
        if not self._gate.is_ready:
            logger.warning(
                f"Refusing session {session.connection_id} for user {session.user_id}: "
                f"readiness is {self._gate.state.value}"
            )
            raise NotReadyError(NOT_READY_MESSAGE)

        self._queues.register(session.connection_id, send_fn)
        channel = private_channel(session.user_id)
        self._channels.join(channel, session.connection_id)
        session.joined_channels.add(channel)
        session.state = SessionState.IDLE
        logger.info(f"User {session.user_id} connected ({session.connection_id}), joined {channel}")

    async def disconnect(self, session: Session) -> None:
        """Terminal: drop memberships and the outbound queue. Nothing is persisted."""
        # Must be closed before the first await; pending joins check is_closed
        session.state = SessionState.DISCONNECTED
        left = self._channels.leave_all(session.connection_id)
        await self._queues.remove(session.connection_id)
        await self._sessions.remove_session(session.connection_id)
        session.joined_channels.clear()
        logger.info(
            f"User {session.user_id} disconnected ({session.connection_id}), "
            f"left {len(left)} channels"
        )

    # =========================================================================
    # Event dispatch
    # =========================================================================

    async def handle_frame(self, session: Session, raw: str) -> None:
        """Parse a raw text frame and handle the event it carries."""
        try:
            frame = parse_frame(raw)
        except ValidationError as e:
            logger.warning(f"Invalid frame from {session.connection_id}: {e.message}")
            self._send(session, create_error_from(e))
            return
        await self.handle_event(session, frame.event, frame.data)

    async def handle_event(self, session: Session, event: str, data: dict[str, Any]) -> None:
        """
        Handle one inbound event. Never raises for a failed request.
        """
        entry = self._handlers.get(event)
        if entry is None:
            logger.warning(f"Unknown event from {session.connection_id}: {event}")
            self._send(session, create_error(f"Unknown event: {event}"))
            return

        handler, action = entry
        session.begin_event()
        try:
            await handler(session, data if isinstance(data, dict) else {})
        except RelayError as e:
            logger.warning(f"[{event}] user {session.user_id}: {e.message}")
            self._send(session, create_error_from(e))
        except Exception as e:
            logger.error(f"[{event}] unexpected error for user {session.user_id}: {e}")
            self._send(session, create_error(f"Failed to {action}: {e}", details=str(e)))
        finally:
            session.end_event()

    def _send(self, session: Session, frame: EventFrame) -> bool:
        if session.is_closed:
            return False
        return self._queues.deliver(session.connection_id, frame.to_json())

    async def _await_ready(self) -> None:
        await self._gate.await_ready(
            max_attempts=self._ready_max_attempts,
            interval=self._ready_interval,
        )

    async def _resolve(self, ref: ThreadReference) -> ThreadSnapshot:
        try:
            return await self._resolver.resolve(ref)
        except OperationTimeout as e:
            raise OperationTimeout(QUERY_TIMEOUT_MESSAGE, details=e.message) from None

    # =========================================================================
    # Joining and leaving
    # =========================================================================

    async def _handle_join_quotation(self, session: Session, data: dict[str, Any]) -> None:
        quotation_id = _required_id(data, QUOTATION_FIELD, "Quotation ID is required")
        await self._join(session, QuotationThread(quotation_id=quotation_id))

    async def _handle_join_rfq(self, session: Session, data: dict[str, Any]) -> None:
        rfq_id = _required_id(data, RFQ_FIELD, "RFQ ID is required")
        await self._join(session, RFQThread(rfq_id=rfq_id))

    async def _handle_join_product(self, session: Session, data: dict[str, Any]) -> None:
        message = "Product ID and receiver ID are required"
        product_id = _required_id(data, PRODUCT_FIELD, message)
        receiver_id = _required_id(data, "receiverId", message)
        await self._join(session, ProductThread(product_id=product_id, counterpart_id=receiver_id))

    async def _join(self, session: Session, ref: ThreadReference) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()

        await self._await_ready()
        snapshot = await self._resolve(ref)

        decision = self._authorizer.authorize(session.identity, snapshot, Action.JOIN)
        if not decision.allowed:
            raise decision.to_error()

        if session.is_closed:
            logger.info(f"Session {session.connection_id} closed before joining {decision.channel}")
            return

        self._channels.join(decision.channel, session.connection_id)
        session.joined_channels.add(decision.channel)
        self._send(session, create_joined_room(decision.channel, ref))

        elapsed_ms = (loop.time() - started) * 1000
        logger.info(
            f"User {session.user_id} joined {decision.channel} "
            f"({thread_label(ref)}, took {elapsed_ms:.0f}ms)"
        )

    async def _handle_leave_room(self, session: Session, data: dict[str, Any]) -> None:
        room = data.get("room")
        if not room or not isinstance(room, str):
            raise ValidationError("Room is required")
        if room == private_channel(session.user_id):
            raise ValidationError("Cannot leave the private user channel")

        self._channels.leave(room, session.connection_id)
        session.joined_channels.discard(room)
        self._send(session, create_left_room(room))
        logger.info(f"User {session.user_id} left {room}")

    # =========================================================================
    # Messaging
    # =========================================================================

    async def _handle_send_message(self, session: Session, data: dict[str, Any]) -> None:
        body = data.get("message")
        receiver = data.get("receiver")
        if not body or not receiver:
            raise ValidationError("Message and receiver are required")
        receiver = str(receiver)

        attachments = data.get("attachments") or []
        if not isinstance(attachments, list):
            raise ValidationError("Attachments must be a list")

        ref = thread_from_payload(data, counterpart_field="receiver")

        await self._await_ready()
        snapshot = await self._resolve(ref)

        decision = self._authorizer.authorize(
            session.identity, snapshot, Action.SEND, receiver=receiver
        )
        if not decision.allowed:
            raise decision.to_error()

        ids = thread_ids(ref)
        draft = MessageDraft(
            quotation=ids[QUOTATION_FIELD],
            rfq=ids[RFQ_FIELD],
            product=ids[PRODUCT_FIELD],
            sender=session.user_id,
            receiver=receiver,
            body=str(body),
            attachments=attachments,
        )
        message = await self._messages.persist(draft)

        logger.info(
            f"Broadcasting message {message.id} from {session.user_id}: "
            f"{decision.channel} has {self._channels.subscriber_count(decision.channel)} sockets, "
            f"{private_channel(receiver)} has "
            f"{self._channels.subscriber_count(private_channel(receiver))} sockets"
        )
        await self._dispatcher.dispatch(message, decision.channel, ref)

    async def _handle_typing(self, session: Session, data: dict[str, Any]) -> None:
        await self._typing(session, data, True)

    async def _handle_stop_typing(self, session: Session, data: dict[str, Any]) -> None:
        await self._typing(session, data, False)

    async def _typing(self, session: Session, data: dict[str, Any], typing: bool) -> None:
        # Typing indicators are ephemeral: anything unroutable is dropped
        try:
            ref = thread_from_payload(data, counterpart_field="receiverId")
        except ValidationError as e:
            logger.debug(f"Dropping typing event from {session.connection_id}: {e.message}")
            return
        channel = channel_for(ref, session.user_id)
        await self._dispatcher.dispatch_typing(session, channel, typing)

    # =========================================================================
    # Introspection
    # =========================================================================

    def get_stats(self) -> dict[str, Any]:
        return {
            "readiness": self._gate.state.value,
            **self._sessions.get_stats(),
            "channels": self._channels.channel_count,
            "connection_queues": self._queues.connection_count(),
        }
