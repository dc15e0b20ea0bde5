"""
WebSocket Handler

Binds a FastAPI WebSocket to the session router.

Connection lifecycle:
1. Credential read from the `token` query parameter or the Authorization header
2. Socket accepted. Authentication failure then closes it with 4401
   (1011 when misconfigured)
3. Session created and attached
4. If persistence is not ready: one error frame, then close (1013)

Refusals are close frames sent after the accept; a close before the accept
reaches uvicorn clients as a plain HTTP 403 with no close code.
5. Receive loop: every text frame is handled in its own task, so a slow
   lookup for one event never blocks the next one
6. Disconnect drops the session; events still in flight finish quietly
"""

import asyncio
import logging

from fastapi import WebSocket, WebSocketDisconnect

from chat_relay.errors import AuthenticationFailed, MisconfiguredError, NotReadyError
from chat_relay.protocol.events import create_error
from chat_relay.transport.router import SessionRouter

logger = logging.getLogger(__name__)

CLOSE_UNAUTHORIZED = 4401
CLOSE_INTERNAL_ERROR = 1011
CLOSE_TRY_AGAIN_LATER = 1013


class WebSocketHandler:
    """Runs one WebSocket connection against the session router."""

    def __init__(self, router: SessionRouter):
        self._router = router
        self._inflight: set[asyncio.Task] = set()

    async def handle_connection(self, websocket: WebSocket) -> None:
        token = websocket.query_params.get("token")
        authorization = websocket.headers.get("authorization")

        await websocket.accept()

        try:
            identity = self._router.authenticate(token, authorization)
        except MisconfiguredError as e:
            logger.error(f"Refusing connection: {e.message}")
            await websocket.close(code=CLOSE_INTERNAL_ERROR, reason=e.message)
            return
        except AuthenticationFailed as e:
            logger.info(f"Refusing connection: {e.message}")
            await websocket.close(code=CLOSE_UNAUTHORIZED, reason=e.message)
            return

        session = await self._router.open_session(identity)

        try:
            await self._router.attach(session, websocket.send_text)
        except NotReadyError as e:
            await websocket.send_text(create_error(e.message).to_json())
            await websocket.close(code=CLOSE_TRY_AGAIN_LATER, reason="Server not ready")
            await self._router.disconnect(session)
            return

        try:
            while True:
                raw = await websocket.receive_text()
                task = asyncio.create_task(self._router.handle_frame(session, raw))
                self._inflight.add(task)
                task.add_done_callback(self._inflight.discard)

        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnected: {session.connection_id}")

        except Exception as e:
            logger.error(f"WebSocket error for {session.connection_id}: {e}")

        finally:
            await self._router.disconnect(session)

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)
