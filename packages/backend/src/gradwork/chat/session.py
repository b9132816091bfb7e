"""Chat session driver — one per WebSocket connection.

Learn: A session walks a small state machine:

    authenticating → authorizing → active → closing → closed

- authenticating: token from ?token= (or a Bearer header) → user id.
- authorizing:    the contract must exist, be accepted, and include the user.
  Either failure rejects the handshake (401 / 404 / 403) before accept,
  so a rejected client never joins a room.
- active:  two event sources race — frames from the client, and the
  outbound queue the registry fills. Whichever is ready first is handled.
- closing: reached on client close, socket error, or a closed outbound
  channel. leave() runs exactly once, in a finally block, whichever way
  we got here.

Errors after accept are split: protocol / persistence errors become an
in-band `error` frame to this client only; transport errors end the session.
"""

import asyncio
import enum
import uuid
from typing import Callable, Optional, Protocol

import structlog
from pydantic import BaseModel
from starlette.responses import JSONResponse
from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from gradwork.auth.jwt import TokenError, verify_user_id
from gradwork.chat.errors import (
    AuthenticationError,
    ChatError,
    PersistenceError,
    ProtocolError,
    TransportError,
)
from gradwork.chat.protocol import (
    Error,
    MarkRead,
    MessageRead,
    NewMessage,
    SendMessage,
    StopTyping,
    Typing,
    UserStopTyping,
    UserTyping,
    decode_client_message,
    encode_server_message,
)
from gradwork.chat.registry import Connection, ConnectionRegistry

logger = structlog.get_logger()

DENIAL_EXTENSION = "websocket.http.response"


class SessionState(str, enum.Enum):
    AUTHENTICATING = "authenticating"
    AUTHORIZING = "authorizing"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


class MessageStore(Protocol):
    async def insert_message(self, contract_id, sender_id, content): ...

    async def mark_read(self, message_id, contract_id): ...


class ChatAuthorizer(Protocol):
    async def authorize_chat(self, contract_id, user_id): ...


class ChatSession:
    """Drives one WebSocket from handshake to cleanup."""

    def __init__(
        self,
        websocket: WebSocket,
        contract_id: uuid.UUID,
        registry: ConnectionRegistry,
        store: MessageStore,
        authorizer: ChatAuthorizer,
        verify: Callable[[str], uuid.UUID] = verify_user_id,
    ):
        self.websocket = websocket
        self.contract_id = contract_id
        self.registry = registry
        self.store = store
        self.authorizer = authorizer
        self.verify = verify

        self.state = SessionState.AUTHENTICATING
        self.user_id: Optional[uuid.UUID] = None
        self.connection: Optional[Connection] = None
        self.log = logger.bind(contract_id=str(contract_id))

        self._handlers = {
            SendMessage: self._on_send_message,
            MarkRead: self._on_mark_read,
            Typing: self._on_typing,
            StopTyping: self._on_stop_typing,
        }

    # ─── Lifecycle ───────────────────────────────────────

    async def run(self) -> None:
        """Authenticate, authorize, then pump until the connection ends."""
        try:
            self.user_id = self._authenticate()
            self.state = SessionState.AUTHORIZING
            self.log = self.log.bind(user_id=str(self.user_id))
            await self.authorizer.authorize_chat(self.contract_id, self.user_id)
        except ChatError as e:
            await self._reject(e)
            return

        await self.websocket.accept()
        self.connection = await self.registry.join(self.contract_id, self.user_id)
        self.state = SessionState.ACTIVE
        self.log = self.log.bind(connection_id=str(self.connection.id))
        self.log.info("chat.session.joined")

        reason = "error"
        try:
            reason = await self._pump()
        except TransportError as e:
            reason = "transport_error"
            self.log.info("chat.session.transport_error", error=str(e))
        finally:
            self.state = SessionState.CLOSING
            await self.registry.leave(self.contract_id, self.connection)
            await self._close_transport()
            self.state = SessionState.CLOSED
            self.log.info("chat.session.closed", reason=reason)

    def _authenticate(self) -> uuid.UUID:
        token = self.websocket.query_params.get("token")
        if not token:
            authorization = self.websocket.headers.get("authorization", "")
            if authorization.startswith("Bearer "):
                token = authorization[7:]
        if not token:
            raise AuthenticationError("Authentication required")
        try:
            return self.verify(token)
        except TokenError as e:
            raise AuthenticationError(str(e)) from e

    async def _reject(self, error: ChatError) -> None:
        """Refuse the handshake — as an HTTP response when the server allows it."""
        self.log.info(
            "chat.session.rejected",
            state=self.state.value,
            status=error.status_code,
            reason=str(error),
        )
        extensions = self.websocket.scope.get("extensions") or {}
        if DENIAL_EXTENSION in extensions:
            await self.websocket.send_denial_response(
                JSONResponse({"detail": str(error)}, status_code=error.status_code)
            )
        else:
            await self.websocket.close(code=error.close_code, reason=str(error))
        self.state = SessionState.CLOSED

    async def _close_transport(self) -> None:
        ws = self.websocket
        if (
            ws.client_state == WebSocketState.CONNECTED
            and ws.application_state == WebSocketState.CONNECTED
        ):
            try:
                await ws.close()
            except RuntimeError as e:
                # peer went away between the check and the close
                self.log.debug("chat.session.close_skipped", error=str(e))

    # ─── Active loop ─────────────────────────────────────

    async def _pump(self) -> str:
        """Race client frames against the outbound queue. Returns why it stopped."""
        inbound = asyncio.ensure_future(self.websocket.receive())
        outbound = asyncio.ensure_future(self.connection.receive())
        try:
            while True:
                done, _ = await asyncio.wait(
                    {inbound, outbound},
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if inbound in done:
                    message = self._transport_result(inbound)
                    if message["type"] == "websocket.disconnect":
                        return "client_closed"
                    await self._on_frame(message)
                    inbound = asyncio.ensure_future(self.websocket.receive())

                if outbound in done:
                    item = outbound.result()
                    if item is None:
                        return "channel_closed"
                    await self._write(item)
                    outbound = asyncio.ensure_future(self.connection.receive())
        finally:
            for task in (inbound, outbound):
                task.cancel()

    @staticmethod
    def _transport_result(task: asyncio.Future) -> dict:
        try:
            return task.result()
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            raise TransportError(str(e) or type(e).__name__) from e

    async def _on_frame(self, message: dict) -> None:
        text = message.get("text")
        if text is None:
            # Binary frames aren't part of the protocol.
            self.log.debug("chat.session.binary_ignored")
            return

        try:
            action = decode_client_message(text)
        except ProtocolError as e:
            await self._reply_error(str(e))
            return

        await self._handlers[type(action)](action)

    async def _write(self, message: BaseModel) -> None:
        try:
            await self.websocket.send_text(encode_server_message(message))
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            raise TransportError(str(e) or type(e).__name__) from e

    async def _reply_error(self, text: str) -> None:
        """Tell only this client. Never goes through the room."""
        await self._write(Error(message=text))

    # ─── Client actions ──────────────────────────────────

    async def _on_send_message(self, action: SendMessage) -> None:
        if not action.content.strip():
            await self._reply_error("Message content cannot be empty")
            return

        try:
            saved = await self.store.insert_message(
                self.contract_id, self.user_id, action.content
            )
        except PersistenceError as e:
            await self._reply_error(str(e))
            return

        # Everyone, sender included: the echo carries the server id + timestamp.
        await self.registry.broadcast(
            self.contract_id,
            NewMessage(
                id=saved.id,
                sender_id=saved.sender_id,
                content=saved.content,
                created_at=saved.created_at,
            ),
        )

    async def _on_mark_read(self, action: MarkRead) -> None:
        try:
            await self.store.mark_read(action.message_id, self.contract_id)
        except PersistenceError as e:
            await self._reply_error(str(e))
            return

        await self.registry.broadcast(
            self.contract_id, MessageRead(message_id=action.message_id)
        )

    async def _on_typing(self, action: Typing) -> None:
        await self.registry.broadcast(
            self.contract_id,
            UserTyping(user_id=self.user_id),
            exclude_user=self.user_id,
        )

    async def _on_stop_typing(self, action: StopTyping) -> None:
        await self.registry.broadcast(
            self.contract_id,
            UserStopTyping(user_id=self.user_id),
            exclude_user=self.user_id,
        )
