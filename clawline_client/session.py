"""Authenticated chat session with a Clawline provider.

This module owns one provider socket at a time. It handles:
- The auth handshake (``auth`` / ``auth_result``)
- Inbound dispatch of message, ack, typing and error frames
- Outbound messages with ack tracking and content-identical retransmission
- Connection state reporting and forced session takeover

All state is mutated from the event loop that runs the session; retry tasks
and the listener are serialized through it, so nothing here takes a lock.
Reconnection policy belongs to the caller: a lost socket is reported as
``DISCONNECTED`` and ``connect()`` may be called again on the same instance.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from .errors import (
    AuthFailedError,
    ClawlineClientError,
    InvalidMessageIdError,
    NotConnectedError,
    ServerError,
    SessionError,
    SessionReplacedError,
    TokenRevokedError,
)
from .models import (
    AuthResult,
    ChatMessage,
    ConnectionState,
    MessageError,
    TypingEvent,
    WireAttachment,
)
from .protocol import (
    CLIENT_MESSAGE_ID_PREFIX,
    DEFAULT_AUTH_FAILED_REASON,
    ERR_AUTH_FAILED,
    ERR_SESSION_REPLACED,
    ERR_TOKEN_REVOKED,
    MSG_ACK,
    MSG_AUTH_RESULT,
    MSG_ERROR,
    MSG_MESSAGE,
    MSG_TYPING,
    build_auth,
    build_client_message,
    build_typing,
    decode_frame,
    encode_frame,
    parse_ack,
    parse_auth_result,
    parse_error,
    parse_server_message,
    parse_typing,
)
from .ws import make_websocket_url
from .ws_client import NORMAL_CLOSURE, ClawlineWsClient, ClawlineWsMessageType

_LOGGER = logging.getLogger(__name__)

DEFAULT_RETRY_INTERVAL = 5.0
CLOSE_TIMEOUT = 2.0

ConnectionStateCallback = Callable[[ConnectionState, SessionError | None], None]


@dataclass(slots=True)
class _PendingOutboundMessage:
    """Outbound message awaiting its ack."""

    message_id: str
    wire_payload: str
    retry_task: asyncio.Task[None] | None = None


class ClawlineChatSession:
    """Chat session manager for a Clawline provider.

    Usage:
        session = ClawlineChatSession(device_id, lambda: "https://host:18792")
        session.on_message(handle_message)
        session.on_connection_state_changed(handle_state)
        await session.connect(token, last_message_id="s_...")
        await session.send("c_" + str(uuid4()), "hello")
        await session.disconnect()
    """

    def __init__(
        self,
        device_id: str,
        base_url_provider: Callable[[], str | None],
        *,
        ws_client_factory: Callable[[], ClawlineWsClient] = ClawlineWsClient,
        retry_interval: float = DEFAULT_RETRY_INTERVAL,
    ) -> None:
        """Initialize session.

        Args:
            device_id: Device identifier sent with auth
            base_url_provider: Returns the provider base URL (http, https, ws or wss)
            ws_client_factory: Creates the transport socket for each connect
            retry_interval: Seconds between retransmissions of an unacked message
        """
        self.device_id = device_id
        self._base_url_provider = base_url_provider
        self._ws_client_factory = ws_client_factory
        self._retry_interval = retry_interval

        # Connection state
        self._ws: ClawlineWsClient | None = None
        self._listen_task: asyncio.Task[None] | None = None
        self._connection_state = ConnectionState.DISCONNECTED
        self._connection_error: SessionError | None = None

        # Handshake
        self._auth_future: asyncio.Future[AuthResult] | None = None
        self._auth_result: AuthResult | None = None
        self._authenticated = False

        # Outbound messages awaiting ack
        self._pending: dict[str, _PendingOutboundMessage] = {}

        # Callbacks
        self._message_callback: Callable[[ChatMessage], None] | None = None
        self._connection_state_callback: ConnectionStateCallback | None = None
        self._service_event_callback: Callable[[MessageError], None] | None = None
        self._typing_callback: Callable[[TypingEvent], None] | None = None

    # -------------------------------------------------------------------------
    # Public API: Connection Management
    # -------------------------------------------------------------------------

    async def connect(self, token: str, last_message_id: str | None = None) -> AuthResult:
        """Open a socket and authenticate.

        Any previous session is torn down first. There is no handshake
        timeout; a socket that never answers is bounded by transport
        keepalive. Cancelling the call (for example through
        ``asyncio.wait_for``) tears the session down.

        Args:
            token: Device token obtained from pairing
            last_message_id: Newest server message id already seen, for replay

        Returns:
            The provider's auth_result, including replay bookkeeping

        Raises:
            MissingBaseURLError: No usable provider URL
            AuthFailedError, TokenRevokedError: Provider rejected the token
            NotConnectedError: Socket closed before the handshake finished
            ClawlineConnectionError, ClawlineHandshakeError, ClawlineTimeout:
                Socket could not be opened
        """
        await self.disconnect()

        ws_url = make_websocket_url(self._base_url_provider())
        self._set_state(ConnectionState.CONNECTING)
        _LOGGER.info("[%s] Connecting to %s", self.device_id, ws_url)

        try:
            ws_client = self._ws_client_factory()
            await ws_client.connect(ws_url)
        except ClawlineClientError as err:
            _LOGGER.warning("[%s] Connection failed: %s", self.device_id, err)
            self._set_state(ConnectionState.DISCONNECTED)
            raise
        except BaseException:
            self._set_state(ConnectionState.DISCONNECTED)
            raise

        self._ws = ws_client
        auth_future: asyncio.Future[AuthResult] = (
            asyncio.get_running_loop().create_future()
        )
        self._auth_future = auth_future
        self._listen_task = asyncio.create_task(self._listen(ws_client))

        frame = build_auth(
            token=token,
            device_id=self.device_id,
            last_message_id=last_message_id,
        )
        try:
            try:
                await ws_client.send_text(encode_frame(frame))
                _LOGGER.debug("[%s] Auth sent", self.device_id)
            except ClawlineClientError as err:
                _LOGGER.warning("[%s] Failed to send auth: %s", self.device_id, err)
                await self._teardown(NotConnectedError(str(err)))

            return await auth_future
        except BaseException:
            # No-op once the handshake has an outcome
            auth_future.cancel()
            if self._ws is ws_client:
                await self.disconnect()
            raise

    async def disconnect(self) -> None:
        """Close the socket and drop all session state.

        Safe to call repeatedly and from inside a callback.
        """
        await self._teardown(NotConnectedError())

    @property
    def is_connected(self) -> bool:
        """Check if session has a socket and finished the handshake."""
        return self._ws is not None and self._authenticated

    @property
    def connection_state(self) -> ConnectionState:
        """Get current connection state."""
        return self._connection_state

    @property
    def connection_error(self) -> SessionError | None:
        """Error attached to the current FAILED state, if any."""
        return self._connection_error

    @property
    def auth_result(self) -> AuthResult | None:
        """Result of the last successful handshake."""
        return self._auth_result

    @property
    def pending_message_ids(self) -> frozenset[str]:
        """Ids of outbound messages still awaiting ack."""
        return frozenset(self._pending)

    # -------------------------------------------------------------------------
    # Public API: Callbacks
    # -------------------------------------------------------------------------

    def on_message(self, callback: Callable[[ChatMessage], None]) -> None:
        """Register callback for inbound chat messages, in arrival order."""
        self._message_callback = callback

    def on_connection_state_changed(self, callback: ConnectionStateCallback) -> None:
        """Register callback for connection state changes.

        Callback receives the new state and, for FAILED, the SessionError.
        """
        self._connection_state_callback = callback

    def on_service_event(self, callback: Callable[[MessageError], None]) -> None:
        """Register callback for per-message failures."""
        self._service_event_callback = callback

    def on_typing(self, callback: Callable[[TypingEvent], None]) -> None:
        """Register callback for provider typing indicators."""
        self._typing_callback = callback

    # -------------------------------------------------------------------------
    # Public API: Outbound
    # -------------------------------------------------------------------------

    async def send(
        self,
        message_id: str,
        content: str,
        attachments: Iterable[WireAttachment] = (),
    ) -> None:
        """Send a chat message and keep retransmitting it until acked.

        The frame is serialized once; every retry sends the same text so the
        provider can deduplicate by content hash.

        Raises:
            InvalidMessageIdError: message_id lacks the client prefix
            NotConnectedError: No socket
            ClawlineConnectionError: First transmission failed
        """
        if not message_id.startswith(CLIENT_MESSAGE_ID_PREFIX):
            raise InvalidMessageIdError(message_id)

        ws_client = self._ws
        if ws_client is None:
            raise NotConnectedError()

        wire_payload = encode_frame(
            build_client_message(
                message_id=message_id,
                content=content,
                attachments=attachments,
            )
        )

        self._discard_pending(message_id)
        self._pending[message_id] = _PendingOutboundMessage(
            message_id=message_id,
            wire_payload=wire_payload,
            retry_task=asyncio.create_task(self._retry_loop(message_id)),
        )

        await ws_client.send_text(wire_payload)
        _LOGGER.debug("[%s] Message sent: %s", self.device_id, message_id)

    async def send_typing(self, active: bool) -> None:
        """Send a typing indicator."""
        if self._ws is None:
            raise NotConnectedError()
        await self._ws.send_text(encode_frame(build_typing(active=active)))

    # -------------------------------------------------------------------------
    # Internal: Connection State Machine
    # -------------------------------------------------------------------------

    def _set_state(
        self, state: ConnectionState, error: SessionError | None = None
    ) -> None:
        """Update connection state and notify callback."""
        if self._connection_state is state and self._connection_error is error:
            return
        _LOGGER.debug(
            "[%s] State: %s → %s",
            self.device_id,
            self._connection_state.value,
            state.value,
        )
        self._connection_state = state
        self._connection_error = error
        self._notify(self._connection_state_callback, state, error)

    async def _teardown(self, auth_error: SessionError) -> None:
        """Stop the listener, close the socket and publish DISCONNECTED.

        An outstanding handshake is failed with auth_error only after the
        socket is closed and the state published, so a caller woken by it
        observes the finished teardown.
        """
        auth_future, self._auth_future = self._auth_future, None
        listen_task, self._listen_task = self._listen_task, None
        ws_client, self._ws = self._ws, None
        self._authenticated = False
        self._cancel_pending()

        if listen_task is not None and listen_task is not asyncio.current_task():
            listen_task.cancel()
            try:
                await listen_task
            except asyncio.CancelledError:
                pass

        if ws_client is not None:
            _LOGGER.info("[%s] Closing session", self.device_id)
            await self._close_ws(ws_client)

        self._set_state(ConnectionState.DISCONNECTED)

        if auth_future is not None and not auth_future.done():
            auth_future.set_exception(auth_error)

    async def _fail(self, error: SessionError) -> None:
        """Report a fatal session error and tear the session down."""
        self._set_state(ConnectionState.FAILED, error)
        await self._teardown(error)

    async def _close_ws(self, ws_client: ClawlineWsClient) -> None:
        try:
            await asyncio.wait_for(
                ws_client.close(NORMAL_CLOSURE), timeout=CLOSE_TIMEOUT
            )
        except TimeoutError:
            _LOGGER.warning("[%s] WebSocket close timed out", self.device_id)

    # -------------------------------------------------------------------------
    # Internal: Message Listener
    # -------------------------------------------------------------------------

    async def _listen(self, ws_client: ClawlineWsClient) -> None:
        """Dispatch frames from one socket in arrival order."""
        message_count = 0

        try:
            async for msg in ws_client:
                if msg.type is ClawlineWsMessageType.TEXT and msg.data is not None:
                    message_count += 1
                    await self._handle_text(msg.data)
                    if self._ws is not ws_client:
                        # Torn down by a handler
                        return
                elif msg.type is ClawlineWsMessageType.CLOSED:
                    _LOGGER.info("[%s] WebSocket closed by provider", self.device_id)
                    break
                elif msg.type is ClawlineWsMessageType.ERROR:
                    _LOGGER.error("[%s] WebSocket error", self.device_id)
                    break
        except asyncio.CancelledError:
            _LOGGER.debug(
                "[%s] Listener cancelled (%d messages)", self.device_id, message_count
            )
            raise
        except Exception as err:
            _LOGGER.exception("[%s] Unexpected error: %s", self.device_id, err)

        if self._ws is ws_client:
            await self.disconnect()

    async def _handle_text(self, text: str) -> None:
        try:
            data = decode_frame(text)
        except ValueError as err:
            _LOGGER.warning("[%s] Invalid frame: %s", self.device_id, err)
            return

        msg_type = data["type"]
        try:
            if msg_type == MSG_AUTH_RESULT:
                await self._handle_auth_result(data)
            elif msg_type == MSG_MESSAGE:
                self._handle_message(data)
            elif msg_type == MSG_ACK:
                self._handle_ack(data)
            elif msg_type == MSG_TYPING:
                self._handle_typing(data)
            elif msg_type == MSG_ERROR:
                await self._handle_error(data)
            else:
                _LOGGER.debug(
                    "[%s] Unknown message type: %s", self.device_id, msg_type
                )
        except (ValueError, KeyError) as err:
            _LOGGER.warning(
                "[%s] Invalid %s frame: %s", self.device_id, msg_type, err
            )

    # -------------------------------------------------------------------------
    # Internal: Protocol Handlers
    # -------------------------------------------------------------------------

    async def _handle_auth_result(self, data: dict[str, Any]) -> None:
        result = parse_auth_result(data)
        if not result.success:
            reason = result.reason or DEFAULT_AUTH_FAILED_REASON
            _LOGGER.error("[%s] Authentication rejected: %s", self.device_id, reason)
            await self._fail(AuthFailedError(reason))
            return

        self._auth_result = result
        self._authenticated = True
        self._set_state(ConnectionState.CONNECTED)
        auth_future, self._auth_future = self._auth_future, None
        if auth_future is not None and not auth_future.done():
            auth_future.set_result(result)
        _LOGGER.info(
            "[%s] Authenticated (session %s, replaying %d%s)",
            self.device_id,
            result.session_id,
            result.replay_count,
            ", truncated" if result.replay_truncated else "",
        )

    def _handle_message(self, data: dict[str, Any]) -> None:
        message = parse_server_message(data)
        self._notify(self._message_callback, message)

    def _handle_ack(self, data: dict[str, Any]) -> None:
        message_id = parse_ack(data)
        if self._discard_pending(message_id):
            _LOGGER.debug("[%s] Ack %s", self.device_id, message_id)
        else:
            _LOGGER.debug("[%s] Ack for untracked %s", self.device_id, message_id)

    def _handle_typing(self, data: dict[str, Any]) -> None:
        self._notify(self._typing_callback, parse_typing(data))

    async def _handle_error(self, data: dict[str, Any]) -> None:
        code, message, message_id = parse_error(data)

        if message_id is not None:
            self._discard_pending(message_id)
            _LOGGER.warning(
                "[%s] Message %s failed: %s", self.device_id, message_id, code
            )
            self._notify(
                self._service_event_callback,
                MessageError(message_id=message_id, code=code, message=message),
            )
            return

        reason = message or code
        if code == ERR_AUTH_FAILED:
            await self._fail(AuthFailedError(reason))
        elif code == ERR_TOKEN_REVOKED:
            await self._fail(TokenRevokedError(reason))
        elif code == ERR_SESSION_REPLACED:
            _LOGGER.warning("[%s] Session replaced by another device", self.device_id)
            await self._fail(SessionReplacedError())
        else:
            _LOGGER.warning(
                "[%s] Server error %s: %s", self.device_id, code, message
            )
            self._set_state(ConnectionState.FAILED, ServerError(code, message))

    # -------------------------------------------------------------------------
    # Internal: Retry Scheduler
    # -------------------------------------------------------------------------

    async def _retry_loop(self, message_id: str) -> None:
        """Retransmit the stored frame until the message leaves the pending map."""
        try:
            while True:
                await asyncio.sleep(self._retry_interval)
                ws_client = self._ws
                pending = self._pending.get(message_id)
                if ws_client is None or pending is None:
                    return
                _LOGGER.debug("[%s] Retrying %s", self.device_id, message_id)
                try:
                    await ws_client.send_text(pending.wire_payload)
                except ClawlineClientError as err:
                    _LOGGER.warning(
                        "[%s] Retry of %s failed: %s", self.device_id, message_id, err
                    )
        except asyncio.CancelledError:
            _LOGGER.debug("[%s] Retry cancelled: %s", self.device_id, message_id)

    def _discard_pending(self, message_id: str) -> bool:
        pending = self._pending.pop(message_id, None)
        if pending is None:
            return False
        if pending.retry_task is not None:
            pending.retry_task.cancel()
        return True

    def _cancel_pending(self) -> None:
        for pending in self._pending.values():
            if pending.retry_task is not None:
                pending.retry_task.cancel()
        self._pending.clear()

    # -------------------------------------------------------------------------
    # Internal: Callbacks
    # -------------------------------------------------------------------------

    def _notify(self, callback: Callable[..., None] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as err:
            _LOGGER.exception("[%s] Callback error: %s", self.device_id, err)
