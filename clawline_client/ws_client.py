"""WebSocket client wrapper for the Clawline provider."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from websockets.asyncio.client import ClientConnection
from websockets.exceptions import ConnectionClosed

from .errors import ClawlineConnectionError
from .ws import connect_websocket

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

NORMAL_CLOSURE = 1000


class ClawlineWsMessageType(Enum):
    """Normalized WebSocket message types."""

    TEXT = "text"
    CLOSED = "closed"
    ERROR = "error"


@dataclass(frozen=True)
class ClawlineWsMessage:
    """Normalized WebSocket message payload."""

    type: ClawlineWsMessageType
    data: str | None = None


class ClawlineWsClient:
    """Wrapper around websockets library for the Clawline provider."""

    def __init__(self) -> None:
        self._ws: ClientConnection | None = None

    async def connect(
        self,
        url: str,
        *,
        ping_interval: int = 20,
        timeout: float = 15.0,
    ) -> None:
        """Connect to the provider websocket."""
        self._ws = await connect_websocket(
            url,
            ping_interval=ping_interval,
            timeout=timeout,
        )

    async def close(self, code: int = NORMAL_CLOSURE) -> None:
        """Close the websocket connection."""
        if self._ws is not None:
            await self._ws.close(code=code)

    async def send_text(self, text: str) -> None:
        """Send a text frame to the websocket."""
        if self._ws is None:
            raise ClawlineConnectionError("WebSocket is not connected")
        try:
            await self._ws.send(text)
        except ConnectionClosed as err:
            raise ClawlineConnectionError("WebSocket is closed") from err

    def __aiter__(self) -> AsyncIterator[ClawlineWsMessage]:
        if self._ws is None:
            raise ClawlineConnectionError("WebSocket is not connected")
        return self._iter_messages()

    async def _iter_messages(self) -> AsyncIterator[ClawlineWsMessage]:
        if self._ws is None:
            raise ClawlineConnectionError("WebSocket is not connected")

        try:
            async for msg in self._ws:
                normalized = self._normalize_message(msg)
                if normalized is None:
                    continue
                yield normalized
        except ConnectionClosed:
            yield ClawlineWsMessage(type=ClawlineWsMessageType.CLOSED)
        except Exception:
            yield ClawlineWsMessage(type=ClawlineWsMessageType.ERROR)
        else:
            # Normal iteration completion means the peer closed gracefully.
            yield ClawlineWsMessage(type=ClawlineWsMessageType.CLOSED)

    @staticmethod
    def _normalize_message(msg: Any) -> ClawlineWsMessage | None:
        """Normalize raw frames into ClawlineWsMessage.

        Binary frames are accepted when they hold UTF-8 text.
        """
        if isinstance(msg, str):
            return ClawlineWsMessage(ClawlineWsMessageType.TEXT, msg)
        if isinstance(msg, (bytes, bytearray, memoryview)):
            try:
                return ClawlineWsMessage(
                    ClawlineWsMessageType.TEXT, bytes(msg).decode("utf-8")
                )
            except UnicodeDecodeError:
                return None
        return None
