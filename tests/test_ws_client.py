"""Tests for ClawlineWsClient WebSocket wrapper."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from websockets.exceptions import ConnectionClosed, InvalidURI

from clawline_client.errors import (
    ClawlineConnectionError,
    ClawlineHandshakeError,
    ClawlineTimeout,
    MissingBaseURLError,
)
from clawline_client.ws import connect_websocket, is_websocket_url, make_websocket_url
from clawline_client.ws_client import (
    ClawlineWsClient,
    ClawlineWsMessage,
    ClawlineWsMessageType,
)


class TestMakeWebsocketUrl:
    """Tests for provider base URL normalization."""

    @pytest.mark.parametrize(
        ("base_url", "expected"),
        [
            ("http://provider.local:18792", "ws://provider.local:18792/ws"),
            ("http://provider.local:18792/", "ws://provider.local:18792/ws"),
            ("https://provider.example.com/api", "wss://provider.example.com/api/ws"),
            ("https://provider.example.com/api/", "wss://provider.example.com/api/ws"),
            ("wss://provider.example.com/ws", "wss://provider.example.com/ws"),
            ("ws://10.0.0.2:18792/news", "ws://10.0.0.2:18792/news/ws"),
        ],
    )
    def test_normalizes(self, base_url, expected):
        assert make_websocket_url(base_url) == expected

    @pytest.mark.parametrize("base_url", [None, "", "provider.local", "ftp://host/x"])
    def test_rejects_unusable(self, base_url):
        with pytest.raises(MissingBaseURLError):
            make_websocket_url(base_url)

    def test_is_websocket_url(self):
        assert is_websocket_url("ws://host/ws")
        assert is_websocket_url("WSS://host/ws")
        assert not is_websocket_url("https://host/ws")
        assert not is_websocket_url("wsx://host/ws")


class TestConnectWebsocket:
    """Tests for connect_websocket() options and error mapping."""

    @pytest.mark.asyncio
    async def test_lifts_frame_size_limit(self):
        mock_ws = AsyncMock()

        with patch(
            "clawline_client.ws.websockets.connect",
            new=AsyncMock(return_value=mock_ws),
        ) as mock_connect:
            result = await connect_websocket("wss://provider.local/ws")

        assert result is mock_ws
        mock_connect.assert_called_once_with(
            "wss://provider.local/ws",
            ping_interval=20,
            close_timeout=5,
            max_size=None,
        )

    @pytest.mark.asyncio
    async def test_maps_os_error(self):
        with patch(
            "clawline_client.ws.websockets.connect",
            new=AsyncMock(side_effect=OSError("Connection refused")),
        ):
            with pytest.raises(ClawlineConnectionError):
                await connect_websocket("ws://provider.local/ws")

    @pytest.mark.asyncio
    async def test_maps_invalid_uri(self):
        with patch(
            "clawline_client.ws.websockets.connect",
            new=AsyncMock(side_effect=InvalidURI("ws://", "missing host")),
        ):
            with pytest.raises(ClawlineHandshakeError):
                await connect_websocket("ws://")

    @pytest.mark.asyncio
    async def test_maps_timeout(self):
        async def hang(*args, **kwargs):
            await asyncio.sleep(1.0)

        with patch("clawline_client.ws.websockets.connect", new=hang):
            with pytest.raises(ClawlineTimeout, match="timed out"):
                await connect_websocket("ws://provider.local/ws", timeout=0.05)


class TestClawlineWsMessage:
    """Tests for ClawlineWsMessage dataclass."""

    def test_create_closed_message(self):
        msg = ClawlineWsMessage(type=ClawlineWsMessageType.CLOSED)
        assert msg.type == ClawlineWsMessageType.CLOSED
        assert msg.data is None

    def test_message_is_frozen(self):
        msg = ClawlineWsMessage(type=ClawlineWsMessageType.TEXT, data="test")
        with pytest.raises(AttributeError):
            msg.data = "modified"  # type: ignore[misc]


class TestClawlineWsClientConnect:
    """Tests for ClawlineWsClient.connect()."""

    @pytest.mark.asyncio
    async def test_connect_success(self):
        mock_ws = AsyncMock()

        with patch(
            "clawline_client.ws_client.connect_websocket",
            return_value=mock_ws,
        ) as mock_connect:
            client = ClawlineWsClient()
            await client.connect("ws://provider.local:18792/ws")

            mock_connect.assert_called_once_with(
                "ws://provider.local:18792/ws",
                ping_interval=20,
                timeout=15.0,
            )
            assert client._ws is mock_ws

    @pytest.mark.asyncio
    async def test_connect_propagates_errors(self):
        with patch(
            "clawline_client.ws_client.connect_websocket",
            side_effect=ClawlineConnectionError("Connection failed"),
        ):
            client = ClawlineWsClient()
            with pytest.raises(ClawlineConnectionError, match="Connection failed"):
                await client.connect("ws://provider.local:18792/ws")


class TestClawlineWsClientClose:
    """Tests for ClawlineWsClient.close()."""

    @pytest.mark.asyncio
    async def test_close_connected(self):
        mock_ws = AsyncMock()

        with patch(
            "clawline_client.ws_client.connect_websocket",
            return_value=mock_ws,
        ):
            client = ClawlineWsClient()
            await client.connect("ws://provider.local/ws")
            await client.close()

            mock_ws.close.assert_called_once_with(code=1000)

    @pytest.mark.asyncio
    async def test_close_not_connected(self):
        """Closing a never-opened client is a no-op."""
        client = ClawlineWsClient()
        await client.close()


class TestClawlineWsClientSendText:
    """Tests for ClawlineWsClient.send_text()."""

    @pytest.mark.asyncio
    async def test_send_text_success(self):
        mock_ws = AsyncMock()

        with patch(
            "clawline_client.ws_client.connect_websocket",
            return_value=mock_ws,
        ):
            client = ClawlineWsClient()
            await client.connect("ws://provider.local/ws")
            await client.send_text('{"type":"typing","active":true}')

            mock_ws.send.assert_called_once_with('{"type":"typing","active":true}')

    @pytest.mark.asyncio
    async def test_send_text_not_connected(self):
        client = ClawlineWsClient()
        with pytest.raises(ClawlineConnectionError, match="not connected"):
            await client.send_text("{}")

    @pytest.mark.asyncio
    async def test_send_text_on_closed_socket(self):
        mock_ws = AsyncMock()
        mock_ws.send.side_effect = ConnectionClosed(None, None)

        with patch(
            "clawline_client.ws_client.connect_websocket",
            return_value=mock_ws,
        ):
            client = ClawlineWsClient()
            await client.connect("ws://provider.local/ws")
            with pytest.raises(ClawlineConnectionError, match="closed"):
                await client.send_text("{}")


class AsyncIteratorMock:
    """Helper class to create a proper async iterator mock."""

    def __init__(self, items: list, *, raise_on_iter: Exception | None = None):
        self._items = items
        self._index = 0
        self._raise_on_iter = raise_on_iter
        self.close = AsyncMock()

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._raise_on_iter is not None:
            raise self._raise_on_iter
        if self._index >= len(self._items):
            raise StopAsyncIteration
        item = self._items[self._index]
        self._index += 1
        return item


class TestClawlineWsClientIteration:
    """Tests for ClawlineWsClient async iteration."""

    def test_iter_not_connected(self):
        client = ClawlineWsClient()
        with pytest.raises(ClawlineConnectionError, match="not connected"):
            client.__aiter__()

    @pytest.mark.asyncio
    async def test_iter_text_messages(self):
        mock_ws = AsyncIteratorMock(["message1", "message2"])

        with patch(
            "clawline_client.ws_client.connect_websocket",
            return_value=mock_ws,
        ):
            client = ClawlineWsClient()
            await client.connect("ws://provider.local/ws")

            messages = [msg async for msg in client]

        assert [m.type for m in messages] == [
            ClawlineWsMessageType.TEXT,
            ClawlineWsMessageType.TEXT,
            ClawlineWsMessageType.CLOSED,
        ]
        assert messages[0].data == "message1"
        assert messages[1].data == "message2"

    @pytest.mark.asyncio
    async def test_iter_connection_closed(self):
        mock_ws = AsyncIteratorMock([], raise_on_iter=ConnectionClosed(None, None))

        with patch(
            "clawline_client.ws_client.connect_websocket",
            return_value=mock_ws,
        ):
            client = ClawlineWsClient()
            await client.connect("ws://provider.local/ws")

            messages = [msg async for msg in client]

        assert len(messages) == 1
        assert messages[0].type == ClawlineWsMessageType.CLOSED

    @pytest.mark.asyncio
    async def test_iter_unexpected_error(self):
        mock_ws = AsyncIteratorMock([], raise_on_iter=RuntimeError("Unexpected"))

        with patch(
            "clawline_client.ws_client.connect_websocket",
            return_value=mock_ws,
        ):
            client = ClawlineWsClient()
            await client.connect("ws://provider.local/ws")

            messages = [msg async for msg in client]

        assert len(messages) == 1
        assert messages[0].type == ClawlineWsMessageType.ERROR

    @pytest.mark.asyncio
    async def test_iter_binary_frames(self):
        """UTF-8 binary frames become text; other binary frames are skipped."""
        mock_ws = AsyncIteratorMock([b'{"type":"ack"}', b"\xff\xfe", "text2"])

        with patch(
            "clawline_client.ws_client.connect_websocket",
            return_value=mock_ws,
        ):
            client = ClawlineWsClient()
            await client.connect("ws://provider.local/ws")

            messages = [msg async for msg in client]

        text_messages = [m for m in messages if m.type == ClawlineWsMessageType.TEXT]
        assert [m.data for m in text_messages] == ['{"type":"ack"}', "text2"]


class TestClawlineWsClientNormalization:
    """Tests for ClawlineWsClient message normalization."""

    def test_normalize_string_message(self):
        result = ClawlineWsClient._normalize_message("hello world")
        assert result is not None
        assert result.type == ClawlineWsMessageType.TEXT
        assert result.data == "hello world"

    def test_normalize_invalid_utf8_returns_none(self):
        assert ClawlineWsClient._normalize_message(b"\xff") is None

    def test_normalize_unknown_object_returns_none(self):
        assert ClawlineWsClient._normalize_message(object()) is None
