"""Pytest configuration and fixtures for clawline_client tests."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from clawline_client.errors import ClawlineConnectionError
from clawline_client.ws_client import ClawlineWsMessage, ClawlineWsMessageType


class FakeWsClient:
    """In-memory stand-in for ClawlineWsClient.

    Frames queued with ``feed`` are yielded in order; ``remote_close`` ends
    iteration the way a provider-side close does.
    """

    def __init__(
        self,
        *,
        connect_error: Exception | None = None,
        connect_delay: float = 0.0,
        send_error: Exception | None = None,
        send_delay: float = 0.0,
    ) -> None:
        self.url: str | None = None
        self.sent: list[str] = []
        self.close_codes: list[int] = []
        self.closed = False
        self.connect_error = connect_error
        self.connect_delay = connect_delay
        self.send_error = send_error
        self.send_delay = send_delay
        self.connect_kwargs: dict[str, Any] = {}
        self.responder: Callable[[dict[str, Any]], None] | None = None
        self._inbound: asyncio.Queue[ClawlineWsMessage] = asyncio.Queue()

    async def connect(self, url: str, **kwargs: Any) -> None:
        self.connect_kwargs = kwargs
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.connect_error is not None:
            raise self.connect_error
        self.url = url

    async def send_text(self, text: str) -> None:
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if self.closed:
            raise ClawlineConnectionError("WebSocket is closed")
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(text)
        if self.responder is not None:
            self.responder(json.loads(text))

    async def close(self, code: int = 1000) -> None:
        self.close_codes.append(code)
        if not self.closed:
            self.closed = True
            self._inbound.put_nowait(ClawlineWsMessage(ClawlineWsMessageType.CLOSED))

    def feed(self, payload: dict[str, Any] | str) -> None:
        text = payload if isinstance(payload, str) else json.dumps(payload)
        self._inbound.put_nowait(ClawlineWsMessage(ClawlineWsMessageType.TEXT, text))

    def remote_close(self) -> None:
        self._inbound.put_nowait(ClawlineWsMessage(ClawlineWsMessageType.CLOSED))

    @property
    def sent_frames(self) -> list[dict[str, Any]]:
        return [json.loads(text) for text in self.sent]

    def frames_of_type(self, msg_type: str) -> list[str]:
        return [text for text in self.sent if json.loads(text)["type"] == msg_type]

    def __aiter__(self):
        return self._iter_messages()

    async def _iter_messages(self):
        while True:
            msg = await self._inbound.get()
            yield msg
            if msg.type is not ClawlineWsMessageType.TEXT:
                return


async def wait_until(
    predicate: Callable[[], bool], *, timeout: float = 1.0
) -> None:
    """Poll predicate on the event loop until it holds."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


async def run_soon(awaitable: Awaitable[Any]) -> asyncio.Task[Any]:
    """Start awaitable as a task and let it reach its first suspension."""
    task = asyncio.ensure_future(awaitable)
    await asyncio.sleep(0)
    return task


@pytest.fixture
def fake_ws() -> FakeWsClient:
    """Create a fake provider socket."""
    return FakeWsClient()


@pytest.fixture
def mock_session() -> MagicMock:
    """Create a mock aiohttp ClientSession."""
    import aiohttp

    return MagicMock(spec=aiohttp.ClientSession)


def create_mock_response(
    status: int = 200,
    json_data: dict[str, Any] | None = None,
    read_data: bytes | None = None,
) -> AsyncMock:
    """Create a configured mock response.

    Args:
        status: HTTP status code
        json_data: Data to return from json() call
        read_data: Data to return from read() call

    Returns:
        Configured AsyncMock response
    """
    response = AsyncMock()
    response.status = status

    if json_data is not None:
        response.json.return_value = json_data
    if read_data is not None:
        response.read.return_value = read_data

    response.__aenter__.return_value = response
    response.__aexit__.return_value = None

    return response
