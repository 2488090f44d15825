"""WebSocket helpers for the Clawline provider transport."""

from __future__ import annotations

import asyncio
from urllib.parse import urlsplit, urlunsplit

import websockets
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import (
    InvalidHandshake,
    InvalidURI,
    WebSocketException,
)

from .errors import (
    ClawlineConnectionError,
    ClawlineHandshakeError,
    ClawlineTimeout,
    MissingBaseURLError,
)

WEBSOCKET_PATH = "/ws"
WEBSOCKET_SCHEMES = frozenset({"ws", "wss"})

_SCHEME_MAP = {"http": "ws", "ws": "ws", "https": "wss", "wss": "wss"}


def make_websocket_url(base_url: str | None) -> str:
    """Turn a provider base URL into its WebSocket endpoint URL.

    ``http`` maps to ``ws`` and ``https`` to ``wss``; the path is made to end
    in ``/ws``.

    Raises:
        MissingBaseURLError: If no base URL is given or it cannot be used.
    """
    if not base_url:
        raise MissingBaseURLError()

    parts = urlsplit(base_url)
    scheme = _SCHEME_MAP.get(parts.scheme.lower())
    if scheme is None or not parts.netloc:
        raise MissingBaseURLError(f"Unusable provider URL: {base_url}")

    path = parts.path.rstrip("/")
    if not path.endswith(WEBSOCKET_PATH):
        path = f"{path}{WEBSOCKET_PATH}"

    return urlunsplit((scheme, parts.netloc, path, parts.query, ""))


def is_websocket_url(url: str) -> bool:
    """Return True when the URL uses a ws/wss scheme."""
    return urlsplit(url).scheme.lower() in WEBSOCKET_SCHEMES


async def connect_websocket(
    url: str,
    *,
    ping_interval: int | None = 20,
    timeout: float = 15.0,
) -> ClientConnection:
    """Connect to a provider WebSocket endpoint.

    The frame size limit is lifted because message frames can carry inline
    base64 images well past the library default of 1 MiB. The provider
    enforces its own payload limit and answers with ``payload_too_large``.

    Args:
        url: Full ws:// or wss:// URL, usually from ``make_websocket_url``
        ping_interval: Interval for keepalive ping frames
        timeout: Bound on the opening handshake (seconds)
    """
    try:
        return await asyncio.wait_for(
            websockets.connect(
                url,
                ping_interval=ping_interval,
                close_timeout=5,
                max_size=None,
            ),
            timeout=timeout,
        )
    except TimeoutError as err:
        raise ClawlineTimeout("WebSocket connection timed out") from err
    except (InvalidHandshake, InvalidURI) as err:
        raise ClawlineHandshakeError("WebSocket handshake failed") from err
    except (OSError, WebSocketException) as err:
        raise ClawlineConnectionError("WebSocket connection failed") from err
