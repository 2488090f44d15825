"""Client for the Clawline provider protocol."""

__version__ = "0.1.0"

from .errors import (
    AuthFailedError,
    ClawlineClientError,
    ClawlineConnectionError,
    ClawlineHandshakeError,
    ClawlineResponseError,
    ClawlineTimeout,
    InvalidAssetIdError,
    InvalidMessageIdError,
    MissingAuthError,
    MissingBaseURLError,
    NotConnectedError,
    PairingError,
    PairingInvalidResponse,
    PairingSocketClosed,
    PairingTimeout,
    ServerError,
    SessionError,
    SessionReplacedError,
    TokenRevokedError,
    UnsupportedURLError,
)
from .http import ClawlineHttpClient
from .models import (
    AssetAttachment,
    AuthResult,
    ChannelType,
    ChatMessage,
    ConnectionState,
    ImageAttachment,
    MessageError,
    MessageRole,
    PairingDenied,
    PairingResult,
    PairingSuccess,
    TypingEvent,
    WireAttachment,
)
from .pairing import ClawlinePairingClient
from .protocol import PROTOCOL_VERSION
from .session import ClawlineChatSession
from .ws import connect_websocket, make_websocket_url
from .ws_client import ClawlineWsClient, ClawlineWsMessage, ClawlineWsMessageType

__all__ = [
    "PROTOCOL_VERSION",
    "AssetAttachment",
    "AuthFailedError",
    "AuthResult",
    "ChannelType",
    "ChatMessage",
    "ClawlineChatSession",
    "ClawlineClientError",
    "ClawlineConnectionError",
    "ClawlineHandshakeError",
    "ClawlineHttpClient",
    "ClawlinePairingClient",
    "ClawlineResponseError",
    "ClawlineTimeout",
    "ClawlineWsClient",
    "ClawlineWsMessage",
    "ClawlineWsMessageType",
    "ConnectionState",
    "ImageAttachment",
    "InvalidAssetIdError",
    "InvalidMessageIdError",
    "MessageError",
    "MessageRole",
    "MissingAuthError",
    "MissingBaseURLError",
    "NotConnectedError",
    "PairingDenied",
    "PairingError",
    "PairingInvalidResponse",
    "PairingResult",
    "PairingSocketClosed",
    "PairingSuccess",
    "PairingTimeout",
    "ServerError",
    "SessionError",
    "SessionReplacedError",
    "TokenRevokedError",
    "TypingEvent",
    "UnsupportedURLError",
    "WireAttachment",
    "__version__",
    "connect_websocket",
    "make_websocket_url",
]
