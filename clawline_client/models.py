"""Data model shared by the Clawline pairing and chat clients."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TypeAlias


class ConnectionState(Enum):
    """Chat session connection states."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


class MessageRole(Enum):
    """Author role of a chat message."""

    USER = "user"
    ASSISTANT = "assistant"


class ChannelType(Enum):
    """Conversation channel a message belongs to."""

    PERSONAL = "personal"
    ADMIN = "admin"


@dataclass(frozen=True)
class PairingSuccess:
    """Pairing approved; credentials for the chat session."""

    token: str
    user_id: str


@dataclass(frozen=True)
class PairingDenied:
    """Pairing rejected by the provider or administrator."""

    reason: str


PairingResult: TypeAlias = PairingSuccess | PairingDenied


@dataclass(frozen=True)
class ImageAttachment:
    """Inline image carried base64-encoded inside a message frame."""

    mime_type: str
    data: bytes


@dataclass(frozen=True)
class AssetAttachment:
    """Reference to an asset previously uploaded over HTTP."""

    asset_id: str


WireAttachment: TypeAlias = ImageAttachment | AssetAttachment


@dataclass(frozen=True)
class AuthResult:
    """Outcome of the auth handshake, including replay bookkeeping."""

    success: bool
    user_id: str | None = None
    session_id: str | None = None
    replay_count: int = 0
    replay_truncated: bool = False
    history_reset: bool = False
    reason: str | None = None


@dataclass(frozen=True)
class ChatMessage:
    """Chat event relayed from the provider."""

    id: str
    role: MessageRole
    content: str
    timestamp: datetime
    streaming: bool
    attachments: tuple[WireAttachment, ...] = field(default_factory=tuple)
    device_id: str | None = None
    channel_type: ChannelType = ChannelType.PERSONAL


@dataclass(frozen=True)
class MessageError:
    """Per-message failure reported by the provider.

    Distinct from connection-level failures: the session stays open.
    """

    message_id: str
    code: str
    message: str | None = None


@dataclass(frozen=True)
class TypingEvent:
    """Typing indicator pushed by the provider."""

    active: bool
    role: MessageRole | None = None
