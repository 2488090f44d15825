"""Protocol helpers for Clawline provider frames.

Every frame is a JSON object with a ``type`` discriminator. Decoding is two
steps: ``decode_frame`` reads the generic envelope, then one of the
``parse_*`` helpers validates the payload for that type.
"""

from __future__ import annotations

import base64
import binascii
import json
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from .models import (
    AssetAttachment,
    AuthResult,
    ChannelType,
    ChatMessage,
    ImageAttachment,
    MessageRole,
    PairingDenied,
    PairingResult,
    PairingSuccess,
    TypingEvent,
    WireAttachment,
)

PROTOCOL_VERSION = 1

CLIENT_MESSAGE_ID_PREFIX = "c_"
SERVER_MESSAGE_ID_PREFIX = "s_"
MAX_CLAIMED_NAME_LENGTH = 64

PAIR_PENDING_REASON = "pair_pending"
DEFAULT_DENIED_REASON = "Pairing request denied"
DEFAULT_AUTH_FAILED_REASON = "Unknown error"

# Server-to-client frame types
MSG_PAIR_RESULT = "pair_result"
MSG_AUTH_RESULT = "auth_result"
MSG_MESSAGE = "message"
MSG_ACK = "ack"
MSG_TYPING = "typing"
MSG_ERROR = "error"

# Error codes
ERR_AUTH_FAILED = "auth_failed"
ERR_TOKEN_REVOKED = "token_revoked"
ERR_INVALID_MESSAGE = "invalid_message"
ERR_PAYLOAD_TOO_LARGE = "payload_too_large"
ERR_ASSET_NOT_FOUND = "asset_not_found"
ERR_RATE_LIMITED = "rate_limited"
ERR_SESSION_REPLACED = "session_replaced"
ERR_UPLOAD_FAILED_RETRYABLE = "upload_failed_retryable"
ERR_SERVER_ERROR = "server_error"


# -----------------------------------------------------------------------------
# Encoding
# -----------------------------------------------------------------------------


def encode_frame(payload: dict[str, Any]) -> str:
    """Serialize a frame as compact JSON text."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def truncate_utf16(text: str, limit: int) -> str:
    """Return the longest prefix of ``text`` within ``limit`` UTF-16 code units.

    Characters outside the BMP count as two units and are never split.
    """
    used = 0
    for index, char in enumerate(text):
        width = 2 if ord(char) > 0xFFFF else 1
        if used + width > limit:
            return text[:index]
        used += width
    return text


def build_pair_request(
    *,
    device_id: str,
    claimed_name: str,
    platform: str,
    model: str,
    os_version: str | None = None,
    app_version: str | None = None,
) -> dict[str, Any]:
    """Construct a pair_request frame.

    Args:
        device_id: Stable device UUID.
        claimed_name: Human-readable name shown to the approving admin.
            Truncated to 64 UTF-16 code units.
        platform: Platform label for deviceInfo.
        model: Device model for deviceInfo.
        os_version: Optional OS version for deviceInfo.
        app_version: Optional client version for deviceInfo.

    Returns:
        Frame dict ready for ``encode_frame``.
    """
    device_info: dict[str, Any] = {"platform": platform, "model": model}
    if os_version is not None:
        device_info["osVersion"] = os_version
    if app_version is not None:
        device_info["appVersion"] = app_version

    return {
        "type": "pair_request",
        "protocolVersion": PROTOCOL_VERSION,
        "deviceId": device_id,
        "claimedName": truncate_utf16(claimed_name, MAX_CLAIMED_NAME_LENGTH),
        "deviceInfo": device_info,
    }


def build_auth(
    *,
    token: str,
    device_id: str,
    last_message_id: str | None = None,
) -> dict[str, Any]:
    """Construct an auth frame; lastMessageId is omitted when unknown."""
    frame: dict[str, Any] = {
        "type": "auth",
        "protocolVersion": PROTOCOL_VERSION,
        "token": token,
        "deviceId": device_id,
    }
    if last_message_id is not None:
        frame["lastMessageId"] = last_message_id
    return frame


def build_client_message(
    *,
    message_id: str,
    content: str,
    attachments: Iterable[WireAttachment] = (),
) -> dict[str, Any]:
    """Construct an outbound message frame."""
    return {
        "type": "message",
        "id": message_id,
        "content": content,
        "attachments": [encode_wire_attachment(item) for item in attachments],
    }


def build_typing(*, active: bool) -> dict[str, Any]:
    """Construct a client typing indicator frame."""
    return {"type": "typing", "active": active}


def encode_wire_attachment(attachment: WireAttachment) -> dict[str, Any]:
    """Encode an attachment into its wire dict."""
    if isinstance(attachment, ImageAttachment):
        return {
            "type": "image",
            "mimeType": attachment.mime_type,
            "data": base64.b64encode(attachment.data).decode("ascii"),
        }
    if isinstance(attachment, AssetAttachment):
        return {"type": "asset", "assetId": attachment.asset_id}
    raise ValueError(f"Unsupported attachment: {type(attachment).__name__}")


# -----------------------------------------------------------------------------
# Decoding
# -----------------------------------------------------------------------------


def decode_frame(text: str) -> dict[str, Any]:
    """Decode frame text and validate the generic envelope.

    Raises:
        ValueError: If the text is not a JSON object with a string ``type``.
    """
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("Frame must be a JSON object")
    if not isinstance(data.get("type"), str):
        raise ValueError("Frame is missing a string type")
    return data


def _require_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    return value


def _require_bool(data: dict[str, Any], key: str) -> bool:
    value = data.get(key)
    if not isinstance(value, bool):
        raise ValueError(f"{key} must be a boolean")
    return value


def _optional_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    return value


def _optional_bool(data: dict[str, Any], key: str, default: bool = False) -> bool:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ValueError(f"{key} must be a boolean")
    return value


def parse_pair_result(data: dict[str, Any]) -> PairingResult | None:
    """Interpret a pair_result payload.

    Returns:
        None while the request is still pending approval, otherwise the
        terminal PairingResult.
    """
    success = _require_bool(data, "success")
    token = _optional_str(data, "token")
    user_id = _optional_str(data, "userId")
    reason = _optional_str(data, "reason")

    if reason == PAIR_PENDING_REASON:
        return None
    if success and token is not None and user_id is not None:
        return PairingSuccess(token=token, user_id=user_id)
    return PairingDenied(reason=reason or DEFAULT_DENIED_REASON)


def parse_auth_result(data: dict[str, Any]) -> AuthResult:
    """Extract handshake outcome and replay bookkeeping from auth_result."""
    replay_count = data.get("replayCount", 0)
    if isinstance(replay_count, bool) or not isinstance(replay_count, int):
        raise ValueError("replayCount must be an integer")

    return AuthResult(
        success=_require_bool(data, "success"),
        user_id=_optional_str(data, "userId"),
        session_id=_optional_str(data, "sessionId"),
        replay_count=replay_count,
        replay_truncated=_optional_bool(data, "replayTruncated"),
        history_reset=_optional_bool(data, "historyReset"),
        reason=_optional_str(data, "reason"),
    )


def parse_wire_attachment(data: Any) -> WireAttachment:
    """Decode an inline image or asset reference."""
    if not isinstance(data, dict):
        raise ValueError("Attachment must be an object")
    kind = data.get("type")
    if kind == "image":
        mime_type = _require_str(data, "mimeType")
        encoded = _require_str(data, "data")
        try:
            raw = base64.b64decode(encoded, validate=True)
        except binascii.Error as err:
            raise ValueError("Invalid base64 data for inline attachment") from err
        return ImageAttachment(mime_type=mime_type, data=raw)
    if kind == "asset":
        return AssetAttachment(asset_id=_require_str(data, "assetId"))
    raise ValueError(f"Unknown attachment type: {kind!r}")


def parse_server_message(data: dict[str, Any]) -> ChatMessage:
    """Rebuild a ChatMessage from a server message frame."""
    timestamp_ms = data.get("timestamp")
    if isinstance(timestamp_ms, bool) or not isinstance(timestamp_ms, (int, float)):
        raise ValueError("timestamp must be epoch milliseconds")

    raw_attachments = data.get("attachments") or []
    if not isinstance(raw_attachments, list):
        raise ValueError("attachments must be a list")

    try:
        timestamp = datetime.fromtimestamp(timestamp_ms / 1000, tz=UTC)
    except (OverflowError, OSError) as err:
        raise ValueError("timestamp out of range") from err

    try:
        channel_type = ChannelType(data.get("channelType", "personal"))
    except ValueError:
        channel_type = ChannelType.PERSONAL

    return ChatMessage(
        id=_require_str(data, "id"),
        role=MessageRole(_require_str(data, "role")),
        content=_require_str(data, "content"),
        timestamp=timestamp,
        streaming=_require_bool(data, "streaming"),
        attachments=tuple(parse_wire_attachment(item) for item in raw_attachments),
        device_id=_optional_str(data, "deviceId"),
        channel_type=channel_type,
    )


def parse_ack(data: dict[str, Any]) -> str:
    """Return the acknowledged client message id."""
    return _require_str(data, "id")


def parse_error(data: dict[str, Any]) -> tuple[str, str | None, str | None]:
    """Return ``(code, message, message_id)`` from an error frame."""
    return (
        _require_str(data, "code"),
        _optional_str(data, "message"),
        _optional_str(data, "messageId"),
    )


def parse_typing(data: dict[str, Any]) -> TypingEvent:
    """Decode a server typing indicator."""
    role = _optional_str(data, "role")
    return TypingEvent(
        active=_require_bool(data, "active"),
        role=MessageRole(role) if role is not None else None,
    )
