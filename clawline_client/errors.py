"""Client error types for Clawline provider interactions."""

from __future__ import annotations


class ClawlineClientError(Exception):
    """Base error for Clawline client failures."""


class ClawlineTimeout(ClawlineClientError):
    """Timeout while communicating with the provider."""


class ClawlineConnectionError(ClawlineClientError):
    """Network connection to the provider failed."""


class ClawlineHandshakeError(ClawlineClientError):
    """WebSocket handshake failed."""


class ClawlineResponseError(ClawlineClientError):
    """HTTP response error from the provider."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status


# -----------------------------------------------------------------------------
# Pairing
# -----------------------------------------------------------------------------


class PairingError(ClawlineClientError):
    """Base error for the pairing exchange."""


class PairingTimeout(PairingError, ClawlineTimeout):
    """Pairing timed out. Please try again."""

    def __init__(self, message: str = "Pairing timed out") -> None:
        super().__init__(message)


class PairingSocketClosed(PairingError):
    """Connection closed by the provider before a pairing result arrived."""

    def __init__(self, message: str = "Connection closed by server") -> None:
        super().__init__(message)


class PairingInvalidResponse(PairingError):
    """Received an unexpected response from the provider."""

    def __init__(
        self, message: str = "Received unexpected response from provider"
    ) -> None:
        super().__init__(message)


class UnsupportedURLError(PairingError):
    """Pairing URL does not use a WebSocket scheme."""

    def __init__(self, url: str) -> None:
        super().__init__(f"Unsupported server URL: {url}")
        self.url = url


# -----------------------------------------------------------------------------
# Chat session
# -----------------------------------------------------------------------------


class SessionError(ClawlineClientError):
    """Base error for the authenticated chat session."""


class MissingBaseURLError(SessionError):
    """No usable provider base URL is configured."""

    def __init__(
        self, message: str = "No provider configured. Pair with a provider first."
    ) -> None:
        super().__init__(message)


class NotConnectedError(SessionError):
    """No live socket to the provider."""

    def __init__(self, message: str = "Not connected to provider.") -> None:
        super().__init__(message)


class AuthFailedError(SessionError):
    """Provider rejected the auth handshake."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Authentication failed: {reason}")
        self.reason = reason


class TokenRevokedError(SessionError):
    """Provider revoked the device token."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Access revoked: {reason}")
        self.reason = reason


class SessionReplacedError(SessionError):
    """A newer connection for the same device took over the session."""

    def __init__(self) -> None:
        super().__init__("Session replaced by another device.")


class InvalidMessageIdError(SessionError):
    """Client message ids must carry the client prefix."""

    def __init__(self, message_id: str) -> None:
        super().__init__(f"Client message IDs must start with c_: {message_id!r}")
        self.message_id = message_id


class ServerError(SessionError):
    """Non-fatal session-level error reported by the provider."""

    def __init__(self, code: str, message: str | None = None) -> None:
        super().__init__(message or f"Server error ({code}).")
        self.code = code
        self.message = message


# -----------------------------------------------------------------------------
# Attachments
# -----------------------------------------------------------------------------


class MissingAuthError(ClawlineClientError):
    """No bearer token available for an authenticated request."""


class InvalidAssetIdError(ClawlineClientError):
    """Asset id is not safe to place in a download URL."""

    def __init__(self, asset_id: str) -> None:
        super().__init__(f"Invalid asset id: {asset_id!r}")
        self.asset_id = asset_id
