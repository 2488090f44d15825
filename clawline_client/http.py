"""HTTP client for Clawline provider asset endpoints."""

from __future__ import annotations

import aiohttp

from .errors import (
    ClawlineConnectionError,
    ClawlineResponseError,
    ClawlineTimeout,
    InvalidAssetIdError,
    MissingAuthError,
)

DEFAULT_HTTP_TIMEOUT = 30.0

_DEFAULT_FILENAMES = {
    "image/png": "attachment.png",
    "image/jpeg": "attachment.jpg",
    "image/jpg": "attachment.jpg",
    "image/gif": "attachment.gif",
    "image/webp": "attachment.webp",
    "image/heic": "attachment.heic",
}
_FILENAME_DISALLOWED = set('"\\\r\n;')
_ASSET_ID_DISALLOWED = set("/\\?#")


def default_filename(mime_type: str) -> str:
    """Pick an upload filename from the MIME type."""
    return _DEFAULT_FILENAMES.get(mime_type.lower(), "attachment.bin")


def sanitize_filename(filename: str | None, mime_type: str) -> str:
    """Strip header-breaking characters from an upload filename."""
    if filename is None:
        return default_filename(mime_type)
    cleaned = "".join(ch for ch in filename if ch not in _FILENAME_DISALLOWED).strip()
    return cleaned or default_filename(mime_type)


def validate_asset_id(asset_id: str) -> str:
    """Reject asset ids that could escape the download path."""
    if (
        not asset_id
        or ".." in asset_id
        or any(ch in _ASSET_ID_DISALLOWED for ch in asset_id)
    ):
        raise InvalidAssetIdError(asset_id)
    return asset_id


class ClawlineHttpClient:
    """HTTP client wrapper for provider upload and download endpoints."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ) -> None:
        self._session = session
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout

    def _url(self, path: str) -> str:
        return f"{self._base_url}{path}"

    def _auth_headers(self) -> dict[str, str]:
        if not self._token:
            raise MissingAuthError("No provider token available")
        return {"Authorization": f"Bearer {self._token}"}

    async def upload(
        self, data: bytes, mime_type: str, filename: str | None = None
    ) -> str:
        """Upload bytes to /upload and return the new asset id."""
        headers = self._auth_headers()

        form = aiohttp.FormData()
        form.add_field(
            "file",
            data,
            filename=sanitize_filename(filename, mime_type),
            content_type=mime_type,
        )

        try:
            async with self._session.post(
                self._url("/upload"),
                data=form,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            ) as resp:
                if resp.status < 200 or resp.status >= 300:
                    raise ClawlineResponseError(
                        resp.status, f"Upload failed with status {resp.status}"
                    )
                payload = await resp.json()
        except TimeoutError as err:
            raise ClawlineTimeout("Upload request timed out") from err
        except aiohttp.ClientError as err:
            raise ClawlineConnectionError("Upload request failed") from err

        asset_id = payload.get("assetId") if isinstance(payload, dict) else None
        if not isinstance(asset_id, str):
            raise ClawlineResponseError(200, "Upload response is missing assetId")
        return asset_id

    async def download(self, asset_id: str) -> bytes:
        """Fetch asset bytes from /download/<assetId>."""
        safe_asset_id = validate_asset_id(asset_id)
        headers = self._auth_headers()

        try:
            async with self._session.get(
                self._url(f"/download/{safe_asset_id}"),
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            ) as resp:
                if resp.status < 200 or resp.status >= 300:
                    raise ClawlineResponseError(
                        resp.status, f"Download failed with status {resp.status}"
                    )
                return await resp.read()
        except TimeoutError as err:
            raise ClawlineTimeout("Download request timed out") from err
        except aiohttp.ClientError as err:
            raise ClawlineConnectionError("Download request failed") from err
