"""One-shot device pairing against a Clawline provider.

The pairing exchange runs on its own short-lived socket:

1. connect (bounded by the operation timeout)
2. send ``pair_request`` (bounded by the operation timeout)
3. wait for a terminal ``pair_result`` (bounded by the pending timeout,
   which matches the provider's five-minute pairing TTL)

The socket is closed whichever way the exchange ends.
"""

from __future__ import annotations

import asyncio
import logging
import platform as platform_module
from collections.abc import Awaitable, Callable
from typing import TypeVar

from .errors import (
    ClawlineTimeout,
    PairingInvalidResponse,
    PairingSocketClosed,
    PairingTimeout,
    UnsupportedURLError,
)
from .models import PairingResult
from .protocol import (
    MSG_PAIR_RESULT,
    build_pair_request,
    decode_frame,
    encode_frame,
    parse_pair_result,
)
from .ws import is_websocket_url
from .ws_client import ClawlineWsClient, ClawlineWsMessageType

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")

DEFAULT_OPERATION_TIMEOUT = 20.0
DEFAULT_PENDING_TIMEOUT = 300.0
CLOSE_TIMEOUT = 2.0


class ClawlinePairingClient:
    """Runs the pair_request / pair_result exchange.

    Usage:
        client = ClawlinePairingClient()
        result = await client.request_pairing("wss://host/ws", "Kitchen iPad", device_id)
        if isinstance(result, PairingSuccess):
            store(result.token, result.user_id)
    """

    def __init__(
        self,
        *,
        ws_client_factory: Callable[[], ClawlineWsClient] = ClawlineWsClient,
        operation_timeout: float = DEFAULT_OPERATION_TIMEOUT,
        pending_timeout: float = DEFAULT_PENDING_TIMEOUT,
        platform: str | None = None,
        model: str | None = None,
        os_version: str | None = None,
        app_version: str | None = None,
    ) -> None:
        """Initialize pairing client.

        Args:
            ws_client_factory: Creates the transport socket
            operation_timeout: Bound on connect and on send (seconds)
            pending_timeout: Bound on waiting for a terminal result (seconds)
            platform: deviceInfo.platform, defaults to the host OS name
            model: deviceInfo.model, defaults to the host machine type
            os_version: Optional deviceInfo.osVersion
            app_version: Optional deviceInfo.appVersion
        """
        self._ws_client_factory = ws_client_factory
        self._operation_timeout = operation_timeout
        self._pending_timeout = pending_timeout
        self._platform = platform or platform_module.system() or "Python"
        self._model = model or platform_module.machine() or "unknown"
        self._os_version = os_version
        self._app_version = app_version

    async def request_pairing(
        self, server_url: str, claimed_name: str, device_id: str
    ) -> PairingResult:
        """Request pairing and wait for the administrator's decision.

        Returns:
            PairingSuccess with credentials, or PairingDenied with a reason.

        Raises:
            UnsupportedURLError: server_url is not ws:// or wss://
            PairingTimeout: connect, send or the approval wait timed out
            PairingSocketClosed: provider closed before a terminal result
            PairingInvalidResponse: provider sent a frame that is not JSON
        """
        _LOGGER.debug(
            "[%s] Pairing requested (url: %s, name: %s)",
            device_id,
            server_url,
            claimed_name,
        )
        if not is_websocket_url(server_url):
            raise UnsupportedURLError(server_url)

        ws_client = self._ws_client_factory()
        try:
            await self._run_with_timeout(
                ws_client.connect(server_url, timeout=self._operation_timeout)
            )

            frame = build_pair_request(
                device_id=device_id,
                claimed_name=claimed_name,
                platform=self._platform,
                model=self._model,
                os_version=self._os_version,
                app_version=self._app_version,
            )
            await self._run_with_timeout(ws_client.send_text(encode_frame(frame)))
            _LOGGER.info("[%s] Pair request sent, awaiting approval", device_id)

            try:
                result = await asyncio.wait_for(
                    self._wait_for_result(ws_client, device_id),
                    timeout=self._pending_timeout,
                )
            except TimeoutError as err:
                raise PairingTimeout("Pairing approval timed out") from err

            _LOGGER.info(
                "[%s] Pairing finished: %s", device_id, type(result).__name__
            )
            return result
        finally:
            await self._close(ws_client, device_id)

    async def _run_with_timeout(self, operation: Awaitable[_T]) -> _T:
        """Await operation under the operation timeout."""
        try:
            return await asyncio.wait_for(operation, timeout=self._operation_timeout)
        except (TimeoutError, ClawlineTimeout) as err:
            raise PairingTimeout() from err

    async def _wait_for_result(
        self, ws_client: ClawlineWsClient, device_id: str
    ) -> PairingResult:
        """Consume frames until a terminal pair_result arrives."""
        async for msg in ws_client:
            if msg.type is not ClawlineWsMessageType.TEXT or msg.data is None:
                break

            try:
                data = decode_frame(msg.data)
            except ValueError as err:
                raise PairingInvalidResponse() from err

            if data["type"] != MSG_PAIR_RESULT:
                _LOGGER.warning(
                    "[%s] Ignoring unexpected payload type %s",
                    device_id,
                    data["type"],
                )
                continue

            try:
                result = parse_pair_result(data)
            except ValueError as err:
                raise PairingInvalidResponse() from err

            if result is None:
                _LOGGER.debug("[%s] Pairing still pending approval", device_id)
                continue
            return result

        raise PairingSocketClosed()

    async def _close(self, ws_client: ClawlineWsClient, device_id: str) -> None:
        try:
            await asyncio.wait_for(ws_client.close(), timeout=CLOSE_TIMEOUT)
        except TimeoutError:
            _LOGGER.warning("[%s] Pairing socket close timed out", device_id)
        except Exception as err:
            _LOGGER.debug("[%s] Pairing socket close failed: %s", device_id, err)
