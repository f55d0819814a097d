"""Cloud-sync connectivity probe.

Checks a Supabase-style REST endpoint with the configured anon key and
derives the cloud ConnectionStatus purely from the outcome of that call.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx

from aegis.exceptions import CloudSyncError
from aegis.logging import get_logger
from aegis.models import ConnectionStatus

if TYPE_CHECKING:
    from aegis.config import CloudSettings
    from aegis.ledger import EventLedger

logger = get_logger(__name__)


class CloudSyncClient:
    """Probes the cloud-sync endpoint and tracks its ConnectionStatus.

    Args:
        ledger: Event Ledger for operator-visible results.
        timeout: HTTP timeout in seconds.
        transport: Optional httpx transport (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        ledger: EventLedger,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._ledger = ledger
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._status = ConnectionStatus.DISCONNECTED

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    async def check(self, settings: CloudSettings) -> ConnectionStatus:
        """Probe the endpoint. Unconfigured -> DISCONNECTED, failure -> ERROR."""
        if not settings.is_configured:
            self._status = ConnectionStatus.DISCONNECTED
            return self._status
        try:
            await self._probe(settings)
        except CloudSyncError as e:
            self._status = ConnectionStatus.ERROR
            self._ledger.error(f"Cloud sync error: {e}")
            logger.warning("cloud_probe_failed", error=str(e))
            return self._status

        self._status = ConnectionStatus.CONNECTED
        self._ledger.success("Cloud sync connected")
        return self._status

    async def _probe(self, settings: CloudSettings) -> None:
        key = settings.anon_key.get_secret_value()
        url = settings.url.rstrip("/") + "/rest/v1/"
        try:
            response = await self._client.get(
                url, headers={"apikey": key, "Authorization": f"Bearer {key}"}
            )
        except httpx.HTTPError as e:
            raise CloudSyncError(str(e) or type(e).__name__) from e
        if response.status_code in (401, 403):
            raise CloudSyncError(f"key rejected (HTTP {response.status_code})")
        if response.status_code >= 500:
            raise CloudSyncError(f"server error (HTTP {response.status_code})")
        logger.info("cloud_probe_ok", status_code=response.status_code)

    async def close(self) -> None:
        await self._client.aclose()
