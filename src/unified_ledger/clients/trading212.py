import asyncio
import base64
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

import requests

from unified_ledger.clients.base import TradingClient
from unified_ledger.domain.dates import to_iso
from unified_ledger.domain.models import to_decimal
from unified_ledger.errors import ExportNotReadyError, ProviderError
from unified_ledger.sync.user_config import UserConfigStore

logger = logging.getLogger(__name__)


def basic_auth_header(key: str, secret: str) -> Dict[str, str]:
    token = base64.b64encode(f"{key}:{secret}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


class Trading212Client(TradingClient):
    """
    requests-based client for the Trading212 history export API.

    Credentials are read from the user config on every call so a freshly
    connected account is picked up without rebuilding the client.
    """

    def __init__(
        self,
        user_config: UserConfigStore,
        export_url: str = "https://live.trading212.com/api/v0/history/exports",
        balance_url: str = "https://live.trading212.com/api/v0/equity/account/cash",
        timeout: float = 30,
        export_wait_seconds: float = 30,
        poll_attempts: int = 5,
        poll_interval_seconds: float = 10,
        session: Optional[requests.Session] = None,
    ):
        self.user_config = user_config
        self.export_url = export_url
        self.balance_url = balance_url
        self.timeout = timeout
        self.export_wait_seconds = export_wait_seconds
        self.poll_attempts = poll_attempts
        self.poll_interval_seconds = poll_interval_seconds
        self.session = session or requests.Session()

    async def _auth(self) -> Dict[str, str]:
        key, secret = await self.user_config.trading_credentials()
        return basic_auth_header(key, secret)

    async def check_credentials(self) -> None:
        await self.user_config.trading_credentials()

    def _send(self, method: str, url: str, headers: Dict[str, str], **kwargs) -> requests.Response:
        try:
            response = self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
            response.raise_for_status()
            return response
        except requests.RequestException as exc:
            raise ProviderError(f"Trading212 {method} {url} failed: {exc}") from exc

    async def _json(self, method: str, url: str, **kwargs) -> Any:
        headers = await self._auth()
        response = await asyncio.to_thread(self._send, method, url, headers, **kwargs)
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(f"Trading212 returned invalid JSON from {url}") from exc

    async def create_export_job(self, date_from: datetime, date_to: datetime) -> int:
        body = {
            "dataIncluded": {"includeTransactions": True, "includeInterest": True},
            "timeFrom": to_iso(date_from),
            "timeTo": to_iso(date_to),
        }
        data = await self._json("POST", self.export_url, json=body)
        report_id = data.get("reportId") if isinstance(data, dict) else None
        if report_id is None:
            raise ProviderError("Trading212 did not return a report id")
        logger.info("Created Trading212 export %s (%s -> %s)", report_id, body["timeFrom"], body["timeTo"])
        return int(report_id)

    async def get_download_url(self, report_id: int) -> Optional[str]:
        exports = await self._json("GET", self.export_url)
        for item in exports or []:
            if item.get("reportId") != report_id:
                continue
            if str(item.get("status") or "").upper() != "FINISHED":
                return None
            return item.get("downloadLink") or None
        return None

    async def download_csv(self, url: str) -> str:
        response = await asyncio.to_thread(self._send, "GET", url, {"Accept": "text/csv"})
        return response.text

    async def get_balance(self) -> Decimal:
        data = await self._json("GET", self.balance_url)
        if not isinstance(data, dict) or data.get("total") is None:
            raise ProviderError("Trading212 balance response has no total")
        return to_decimal(data["total"])

    async def fetch_export(self, date_from: datetime, date_to: datetime) -> str:
        report_id = await self.create_export_job(date_from, date_to)
        await asyncio.sleep(self.export_wait_seconds)

        for attempt in range(self.poll_attempts):
            url = await self.get_download_url(report_id)
            if url:
                return await self.download_csv(url)
            logger.debug("Export %s not ready (attempt %d/%d)", report_id, attempt + 1, self.poll_attempts)
            if attempt + 1 < self.poll_attempts:
                await asyncio.sleep(self.poll_interval_seconds)

        raise ExportNotReadyError(f"Trading212 export {report_id} not ready")
