import asyncio
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

import requests

from unified_ledger.clients.base import BankDataClient, TokenProvider
from unified_ledger.domain.dates import to_iso
from unified_ledger.domain.models import to_decimal
from unified_ledger.errors import MissingCredentialsError, ProviderError
from unified_ledger.sync.user_config import UserConfigStore, token_expired

logger = logging.getLogger(__name__)

# Tokens this close to expiry are treated as expired
EXPIRY_MARGIN_SECONDS = 60


class StoredTokenProvider(TokenProvider):
    """
    Reads the access token saved in the user config.

    Token exchange and refresh happen elsewhere; an absent or expired token
    fails fast.
    """

    def __init__(self, user_config: UserConfigStore):
        self.user_config = user_config

    async def get_token(self) -> str:
        connection = await self.user_config.bank_connection()
        token = connection.get("access_token")
        if not token:
            raise MissingCredentialsError("Banking provider is not connected")

        expires_at = connection.get("expires_at")
        if isinstance(expires_at, (int, float)):
            expires_at = expires_at - EXPIRY_MARGIN_SECONDS * 1000
        if token_expired(expires_at):
            raise MissingCredentialsError("Banking provider token has expired, reconnect the bank")
        return token


class TrueLayerClient(BankDataClient):
    """requests-based client for the TrueLayer Data API."""

    def __init__(
        self,
        token_provider: TokenProvider,
        base_url: str = "https://api.truelayer.com/data/v1",
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ):
        self.token_provider = token_provider
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    async def check_credentials(self) -> None:
        await self.token_provider.get_token()

    async def _get(self, path: str, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        token = await self.token_provider.get_token()
        return await asyncio.to_thread(self._request, path, token, params)

    def _request(self, path: str, token: str, params: Optional[Dict[str, str]]) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(
                url,
                headers={"Authorization": f"Bearer {token}"},
                params=params,
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()
        except requests.RequestException as exc:
            raise ProviderError(f"TrueLayer request {path} failed: {exc}") from exc
        except ValueError as exc:
            raise ProviderError(f"TrueLayer returned invalid JSON for {path}") from exc

    async def _results(self, path: str, params: Optional[Dict[str, str]] = None) -> List[Dict[str, Any]]:
        data = await self._get(path, params)
        return list(data.get("results") or [])

    @staticmethod
    def _window(date_from: Optional[datetime], date_to: Optional[datetime]) -> Optional[Dict[str, str]]:
        if date_from is None and date_to is None:
            return None
        params = {}
        if date_from is not None:
            params["from"] = to_iso(date_from)
        if date_to is not None:
            params["to"] = to_iso(date_to)
        return params

    async def _balance(self, path: str) -> Optional[Decimal]:
        results = await self._results(path)
        if not results or results[0].get("current") is None:
            return None
        return to_decimal(results[0]["current"])

    async def list_accounts(self) -> List[Dict[str, Any]]:
        return await self._results("/accounts")

    async def list_cards(self) -> List[Dict[str, Any]]:
        return await self._results("/cards")

    async def get_account_balance(self, account_id: str) -> Optional[Decimal]:
        return await self._balance(f"/accounts/{account_id}/balance")

    async def get_card_balance(self, card_id: str) -> Optional[Decimal]:
        return await self._balance(f"/cards/{card_id}/balance")

    async def get_account_transactions(self, account_id, date_from=None, date_to=None):
        return await self._results(
            f"/accounts/{account_id}/transactions", self._window(date_from, date_to)
        )

    async def get_card_transactions(self, card_id, date_from=None, date_to=None):
        return await self._results(
            f"/cards/{card_id}/transactions", self._window(date_from, date_to)
        )
