"""
The central user config record.

Holds provider credentials, the connected accounts/cards and `lastSyncedAt`,
the single freshness timestamp every source cache is judged against.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from unified_ledger.domain.dates import parse_datetime, to_iso, utcnow
from unified_ledger.errors import MissingCredentialsError
from unified_ledger.storage.base import KeyValueStore

logger = logging.getLogger(__name__)

USER_CONFIG_KEY = "user-config.json"


class UserConfigStore:
    """Read/write access to the user config, tolerant of legacy shapes."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def read(self) -> Dict[str, Any]:
        """
        Return the config dict.

        Accepts both the wrapped `{"lastUpdated", "data": {...}}` form and a
        bare dict written by older versions. Anything else reads as empty.
        """
        raw = await self.store.get_item(USER_CONFIG_KEY)
        if not isinstance(raw, dict):
            return {}
        if "data" in raw:
            data = raw.get("data")
            return dict(data) if isinstance(data, dict) else {}
        return dict(raw)

    async def write(self, config: Dict[str, Any]) -> None:
        await self.store.set_item(USER_CONFIG_KEY, {
            "lastUpdated": to_iso(utcnow()),
            "data": config,
        })

    async def update(self, **changes) -> Dict[str, Any]:
        config = await self.read()
        config.update(changes)
        await self.write(config)
        return config

    async def last_synced_at(self) -> Optional[str]:
        return (await self.read()).get("lastSyncedAt")

    async def mark_synced(self, when: Optional[datetime] = None) -> str:
        stamp = to_iso(when or utcnow())
        await self.update(lastSyncedAt=stamp)
        return stamp

    async def request_resync(self, now: Optional[datetime] = None) -> str:
        """Back-date lastSyncedAt by a day so the next read refreshes."""
        stamp = to_iso((now or utcnow()) - timedelta(days=1))
        await self.update(lastSyncedAt=stamp)
        logger.info("Re-sync requested; lastSyncedAt set to %s", stamp)
        return stamp

    async def connect_trading(self, key: str, secret: str) -> None:
        if not key or not secret:
            raise MissingCredentialsError("Trading212 key and secret are both required")
        await self.update(trading212Account={
            "key": key,
            "secret": secret,
            "addedAt": to_iso(utcnow()),
        })

    async def trading_credentials(self) -> Tuple[str, str]:
        """
        Raises:
            MissingCredentialsError: If no Trading212 key/secret is stored
        """
        account = (await self.read()).get("trading212Account") or {}
        key, secret = account.get("key"), account.get("secret")
        if not key or not secret:
            raise MissingCredentialsError("Missing Trading212 credentials")
        return key, secret

    async def bank_connection(self) -> Dict[str, Any]:
        connection = (await self.read()).get("trueLayerAccount")
        return connection if isinstance(connection, dict) else {}

    async def is_trading_connected(self) -> bool:
        return bool((await self.read()).get("trading212Account"))

    async def has_accounts(self) -> bool:
        return bool((await self.bank_connection()).get("Accounts"))

    async def has_cards(self) -> bool:
        return bool((await self.bank_connection()).get("Cards"))


def token_expired(expires_at: Any, now: Optional[datetime] = None) -> bool:
    """expires_at is epoch milliseconds or an ISO string."""
    if expires_at in (None, ""):
        return True
    return parse_datetime(expires_at) <= (now or utcnow())
