import logging
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

from unified_ledger.domain.dates import hours_since, to_iso, utcnow
from unified_ledger.storage.base import KeyValueStore
from unified_ledger.sync.user_config import UserConfigStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

STALE_AFTER_HOURS = 1.0

ACCOUNTS_CACHE_KEY = "accounts.json"
CARDS_CACHE_KEY = "cards.json"
TRADING_CACHE_KEY = "trading212.json"


@dataclass
class CacheFile(Generic[T]):
    """What is stored under a cache key"""
    last_updated: Optional[str] = None
    data: Optional[T] = None


class SourceCache:
    """
    One source's cache entry in the key-value store.

    Freshness is not judged by the entry's own `lastUpdated` but by the
    central `lastSyncedAt` in the user config, so all sources go stale
    together.
    """

    def __init__(self, store: KeyValueStore, key: str, user_config: Optional[UserConfigStore] = None):
        self.store = store
        self.key = key
        self.user_config = user_config or UserConfigStore(store)

    async def read(self) -> CacheFile[Any]:
        """
        Read the cache file.

        Missing or malformed content returns an empty CacheFile instead of
        raising, so a partially written or legacy entry behaves like no cache.
        """
        raw = await self.store.get_item(self.key)
        if not isinstance(raw, dict) or "data" not in raw:
            if raw is not None:
                logger.warning("Ignoring malformed cache entry %s", self.key)
            return CacheFile()

        last_updated = raw.get("lastUpdated")
        if last_updated is not None and not isinstance(last_updated, str):
            last_updated = None
        return CacheFile(last_updated=last_updated, data=raw.get("data"))

    async def write(self, data: Any) -> CacheFile[Any]:
        cache_file = CacheFile(last_updated=to_iso(utcnow()), data=data)
        await self.store.set_item(self.key, {
            "lastUpdated": cache_file.last_updated,
            "data": data,
        })
        return cache_file

    async def is_stale(self, max_hours: float = STALE_AFTER_HOURS) -> bool:
        last_synced = await self.user_config.last_synced_at()
        return hours_since(last_synced) > max_hours

    async def get_last_synced_at(self) -> Optional[str]:
        return await self.user_config.last_synced_at()

    async def mark_synced(self) -> str:
        return await self.user_config.mark_synced()

    async def request_resync(self) -> str:
        return await self.user_config.request_resync()

    def __repr__(self) -> str:
        return f"SourceCache({self.key!r})"
