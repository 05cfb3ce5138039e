"""
Cache & refresh coordination per source.

A read always returns the cached snapshot straight away. When the central
sync timestamp is stale and the source's advisory lock can be taken, a
background task fetches the window since the last update, merges it into
the cache and reports progress on the finance stream.
"""
import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Generic, List, Optional, Set, TypeVar

from unified_ledger.clients.base import BankDataClient, TradingClient
from unified_ledger.config.settings import AppSettings
from unified_ledger.domain.dates import EPOCH, parse_datetime, to_iso, utcnow
from unified_ledger.domain.enums import RefreshState, TransactionSource
from unified_ledger.domain.models import CachedResource, CachedTransactions
from unified_ledger.errors import ProviderError
from unified_ledger.parsers.factory import ParserFactory
from unified_ledger.reconciliation.merge import merge_transactions, policy_for
from unified_ledger.storage.base import KeyValueStore
from unified_ledger.sync.cache import (
    ACCOUNTS_CACHE_KEY,
    CARDS_CACHE_KEY,
    TRADING_CACHE_KEY,
    SourceCache,
)
from unified_ledger.sync.lock import AdvisoryLock
from unified_ledger.sync.stream import FinanceStream
from unified_ledger.sync.user_config import UserConfigStore

logger = logging.getLogger(__name__)

S = TypeVar("S")


class RefreshCoordinator(ABC, Generic[S]):
    """
    Base class for one source's cache.

    Subclasses define how a snapshot is decoded/encoded and how fresh data
    is fetched and merged; locking, scheduling and status reporting live
    here.
    """

    source: TransactionSource
    cache_key: str
    lock_name: str

    def __init__(
        self,
        store: KeyValueStore,
        stream: FinanceStream,
        settings: Optional[AppSettings] = None,
        user_config: Optional[UserConfigStore] = None,
    ):
        self.settings = settings or AppSettings()
        self.user_config = user_config or UserConfigStore(store)
        self.cache = SourceCache(store, self.cache_key, self.user_config)
        self.lock = AdvisoryLock(store)
        self.stream = stream
        self._tasks: Set[asyncio.Task] = set()

    def new_owner(self) -> str:
        """Owner token for one lock acquisition, unique per refresh."""
        return f"{type(self).__name__}.refresh:{uuid.uuid4().hex}"

    # Snapshot encoding

    @abstractmethod
    def decode(self, data: Any) -> S:
        """Turn cached data into a snapshot; malformed data gives the empty one."""
        pass

    @abstractmethod
    def encode(self, snapshot: S) -> Any:
        pass

    @abstractmethod
    async def fetch_and_merge(self, current: S, now: datetime) -> S:
        """Fetch everything new since `current` was written and merge it in."""
        pass

    async def check_credentials(self) -> None:
        """
        Fail fast on missing or expired credentials.

        Raises:
            MissingCredentialsError: Surfaced to the reader, not turned into a status
        """
        await self.client.check_credentials()

    # Reads

    async def read_snapshot(self) -> S:
        cache_file = await self.cache.read()
        return self.decode(cache_file.data)

    async def get_cached(self) -> S:
        """
        Return the cached snapshot, scheduling a refresh when it is stale.

        The returned snapshot is always the one read before any refresh;
        fresh data arrives later through the stream.
        """
        snapshot = await self.read_snapshot()

        if not await self.cache.is_stale(self.settings.stale_after_hours):
            logger.debug("%s cache is fresh", self.source.value)
            return snapshot

        logger.info("%s cache is stale", self.source.value)
        await self.check_credentials()
        owner = await self.lock.acquire(
            self.lock_name, self.settings.lock_ttl(self.lock_name), owner=self.new_owner()
        )
        if owner is None:
            logger.info("%s refresh already running elsewhere, serving cache", self.source.value)
            return snapshot

        self.stream.publish_status(self.source.value, RefreshState.PENDING)
        self._spawn(self.refresh(owner))
        return snapshot

    # Refresh

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def refreshing(self) -> bool:
        return bool(self._tasks)

    async def wait_for_refreshes(self) -> None:
        """Block until every scheduled refresh finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def window_start(self, last_updated: Optional[str], now: datetime) -> datetime:
        """Lower bound of the incremental fetch: last update, else the lookback."""
        if last_updated:
            parsed = parse_datetime(last_updated)
            if parsed != EPOCH:
                return parsed
        return now - timedelta(days=self.settings.initial_lookback_days)

    async def refresh(self, owner: str) -> Optional[S]:
        """
        Fetch, merge and persist, then report the outcome.

        Never raises: failures become an error status. The lock is released
        whatever happens.
        """
        source = self.source.value
        try:
            logger.info("Refreshing %s", source)
            current = await self.read_snapshot()
            merged = await self.fetch_and_merge(current, utcnow())
            data = self.encode(merged)
            await self.cache.write(data)
        except Exception as exc:
            logger.exception("Error refreshing %s cache", source)
            self.stream.publish_status(source, RefreshState.ERROR, str(exc) or type(exc).__name__)
            return None
        finally:
            await self.lock.release(self.lock_name, owner)

        logger.info("Refreshed %s", source)
        self.stream.publish_status(source, RefreshState.READY)
        self.stream.publish_update(source, data)
        return merged


class TradingRefreshCoordinator(RefreshCoordinator[CachedTransactions]):
    """Trading212 history; exports are append-only so existing rows win."""

    source = TransactionSource.TRADING212
    cache_key = TRADING_CACHE_KEY
    lock_name = "trading212-export"

    def __init__(self, store, stream, client: TradingClient, settings=None, user_config=None):
        super().__init__(store, stream, settings, user_config)
        self.client = client

    def decode(self, data: Any) -> CachedTransactions:
        if not isinstance(data, dict):
            return CachedTransactions()
        try:
            return CachedTransactions.from_dict(data)
        except (ValueError, TypeError) as e:
            logger.warning("Ignoring malformed %s cache: %s", self.cache_key, e)
            return CachedTransactions()

    def encode(self, snapshot: CachedTransactions) -> Any:
        return snapshot.to_dict()

    async def fetch_and_merge(self, current: CachedTransactions, now: datetime) -> CachedTransactions:
        date_from = self.window_start(current.last_updated, now)

        csv_text = await self.client.fetch_export(date_from, now)
        incoming = ParserFactory.create_parser(self.source).parse(csv_text)
        balance = await self.client.get_balance()

        merged = merge_transactions(current.transactions, incoming, policy_for(self.source))
        logger.info(
            "Trading212: %d fetched, %d cached after merge", len(incoming), len(merged)
        )
        return CachedTransactions(transactions=merged, last_updated=to_iso(now), balance=balance)


class ProviderRefreshCoordinator(RefreshCoordinator[List[CachedResource]]):
    """
    Bank accounts or cards from the banking provider.

    Each account/card is merged on its own, matched by `account_id`.
    Resources no longer listed by the provider are dropped from the cache.
    """

    def __init__(
        self,
        store,
        stream,
        client: BankDataClient,
        source: TransactionSource = TransactionSource.BANK_ACCOUNT,
        settings=None,
        user_config=None,
    ):
        if source == TransactionSource.BANK_ACCOUNT:
            self.cache_key = ACCOUNTS_CACHE_KEY
            self.lock_name = "bank-account-refresh"
        elif source == TransactionSource.CREDIT_CARD:
            self.cache_key = CARDS_CACHE_KEY
            self.lock_name = "credit-card-refresh"
        else:
            raise ValueError(f"{source.value} is not a banking provider source")
        self.source = source
        super().__init__(store, stream, settings, user_config)
        self.client = client

    @property
    def _is_cards(self) -> bool:
        return self.source == TransactionSource.CREDIT_CARD

    def decode(self, data: Any) -> List[CachedResource]:
        if not isinstance(data, list):
            return []
        resources = []
        for item in data:
            try:
                resources.append(CachedResource.from_dict(item))
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning("Skipping malformed entry in %s: %s", self.cache_key, e)
        return resources

    def encode(self, snapshot: List[CachedResource]) -> Any:
        return [resource.to_dict() for resource in snapshot]

    async def _list(self):
        if self._is_cards:
            return await self.client.list_cards()
        return await self.client.list_accounts()

    async def _balance(self, resource_id: str) -> Optional[Decimal]:
        if self._is_cards:
            return await self.client.get_card_balance(resource_id)
        return await self.client.get_account_balance(resource_id)

    async def _transactions(self, resource_id: str, date_from: datetime, date_to: datetime):
        if self._is_cards:
            return await self.client.get_card_transactions(resource_id, date_from, date_to)
        return await self.client.get_account_transactions(resource_id, date_from, date_to)

    async def fetch_and_merge(self, current: List[CachedResource], now: datetime) -> List[CachedResource]:
        listed = await self._list()
        if not listed:
            kind = "cards" if self._is_cards else "bank accounts"
            raise ProviderError(f"No {kind} found at the banking provider")

        existing = {resource.resource_id: resource for resource in current}
        parser = ParserFactory.create_parser(self.source)
        policy = policy_for(self.source)

        merged_resources = []
        for resource in listed:
            resource_id = str(resource.get("account_id", ""))
            if not resource_id:
                logger.warning("Skipping %s resource without account_id", self.source.value)
                continue

            previous = existing.get(resource_id)
            date_from = self.window_start(previous.last_updated if previous else None, now)

            balance = await self._balance(resource_id) or Decimal("0")
            records = await self._transactions(resource_id, date_from, now)
            incoming = parser.parse(records)

            merged = merge_transactions(
                previous.transactions if previous else [], incoming, policy
            )
            merged_resources.append(CachedResource(
                resource={**resource, "balance": float(balance)},
                balance=balance,
                transactions=merged,
                last_updated=to_iso(now),
            ))

        dropped = set(existing) - {r.resource_id for r in merged_resources}
        if dropped:
            logger.info("Dropping %s no longer listed: %s", self.source.value, sorted(dropped))
        return merged_resources
