import asyncio
import logging
from decimal import Decimal
from typing import Any, Iterable, List, Optional

from unified_ledger.domain.models import CachedResource, CachedTransactions, Transaction
from unified_ledger.reconciliation.card_dedup import filter_card_bank_duplicates
from unified_ledger.reconciliation.merge import sort_by_date
from unified_ledger.repositories.base import CategoryRepository
from unified_ledger.services.base import FinancialDataProvider
from unified_ledger.services.models import CombinedFinancialData
from unified_ledger.sync.coordinator import ProviderRefreshCoordinator, TradingRefreshCoordinator
from unified_ledger.sync.stream import FinanceStream
from unified_ledger.sync.user_config import UserConfigStore

logger = logging.getLogger(__name__)


async def _value(value: Any) -> Any:
    return value


def total_balance(
    accounts: Iterable[CachedResource],
    cards: Iterable[CachedResource],
    trading: Optional[CachedTransactions],
) -> Decimal:
    """
    Accounts plus trading cash, minus what is owed on cards.

    Only positive card balances are debt; a card in credit doesn't add to
    the total.
    """
    total = sum((a.balance for a in accounts), Decimal("0"))
    if trading is not None and trading.balance is not None:
        total += trading.balance
    total -= sum((c.balance for c in cards if c.balance > 0), Decimal("0"))
    return total


class LedgerService(FinancialDataProvider):
    """
    Live combined read across bank accounts, cards and Trading212.

    Returns whatever the caches hold right now; stale sources refresh in
    the background and report through the finance stream.
    """

    is_demo = False

    def __init__(
        self,
        user_config: UserConfigStore,
        accounts: ProviderRefreshCoordinator,
        cards: ProviderRefreshCoordinator,
        trading: TradingRefreshCoordinator,
        category_repository: CategoryRepository,
        stream: FinanceStream,
    ):
        self.user_config = user_config
        self.accounts = accounts
        self.cards = cards
        self.trading = trading
        self.category_repository = category_repository
        self.stream = stream

    async def get_combined_data(self) -> CombinedFinancialData:
        """
        Read every connected source and combine them.

        Raises:
            MissingCredentialsError: If a connected source's credentials are
                missing or expired while its cache needs refreshing
        """
        has_accounts = await self.user_config.has_accounts()
        has_cards = await self.user_config.has_cards()
        trading_connected = await self.user_config.is_trading_connected()

        accounts, cards, trading = await asyncio.gather(
            self.accounts.get_cached() if has_accounts else _value([]),
            self.cards.get_cached() if has_cards else _value([]),
            self.trading.get_cached() if trading_connected else _value(None),
        )

        transactions: List[Transaction] = []
        for resource in list(accounts) + list(cards):
            transactions.extend(resource.transactions)
        if trading is not None:
            transactions.extend(trading.transactions)

        transactions = sort_by_date(filter_card_bank_duplicates(transactions))

        await self.user_config.mark_synced()

        logger.info(
            "Combined read: %d accounts, %d cards, trading %s, %d transactions",
            len(accounts), len(cards), "on" if trading_connected else "off", len(transactions),
        )
        return CombinedFinancialData(
            transactions=transactions,
            total_balance=total_balance(accounts, cards, trading),
        )

    async def wait_for_refreshes(self) -> None:
        await asyncio.gather(
            self.accounts.wait_for_refreshes(),
            self.cards.wait_for_refreshes(),
            self.trading.wait_for_refreshes(),
        )
