import logging
from typing import Optional

from unified_ledger.clients.base import BankDataClient, TradingClient
from unified_ledger.clients.trading212 import Trading212Client
from unified_ledger.clients.truelayer import StoredTokenProvider, TrueLayerClient
from unified_ledger.config.settings import AppSettings
from unified_ledger.domain.enums import TransactionSource
from unified_ledger.parsers.factory import ParserFactory
from unified_ledger.repositories.demo_category_repository import DemoCategoryRepository
from unified_ledger.repositories.stored_category_repository import StoredCategoryRepository
from unified_ledger.services.base import FinancialDataProvider
from unified_ledger.services.demo_data import DemoDataProvider
from unified_ledger.services.ledger_service import LedgerService
from unified_ledger.storage.base import KeyValueStore
from unified_ledger.sync.coordinator import ProviderRefreshCoordinator, TradingRefreshCoordinator
from unified_ledger.sync.stream import FinanceStream
from unified_ledger.sync.user_config import UserConfigStore

logger = logging.getLogger(__name__)


def build_data_provider(
    settings: AppSettings,
    store: KeyValueStore,
    demo_mode: bool = False,
    stream: Optional[FinanceStream] = None,
    bank_client: Optional[BankDataClient] = None,
    trading_client: Optional[TradingClient] = None,
    demo_seed: Optional[int] = None,
) -> FinancialDataProvider:
    """
    Build the data provider for one run.

    Args:
        settings: Application settings
        store: Key-value store holding caches, locks and user data
        demo_mode: Serve generated data and read-only demo categories
        stream: Finance stream for refresh events (a new one if omitted)
        bank_client: Banking provider client (TrueLayer if omitted)
        trading_client: Trading client (Trading212 if omitted)
        demo_seed: Seed for the demo generator

    Example:
        provider = build_data_provider(AppSettings.load(), store, demo_mode=True)
        data = await provider.get_combined_data()
    """
    if demo_mode:
        logger.info("Using demo data provider")
        return DemoDataProvider(seed=demo_seed, category_repository=DemoCategoryRepository())

    ParserFactory.ensure_loaded()

    stream = stream or FinanceStream(keepalive_seconds=settings.keepalive_seconds)
    user_config = UserConfigStore(store)

    bank_client = bank_client or TrueLayerClient(
        StoredTokenProvider(user_config),
        base_url=settings.truelayer_data_url,
        timeout=settings.request_timeout_seconds,
    )
    trading_client = trading_client or Trading212Client(
        user_config,
        export_url=settings.trading212_export_url,
        balance_url=settings.trading212_balance_url,
        timeout=settings.request_timeout_seconds,
        export_wait_seconds=settings.export_wait_seconds,
        poll_attempts=settings.export_poll_attempts,
        poll_interval_seconds=settings.export_poll_interval_seconds,
    )

    return LedgerService(
        user_config=user_config,
        accounts=ProviderRefreshCoordinator(
            store, stream, bank_client, TransactionSource.BANK_ACCOUNT, settings, user_config
        ),
        cards=ProviderRefreshCoordinator(
            store, stream, bank_client, TransactionSource.CREDIT_CARD, settings, user_config
        ),
        trading=TradingRefreshCoordinator(store, stream, trading_client, settings, user_config),
        category_repository=StoredCategoryRepository(store),
        stream=stream,
    )
