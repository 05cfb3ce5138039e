import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from unified_ledger.clients.base import BankDataClient, TradingClient
from unified_ledger.config.settings import AppSettings
from unified_ledger.domain.dates import to_iso
from unified_ledger.domain.enums import TransactionSource, TransactionType
from unified_ledger.domain.models import CategoryRule, Transaction
from unified_ledger.parsers.factory import ParserFactory
from unified_ledger.storage.memory_store import InMemoryKeyValueStore
from unified_ledger.sync.stream import FinanceStream
from unified_ledger.sync.user_config import UserConfigStore


def make_tx(
    source: str,
    amount: str,
    date_time: str,
    description: str = "",
    reference: Optional[str] = None,
    type: Optional[TransactionType] = None,
    category: Optional[str] = None,
) -> Transaction:
    """Build a transaction with the type inferred from the sign unless given."""
    value = Decimal(amount)
    if type is None:
        type = TransactionType.DEPOSIT if value > 0 else TransactionType.WITHDRAW
    return Transaction(
        type=type,
        amount=value,
        reference=reference or f"{source}-{date_time}-{amount}",
        date_time=date_time,
        source=TransactionSource(source),
        description=description,
        category=category,
    )


def make_rule(name: str, keywords: List[str], rule_id: Optional[str] = None) -> CategoryRule:
    return CategoryRule(id=rule_id or name.lower(), name=name, keywords=keywords)


class FakeBankClient(BankDataClient):
    """In-memory banking provider; records the windows it was asked for."""

    def __init__(self, accounts=None, cards=None, balances=None, transactions=None):
        self.accounts = accounts or []
        self.cards = cards or []
        self.balances: Dict[str, Decimal] = balances or {}
        self.transactions: Dict[str, List[Dict[str, Any]]] = transactions or {}
        self.calls: List[tuple] = []
        self.error: Optional[Exception] = None

    async def list_accounts(self):
        if self.error:
            raise self.error
        return list(self.accounts)

    async def list_cards(self):
        if self.error:
            raise self.error
        return list(self.cards)

    async def get_account_balance(self, account_id):
        return self.balances.get(account_id)

    async def get_card_balance(self, card_id):
        return self.balances.get(card_id)

    async def get_account_transactions(self, account_id, date_from=None, date_to=None):
        self.calls.append((account_id, date_from, date_to))
        return [dict(r) for r in self.transactions.get(account_id, [])]

    async def get_card_transactions(self, card_id, date_from=None, date_to=None):
        self.calls.append((card_id, date_from, date_to))
        return [dict(r) for r in self.transactions.get(card_id, [])]


class FakeTradingClient(TradingClient):
    """Trading client whose export is a fixed CSV string."""

    def __init__(self, csv_text: str = "", balance: str = "0"):
        self.csv_text = csv_text
        self.balance = Decimal(balance)
        self.windows: List[tuple] = []
        self.error: Optional[Exception] = None

    async def create_export_job(self, date_from, date_to):
        return 1

    async def get_download_url(self, report_id):
        return "https://example.invalid/export.csv"

    async def download_csv(self, url):
        return self.csv_text

    async def get_balance(self):
        return self.balance

    async def fetch_export(self, date_from, date_to):
        self.windows.append((date_from, date_to))
        if self.error:
            raise self.error
        return self.csv_text


@pytest.fixture(autouse=True)
def parser_registry():
    """Load the bundled parsers for every test, starting from a clean registry."""
    ParserFactory._registry = {}
    ParserFactory._locked = False
    ParserFactory.load_parsers_from_config()
    yield
    ParserFactory._registry = {}
    ParserFactory._locked = False


@pytest.fixture
def now() -> datetime:
    return datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def stream() -> FinanceStream:
    return FinanceStream(keepalive_seconds=0.05)


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(export_wait_seconds=0, export_poll_interval_seconds=0)


@pytest.fixture
def user_config(store) -> UserConfigStore:
    return UserConfigStore(store)


@pytest.fixture
def stale_sync():
    """User config whose last sync was two hours ago."""
    return {
        "lastUpdated": to_iso(datetime.now(timezone.utc)),
        "data": {"lastSyncedAt": to_iso(datetime.now(timezone.utc) - timedelta(hours=2))},
    }
