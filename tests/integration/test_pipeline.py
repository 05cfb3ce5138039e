import asyncio
import pytest
from datetime import datetime, timezone
from decimal import Decimal

from conftest import FakeBankClient, FakeTradingClient
from unified_ledger.database.connection import DatabaseConfig, DatabaseManager
from unified_ledger.services.data_provider import build_data_provider
from unified_ledger.services.report_service import ReportService
from unified_ledger.storage.sqlite_store import SQLiteKeyValueStore
from unified_ledger.sync.user_config import UserConfigStore

BANK_CONNECTION = {
    "access_token": "tok",
    "Accounts": [{"account_id": "acc-1"}],
    "Cards": [{"account_id": "card-1"}],
}

TRADING_CSV = """Action,Time,ID,Total,Merchant name
Deposit,2024-03-02 11:00:00,dep-1,500.00,
Interest on cash,2024-03-05 00:10:00,int-1,0.42,
"""


@pytest.fixture
def sqlite_store(tmp_path):
    db_manager = DatabaseManager(DatabaseConfig(tmp_path / "ledger.db"))
    yield SQLiteKeyValueStore(db_manager)
    db_manager.close()


@pytest.fixture
def bank_client() -> FakeBankClient:
    return FakeBankClient(
        accounts=[{"account_id": "acc-1", "display_name": "Current"}],
        cards=[{"account_id": "card-1", "display_name": "Credit"}],
        balances={"acc-1": Decimal("1500"), "card-1": Decimal("80")},
        transactions={
            "acc-1": [
                {"transaction_id": "pay", "timestamp": "2024-03-01T09:00:00Z", "description": "ACME LTD SALARY", "amount": 2000},
                {"transaction_id": "to-t212", "timestamp": "2024-03-02T09:00:00Z", "description": "Trading212 top up", "amount": -500},
                {"transaction_id": "tesco-bank", "timestamp": "2024-03-10T09:00:00Z", "description": "TESCO STORES", "amount": -20},
            ],
            "card-1": [
                {"transaction_id": "tesco-card", "timestamp": "2024-03-10T17:00:00Z", "description": "TESCO STORES", "amount": -20},
                {"transaction_id": "pret", "timestamp": "2024-03-11T08:00:00Z", "description": "PRET A MANGER", "amount": 4.5},
            ],
        },
    )


@pytest.mark.integration
class TestLedgerPipeline:
    """Refresh every source into SQLite, then read and report on the result."""

    def test_refresh_then_report(self, sqlite_store, settings, bank_client):
        # Arrange
        user_config = UserConfigStore(sqlite_store)
        asyncio.run(user_config.update(trueLayerAccount=BANK_CONNECTION))
        asyncio.run(user_config.connect_trading("key", "secret"))
        trading_client = FakeTradingClient(TRADING_CSV, balance="250")
        provider = build_data_provider(settings, sqlite_store, bank_client=bank_client, trading_client=trading_client)
        asyncio.run(provider.category_repository.create_rule("Groceries", ["tesco"]))
        asyncio.run(provider.category_repository.create_rule("Eating Out", ["pret"]))

        async def first_read():
            subscription = provider.stream.subscribe()
            data = await provider.get_combined_data()
            await provider.wait_for_refreshes()
            subscription.close()
            statuses = [e.payload for e in [event async for event in subscription] if e.type == "status"]
            return data, statuses

        # Act
        served, statuses = asyncio.run(first_read())
        data = asyncio.run(provider.get_combined_data())

        # Assert: the stale read serves the empty caches, refreshes land afterwards
        assert served.transactions == []
        assert {(s["source"], s["state"]) for s in statuses} == {
            (source, state)
            for source in ("bank-account", "credit-card", "trading212")
            for state in ("pending", "ready")
        }

        assert [t.reference for t in data.transactions] == [
            "pay", "to-t212", "dep-1", "int-1", "tesco-bank", "pret",
        ]
        assert data.total_balance == Decimal("1670")

        # Assert: reporting hides the transfer and categorizes the rest
        report = ReportService(provider.category_repository, settings)
        ledger = asyncio.run(report.prepare(data.transactions))
        now = datetime(2024, 3, 20, tzinfo=timezone.utc)

        assert ledger.mirrored_removed == 2
        categories = report.category_report(ledger, now=now)
        assert [(s.category_name, s.total_amount) for s in categories.stats] == [
            ("Groceries", Decimal("20")),
            ("Eating Out", Decimal("4.5")),
        ]

        activity = report.activity_report(ledger, "month", 0, now)
        assert activity.spending == Decimal("24.5")
        assert activity.income == Decimal("2000.42")

    def test_second_refresh_keeps_history(self, sqlite_store, settings, bank_client):
        # Arrange
        user_config = UserConfigStore(sqlite_store)
        asyncio.run(user_config.update(trueLayerAccount=BANK_CONNECTION))
        provider = build_data_provider(settings, sqlite_store, bank_client=bank_client, trading_client=FakeTradingClient())

        async def sync():
            await user_config.request_resync()
            await provider.get_combined_data()
            await provider.wait_for_refreshes()

        asyncio.run(sync())
        bank_client.transactions["acc-1"] = [
            {"transaction_id": "new", "timestamp": "2024-03-12T09:00:00Z", "description": "RENT", "amount": -900},
        ]

        # Act
        asyncio.run(sync())
        data = asyncio.run(provider.get_combined_data())

        # Assert
        refs = [t.reference for t in data.transactions]
        assert {"pay", "to-t212", "tesco-bank", "new"} <= set(refs)
        assert len(bank_client.calls) == 4
