"""Generated demo ledger: about four months of plausible activity."""
import asyncio
import random
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from unified_ledger.domain.dates import to_iso, utcnow
from unified_ledger.domain.enums import TransactionSource, TransactionType
from unified_ledger.domain.models import Transaction
from unified_ledger.reconciliation.merge import sort_by_date
from unified_ledger.repositories.base import CategoryRepository
from unified_ledger.repositories.demo_category_repository import DemoCategoryRepository
from unified_ledger.services.base import FinancialDataProvider
from unified_ledger.services.models import CombinedFinancialData

DEMO_DAYS = 120
SALARY_EVERY_DAYS = 14
STARTING_OFFSET = Decimal("3100")

DEMO_MERCHANTS = [
    "Tesco Stores",
    "Sainsbury's",
    "Pret A Manger",
    "Deliveroo",
    "TfL Travel",
    "Uber Trip",
    "Amazon Marketplace",
    "Boots",
    "Costa Coffee",
    "Octopus Energy",
]


def _money(rng: random.Random, low: float, high: float) -> Decimal:
    return Decimal(str(round(rng.uniform(low, high), 2)))


def generate_demo_transactions(
    seed: Optional[int] = None,
    now: Optional[datetime] = None,
    days: int = DEMO_DAYS,
) -> List[Transaction]:
    """
    Build demo transactions for the last `days` days.

    Salary lands every 14 days, cards see 0-2 spends a day, trading has
    occasional gains/losses and there is a small chance of weekly cashback.
    The same seed and `now` always give the same list.
    """
    rng = random.Random(seed)
    now = now or utcnow()
    txs = []

    for i in range(days, -1, -1):
        day = to_iso(now - timedelta(days=i))

        if i % SALARY_EVERY_DAYS == 0:
            txs.append(Transaction(
                type=TransactionType.DEPOSIT,
                amount=_money(rng, 1800, 2400),
                reference=f"PAY_{i}",
                date_time=day,
                source=TransactionSource.BANK_ACCOUNT,
                description="ACME LTD SALARY",
            ))

        for j in range(rng.randint(0, 2)):
            txs.append(Transaction(
                type=TransactionType.WITHDRAW,
                amount=-_money(rng, 10, 120),
                reference=f"CARD_SPEND_{i}_{j}",
                date_time=day,
                source=TransactionSource.CREDIT_CARD,
                description=rng.choice(DEMO_MERCHANTS),
            ))

        if rng.random() < 0.15:
            profit = _money(rng, -80, 150)
            txs.append(Transaction(
                type=TransactionType.DEPOSIT if profit >= 0 else TransactionType.WITHDRAW,
                amount=profit,
                reference=f"TRADE_{i}",
                date_time=day,
                source=TransactionSource.TRADING212,
                description="Trading result",
            ))

        if i % 7 == 0 and rng.random() < 0.4:
            txs.append(Transaction(
                type=TransactionType.INTEREST_CASHBACK,
                amount=_money(rng, 1, 10),
                reference=f"CASHBACK_{i}",
                date_time=day,
                source=TransactionSource.TRADING212,
                description="Cashback",
            ))

    return sort_by_date(txs)


class DemoDataProvider(FinancialDataProvider):
    """Data provider backed by generated data and read-only demo categories."""

    is_demo = True

    def __init__(
        self,
        seed: Optional[int] = None,
        category_repository: Optional[CategoryRepository] = None,
        delay_seconds: float = 0,
    ):
        self.seed = seed
        self.category_repository = category_repository or DemoCategoryRepository()
        self.delay_seconds = delay_seconds
        self.stream = None

    async def get_combined_data(self, now: Optional[datetime] = None) -> CombinedFinancialData:
        transactions = generate_demo_transactions(self.seed, now)
        balance = sum((t.amount for t in transactions), Decimal("0")) + STARTING_OFFSET
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        return CombinedFinancialData(transactions=transactions, total_balance=balance)
