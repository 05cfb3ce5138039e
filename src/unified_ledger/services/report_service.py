"""
Reporting pipeline over a combined read.

mirror filter -> categorize (one rule/override snapshot) -> stats
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from unified_ledger.categorization.categorizer import CategorizationEngine
from unified_ledger.config.settings import AppSettings
from unified_ledger.domain.dates import ensure_utc, utcnow
from unified_ledger.domain.models import CategoryRule, Transaction
from unified_ledger.reconciliation.mirror import MirrorTolerance, filter_mirrored_transactions
from unified_ledger.repositories.base import CategoryRepository
from unified_ledger.services.models import (
    CategoryStats,
    DateRange,
    IncomeBreakdown,
    MonthlyIncome,
    TransactionRow,
)
from unified_ledger.stats.activity import calculate_income, calculate_spending
from unified_ledger.stats.category_stats import monthly_category_stats, months_since_latest
from unified_ledger.stats.income import income_breakdown, monthly_income_series
from unified_ledger.stats.periods import (
    PeriodMode,
    format_range_label,
    get_date_range,
    month_range,
    shift_offset,
)
from unified_ledger.stats.rows import prepare_transaction_rows

logger = logging.getLogger(__name__)


@dataclass
class PreparedLedger:
    """Mirror-filtered, categorized transactions plus the rules used"""
    transactions: List[Transaction] = field(default_factory=list)
    rules: List[CategoryRule] = field(default_factory=list)
    mirrored_removed: int = 0


@dataclass
class CategoryReport:
    offset: int
    period: DateRange
    label: str
    stats: List[CategoryStats] = field(default_factory=list)

    @property
    def total_spend(self) -> Decimal:
        return sum((s.total_amount for s in self.stats), Decimal("0"))


@dataclass
class ActivityReport:
    mode: PeriodMode
    offset: int
    period: DateRange
    label: str
    spending: Decimal
    income: Decimal


@dataclass
class IncomeReport:
    series: List[MonthlyIncome] = field(default_factory=list)
    breakdown: IncomeBreakdown = field(default_factory=IncomeBreakdown)


class ReportService:
    """
    Turns raw combined transactions into the numbers the CLI shows.

    Usage:
        service = ReportService(repository)
        ledger = await service.prepare(data.transactions)
        report = service.category_report(ledger)
    """

    def __init__(
        self,
        category_repository: CategoryRepository,
        settings: Optional[AppSettings] = None,
    ):
        self.category_repository = category_repository
        self.settings = settings or AppSettings()

    @property
    def tolerance(self) -> MirrorTolerance:
        return MirrorTolerance(
            amount=Decimal(str(self.settings.mirror_amount_tolerance)),
            window=timedelta(hours=self.settings.mirror_window_hours),
        )

    async def prepare(self, transactions: List[Transaction]) -> PreparedLedger:
        """Drop mirrored transfers, then categorize with a single repository read."""
        filtered = filter_mirrored_transactions(transactions, self.tolerance)
        engine = await CategorizationEngine.from_repository(self.category_repository)
        removed = len(transactions) - len(filtered)
        if removed:
            logger.debug("Mirror filter removed %d transactions", removed)
        return PreparedLedger(
            transactions=engine.categorize_many(filtered),
            rules=engine.rules,
            mirrored_removed=removed,
        )

    def category_report(
        self,
        ledger: PreparedLedger,
        offset: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> CategoryReport:
        """
        Category breakdown of one month.

        With no offset, opens on the current month, or on the latest month
        with data when the current one is empty. Future offsets are clamped
        to the current month.
        """
        now = ensure_utc(now or utcnow())
        if offset is None:
            offset = self.default_month_offset(ledger.transactions, now)
        offset = shift_offset(0, offset)

        period = month_range(offset, now)
        return CategoryReport(
            offset=offset,
            period=period,
            label=format_range_label("month", period),
            stats=monthly_category_stats(ledger.transactions, period, ledger.rules),
        )

    @staticmethod
    def default_month_offset(transactions: List[Transaction], now: datetime) -> int:
        current = month_range(0, now)
        if any(current.contains(t.timestamp) for t in transactions):
            return 0
        months_back = months_since_latest(transactions, now)
        if months_back is None or months_back < 0:
            return 0
        return -months_back

    def activity_report(
        self,
        ledger: PreparedLedger,
        mode: PeriodMode = "month",
        offset: int = 0,
        now: Optional[datetime] = None,
    ) -> ActivityReport:
        offset = shift_offset(0, offset)
        period = get_date_range(mode, offset, now)
        return ActivityReport(
            mode=mode,
            offset=offset,
            period=period,
            label=format_range_label(mode, period),
            spending=calculate_spending(ledger.transactions, period),
            income=calculate_income(ledger.transactions, period),
        )

    def income_report(
        self,
        ledger: PreparedLedger,
        months: int = 6,
        now: Optional[datetime] = None,
    ) -> IncomeReport:
        """Trailing income series plus the breakdown of the current month."""
        series = monthly_income_series(ledger.transactions, months, now)
        current = month_range(0, now)
        in_month = [t for t in ledger.transactions if current.contains(t.timestamp)]
        return IncomeReport(series=series, breakdown=income_breakdown(in_month))

    def rows(self, ledger: PreparedLedger, period: Optional[DateRange] = None) -> List[TransactionRow]:
        transactions = ledger.transactions
        if period is not None:
            transactions = [t for t in transactions if period.contains(t.timestamp)]
        newest_first = sorted(transactions, key=lambda t: t.timestamp, reverse=True)
        return prepare_transaction_rows(newest_first)
