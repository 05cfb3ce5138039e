"""Trailing income series and the salary / interest / other split."""
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from unified_ledger.domain.categories import is_reimbursement
from unified_ledger.domain.dates import ensure_utc, utcnow
from unified_ledger.domain.enums import TransactionSource, TransactionType
from unified_ledger.domain.models import Transaction
from unified_ledger.services.models import IncomeBreakdown, MonthlyIncome
from unified_ledger.stats.activity import calculate_income
from unified_ledger.stats.periods import month_range

SALARY_KEYWORDS = ("payroll", "salary")


def percentage_change(current: Decimal, previous: Decimal) -> float:
    """Change versus the previous value; 0.0 when there is nothing to compare to."""
    if previous <= 0:
        return 0.0
    return float((current - previous) / previous * 100)


def monthly_income_series(
    transactions: List[Transaction],
    months: int = 6,
    now: Optional[datetime] = None,
) -> List[MonthlyIncome]:
    """
    Income for the current month and the `months - 1` before it.

    Args:
        transactions: Mirror-filtered, categorized transactions
        months: Length of the series
        now: Reference time (defaults to the current UTC time)

    Returns:
        Newest month first, each with its change versus the month before
    """
    now = ensure_utc(now or utcnow())
    series = []

    for i in range(months):
        period = month_range(-i, now)
        income = calculate_income(transactions, period)
        previous = calculate_income(transactions, month_range(-(i + 1), now))

        series.append(MonthlyIncome(
            month=period.start.strftime("%B %Y"),
            year=period.start.year,
            income=income,
            change=percentage_change(income, previous),
            transactions=[
                t for t in transactions
                if period.contains(t.timestamp) and t.amount > 0
            ],
        ))

    return series


def _is_salary(tx: Transaction) -> bool:
    description = (tx.description or "").lower()
    return any(keyword in description for keyword in SALARY_KEYWORDS)


def income_breakdown(transactions: Iterable[Transaction]) -> IncomeBreakdown:
    """
    Split incoming money into salary, interest/cashback and other.

    Bank-account credits mentioning payroll or salary are salary; the
    remaining bank credits are "other" unless they are reimbursements.
    Interest/cashback is counted separately with its payment count.
    """
    breakdown = IncomeBreakdown()

    for tx in transactions:
        if tx.source == TransactionSource.BANK_ACCOUNT and tx.amount > 0:
            if _is_salary(tx):
                breakdown.salary += tx.amount
                breakdown.salary_txs.append(tx)
            elif not is_reimbursement(tx.category):
                breakdown.other += tx.amount
                breakdown.other_txs.append(tx)
        elif tx.type == TransactionType.INTEREST_CASHBACK:
            breakdown.interest_total += tx.amount
            breakdown.interest_count += 1

    return breakdown
