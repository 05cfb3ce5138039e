"""
Per-category spending summaries.

`calculate_category_stats` is the plain breakdown. `monthly_category_stats`
layers the monthly reimbursement adjustment on top of it.
"""
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from unified_ledger.domain.categories import UNCATEGORIZED
from unified_ledger.domain.enums import TransactionType
from unified_ledger.domain.models import CategoryRule, Transaction
from unified_ledger.services.models import CategoryStats, DateRange


def _spend(transactions: Iterable[Transaction]) -> Decimal:
    """Sum of absolute values of negative amounts; credits are ignored."""
    return sum((abs(t.amount) for t in transactions if t.amount < 0), Decimal("0"))


def calculate_category_stats(
    transactions: List[Transaction],
    rules: Optional[List[CategoryRule]] = None,
) -> List[CategoryStats]:
    """
    Group categorized transactions and summarise spend per category.

    Args:
        transactions: Already categorized transactions
        rules: Rules used to attach the owning rule (color/icon) by name

    Returns:
        Stats sorted by total spend, highest first. Each group's
        transactions are sorted newest first.
    """
    rules_by_name: Dict[str, CategoryRule] = {}
    for rule in rules or []:
        rules_by_name.setdefault(rule.name, rule)

    groups: Dict[str, List[Transaction]] = {}
    for tx in transactions:
        groups.setdefault(tx.category or UNCATEGORIZED, []).append(tx)

    total_spending = _spend(transactions)

    stats = []
    for name, txs in groups.items():
        category_spending = _spend(txs)
        percentage = (
            float(category_spending / total_spending * 100) if total_spending > 0 else 0.0
        )
        stats.append(CategoryStats(
            category_name=name,
            total_amount=category_spending,
            percentage=percentage,
            transaction_count=len(txs),
            transactions=sorted(txs, key=lambda t: t.timestamp, reverse=True),
            rule=rules_by_name.get(name),
        ))

    return sorted(stats, key=lambda s: s.total_amount, reverse=True)


def reimbursements_by_category(transactions: Iterable[Transaction]) -> Dict[str, Decimal]:
    """
    Credits treated as money paid back into a spending category.

    Positive, non-interest transactions with a real category count; credits
    left Uncategorized have nothing to offset.
    """
    totals: Dict[str, Decimal] = {}
    for tx in transactions:
        if tx.amount <= 0 or tx.type == TransactionType.INTEREST_CASHBACK:
            continue
        if not tx.category or tx.category == UNCATEGORIZED:
            continue
        totals[tx.category] = totals.get(tx.category, Decimal("0")) + tx.amount
    return totals


def monthly_category_stats(
    transactions: List[Transaction],
    period: DateRange,
    rules: Optional[List[CategoryRule]] = None,
) -> List[CategoryStats]:
    """
    Category breakdown for one month, net of reimbursements.

    Args:
        transactions: Categorized, mirror-filtered transactions
        period: The month window
        rules: Rules for color/icon lookup

    Returns:
        Stats whose adjusted total is still above zero; categories fully
        reimbursed are dropped rather than shown as negative.
    """
    in_month = [t for t in transactions if period.contains(t.timestamp)]
    spending = [t for t in in_month if t.amount < 0]
    if not spending:
        return []

    reimbursed = reimbursements_by_category(in_month)

    adjusted = []
    for stat in calculate_category_stats(spending, rules):
        stat.total_amount = stat.total_amount - reimbursed.get(stat.category_name, Decimal("0"))
        if stat.total_amount > 0:
            adjusted.append(stat)
    return adjusted


def months_since_latest(transactions: Iterable[Transaction], now: datetime) -> Optional[int]:
    """
    How many months back the most recent transaction is.

    Used to open the category view on the latest month that has data when
    the current month is still empty. None when there are no transactions.
    """
    latest = max((t.timestamp for t in transactions), default=None)
    if latest is None:
        return None
    return (now.year - latest.year) * 12 + (now.month - latest.month)
