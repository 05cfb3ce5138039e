"""Period spending and income over the mirror-filtered transaction set."""
from decimal import Decimal
from typing import Iterable

from unified_ledger.domain.categories import is_reimbursement
from unified_ledger.domain.enums import TransactionSource, TransactionType
from unified_ledger.domain.models import Transaction
from unified_ledger.services.models import DateRange


def calculate_spending(transactions: Iterable[Transaction], period: DateRange) -> Decimal:
    """
    Spending inside a window.

    Every negative, non-DEPOSIT amount counts as spend; amounts categorized
    as reimbursement in the same window are then credited back.

    Returns:
        Total spend minus reimbursements (may be negative if reimbursements
        exceed spend)
    """
    total = Decimal("0")
    reimbursements = Decimal("0")

    for tx in transactions:
        if not period.contains(tx.timestamp):
            continue

        if tx.amount < 0 and tx.type != TransactionType.DEPOSIT:
            total += abs(tx.amount)

        if is_reimbursement(tx.category):
            reimbursements += tx.amount

    return total - reimbursements


def calculate_income(transactions: Iterable[Transaction], period: DateRange) -> Decimal:
    """
    Income inside a window.

    Bank-account credits count in full unless they are reimbursements (those
    are left out entirely). Interest/cashback counts from any other source.
    Other positive amounts, such as trading deposits, are not income.
    """
    total = Decimal("0")

    for tx in transactions:
        if not period.contains(tx.timestamp):
            continue
        if tx.amount <= 0:
            continue

        if tx.source == TransactionSource.BANK_ACCOUNT:
            if is_reimbursement(tx.category):
                continue
            total += tx.amount
        elif tx.type == TransactionType.INTEREST_CASHBACK:
            total += tx.amount

    return total
