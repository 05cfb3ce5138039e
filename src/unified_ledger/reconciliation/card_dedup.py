"""
Same-day duplicate suppression between card and bank-account legs.

This runs at the combined-read boundary and is deliberately separate from the
mirror filter: it is coarser (calendar day plus amount to the penny) and only
looks at cards against bank accounts, never at the trading platform.
"""
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Set, Tuple

from unified_ledger.domain.enums import TransactionSource
from unified_ledger.domain.models import Transaction

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")


def _day_amount_key(tx: Transaction) -> Tuple[str, Decimal]:
    day = tx.timestamp.date().isoformat()
    amount = abs(tx.amount).quantize(_CENT, rounding=ROUND_HALF_UP)
    return day, amount


def filter_card_bank_duplicates(transactions: Iterable[Transaction]) -> List[Transaction]:
    """
    Drop card withdrawals that also appear as a bank withdrawal that day.

    Args:
        transactions: Combined transactions

    Returns:
        Transactions without the duplicated card legs, order preserved
    """
    txs = list(transactions)
    bank_withdrawals: Set[Tuple[str, Decimal]] = {
        _day_amount_key(t)
        for t in txs
        if t.source == TransactionSource.BANK_ACCOUNT and t.amount < 0
    }

    kept = []
    dropped = 0
    for tx in txs:
        if (
            tx.source == TransactionSource.CREDIT_CARD
            and tx.amount < 0
            and _day_amount_key(tx) in bank_withdrawals
        ):
            dropped += 1
            continue
        kept.append(tx)

    if dropped:
        logger.debug("Dropped %d card withdrawals already present on the bank account", dropped)
    return kept
