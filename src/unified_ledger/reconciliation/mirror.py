"""
Removal of mirrored transfers between the bank account and the trading platform.

Moving money from the bank to Trading212 shows up twice: a withdrawal on the
bank side and a deposit on the trading side. Both legs are dropped so the
transfer is not counted as spend or income. Matching is first-match in list
order, so results depend on the input order and nothing else.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Callable, Iterable, List, Optional, Set, Tuple

from unified_ledger.domain.enums import TransactionSource, TransactionType
from unified_ledger.domain.models import Transaction

logger = logging.getLogger(__name__)

_Key = Tuple[TransactionSource, str]


@dataclass(frozen=True)
class MirrorTolerance:
    """How close two legs must be to count as the same transfer (both strict)"""
    amount: Decimal = Decimal("1.0")
    window: timedelta = timedelta(days=3)


DEFAULT_TOLERANCE = MirrorTolerance()


def _key(tx: Transaction) -> _Key:
    # References are only unique within one source.
    return (tx.source, tx.reference)


def within_tolerance(
    a: Transaction,
    b: Transaction,
    tolerance: MirrorTolerance = DEFAULT_TOLERANCE,
) -> bool:
    """Absolute amounts and timestamps are both inside the tolerance window."""
    amount_gap = abs(abs(a.amount) - abs(b.amount))
    time_gap = abs(a.timestamp - b.timestamp)
    return amount_gap < tolerance.amount and time_gap < tolerance.window


def is_bank_to_trading_mirror(
    bank_tx: Transaction,
    trading_tx: Transaction,
    tolerance: MirrorTolerance = DEFAULT_TOLERANCE,
) -> bool:
    """Bank withdrawal paired with a Trading212 deposit."""
    return (
        bank_tx.source == TransactionSource.BANK_ACCOUNT
        and bank_tx.amount < 0
        and trading_tx.source == TransactionSource.TRADING212
        and trading_tx.amount > 0
        and within_tolerance(bank_tx, trading_tx, tolerance)
    )


def is_trading_to_bank_mirror(
    trading_tx: Transaction,
    bank_tx: Transaction,
    tolerance: MirrorTolerance = DEFAULT_TOLERANCE,
) -> bool:
    """Trading212 WITHDRAW paired with a bank DEPOSIT."""
    return (
        trading_tx.source == TransactionSource.TRADING212
        and trading_tx.amount < 0
        and trading_tx.type == TransactionType.WITHDRAW
        and bank_tx.source == TransactionSource.BANK_ACCOUNT
        and bank_tx.amount > 0
        and bank_tx.type == TransactionType.DEPOSIT
        and within_tolerance(trading_tx, bank_tx, tolerance)
    )


def _first_match(
    origin: Transaction,
    candidates: List[Transaction],
    removed: Set[_Key],
    predicate: Callable[[Transaction, Transaction], bool],
) -> Optional[Transaction]:
    for candidate in candidates:
        if _key(candidate) in removed:
            continue
        if predicate(origin, candidate):
            return candidate
    return None


def _run_pass(
    txs: List[Transaction],
    is_origin: Callable[[Transaction], bool],
    predicate: Callable[[Transaction, Transaction], bool],
    removed: Set[_Key],
) -> int:
    pairs = 0
    for origin in [t for t in txs if is_origin(t)]:
        if _key(origin) in removed:
            continue
        match = _first_match(origin, txs, removed, predicate)
        if match is not None:
            removed.add(_key(origin))
            removed.add(_key(match))
            pairs += 1
            logger.debug("Mirror pair removed: %r <-> %r", origin, match)
    return pairs


def filter_mirrored_transactions(
    transactions: Iterable[Transaction],
    tolerance: MirrorTolerance = DEFAULT_TOLERANCE,
) -> List[Transaction]:
    """
    Drop both legs of every bank <-> Trading212 transfer.

    Pass 1 pairs bank withdrawals with trading deposits, pass 2 pairs trading
    withdrawals with bank deposits. Anything removed in pass 1 is invisible
    to pass 2.

    Args:
        transactions: Combined transactions from all sources
        tolerance: Amount/time window for a match

    Returns:
        The input minus mirrored pairs, in the original relative order
    """
    txs = list(transactions)
    removed: Set[_Key] = set()

    outbound = _run_pass(
        txs,
        lambda t: t.source == TransactionSource.BANK_ACCOUNT and t.amount < 0,
        lambda origin, c: is_bank_to_trading_mirror(origin, c, tolerance),
        removed,
    )
    inbound = _run_pass(
        txs,
        lambda t: (
            t.source == TransactionSource.TRADING212
            and t.amount < 0
            and t.type == TransactionType.WITHDRAW
        ),
        lambda origin, c: is_trading_to_bank_mirror(origin, c, tolerance),
        removed,
    )

    if outbound or inbound:
        logger.debug(
            "Removed %d bank->trading and %d trading->bank mirror pairs",
            outbound, inbound,
        )

    return [t for t in txs if _key(t) not in removed]
