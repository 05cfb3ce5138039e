"""
Merging of incrementally fetched transaction batches for a single source.

Two conflict policies exist because the sources behave differently:

- OVERWRITE: the incoming record replaces the cached one with the same
  reference. Used for the banking provider (accounts and cards), whose
  pending entries are corrected by later fetches.
- KEEP_EXISTING: the cached record wins and only unseen references are
  appended. Used for the trading export, whose history is append-only.
"""
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

from unified_ledger.domain.dates import parse_datetime
from unified_ledger.domain.enums import TransactionSource

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MergePolicy(Enum):
    """Conflict resolution when a reference exists in both lists"""
    OVERWRITE = "overwrite"
    KEEP_EXISTING = "keep-existing"


SOURCE_MERGE_POLICIES: Dict[TransactionSource, MergePolicy] = {
    TransactionSource.BANK_ACCOUNT: MergePolicy.OVERWRITE,
    TransactionSource.CREDIT_CARD: MergePolicy.OVERWRITE,
    TransactionSource.TRADING212: MergePolicy.KEEP_EXISTING,
}


def policy_for(source: TransactionSource) -> MergePolicy:
    return SOURCE_MERGE_POLICIES[source]


def _field(item: Any, *names: str) -> Any:
    for name in names:
        if isinstance(item, dict):
            value = item.get(name)
        else:
            value = getattr(item, name, None)
        if value not in (None, ""):
            return value
    return None


def default_key(item: Any) -> Optional[str]:
    """Reference of a Transaction, or `reference`/`id` of a raw record."""
    value = _field(item, "reference", "id")
    return str(value) if value is not None else None


def default_date(item: Any) -> datetime:
    """dateTime, falling back to timestamp, falling back to the epoch."""
    return parse_datetime(_field(item, "date_time", "dateTime", "timestamp"))


def sort_by_date(
    items: Iterable[T],
    date_fn: Callable[[T], datetime] = default_date,
) -> List[T]:
    """Stable ascending sort; equal timestamps keep their input order."""
    return sorted(items, key=date_fn)


def merge_transactions(
    existing: Iterable[T],
    incoming: Iterable[T],
    policy: MergePolicy = MergePolicy.OVERWRITE,
    key_fn: Callable[[T], Optional[str]] = default_key,
    date_fn: Callable[[T], datetime] = default_date,
) -> List[T]:
    """
    Merge a fresh batch into the cached list of one source.

    Args:
        existing: Cached transactions (any order)
        incoming: Newly fetched transactions (any order)
        policy: What to do when a reference is present in both
        key_fn: Extracts the dedup key; records without one are skipped
        date_fn: Extracts the sort timestamp

    Returns:
        New list, unique by key, sorted ascending by date. Inputs are untouched.

    Example:
        ```
        merged = merge_transactions(cached, fetched, MergePolicy.KEEP_EXISTING)
        ```
    """
    merged: Dict[str, T] = {}

    for tx in existing:
        key = key_fn(tx)
        if key is None:
            logger.warning("Skipping cached record without a reference: %r", tx)
            continue
        merged[key] = tx

    for tx in incoming:
        key = key_fn(tx)
        if key is None:
            logger.warning("Skipping fetched record without a reference: %r", tx)
            continue
        if policy is MergePolicy.KEEP_EXISTING and key in merged:
            continue
        merged[key] = tx

    return sort_by_date(merged.values(), date_fn)
