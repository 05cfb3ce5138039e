from decimal import Decimal
from typing import Dict, Iterable, List

from unified_ledger.domain.enums import TransactionType
from unified_ledger.domain.models import Transaction
from unified_ledger.services.models import TransactionRow


def _row_for(tx: Transaction) -> TransactionRow:
    moment = tx.timestamp
    return TransactionRow(
        uid=f"{tx.date_time}|{tx.type.value}|{tx.amount}",
        day_key=moment.strftime("%Y-%m-%d"),
        day_label=f"{moment.day} {moment.strftime('%b %Y')}",
        transaction=tx,
        amount=tx.amount,
        description=tx.description,
    )


def prepare_transaction_rows(transactions: Iterable[Transaction]) -> List[TransactionRow]:
    """
    Turn transactions into display rows.

    Interest/cashback payments on the same calendar day collapse into one
    synthetic row that sums them; those grouped rows come after the regular
    ones, in the order their day was first seen.
    """
    rows: List[TransactionRow] = []
    interest_by_day: Dict[str, List[TransactionRow]] = {}

    for tx in transactions:
        row = _row_for(tx)
        if tx.type == TransactionType.INTEREST_CASHBACK:
            interest_by_day.setdefault(row.day_key, []).append(row)
        else:
            rows.append(row)

    for day_key, interests in interest_by_day.items():
        first = interests[0]
        rows.append(TransactionRow(
            uid=f"{day_key}-interest-grouped",
            day_key=day_key,
            day_label=first.day_label,
            transaction=first.transaction,
            amount=sum((r.amount for r in interests), Decimal("0")),
            description=f"Interest ({len(interests)} payments)",
            payment_count=len(interests),
        ))

    return rows
