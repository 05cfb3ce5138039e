import logging
from typing import Any, Dict, List, Optional

from unified_ledger.domain.dates import EPOCH, parse_datetime, to_iso
from unified_ledger.domain.enums import TransactionSource, TransactionType
from unified_ledger.domain.models import Transaction, to_decimal
from unified_ledger.parsers.base import TransactionParser

logger = logging.getLogger(__name__)


class ProviderTransactionParser(TransactionParser):
    """
    Parser for the banking provider's transaction JSON.

    Each record looks like:
        {"transaction_id": "...", "timestamp": "...", "description": "...",
         "merchant_name": "...", "amount": -12.5, "currency": "GBP"}

    The sign of the amount decides DEPOSIT vs WITHDRAW.
    """

    source: TransactionSource = TransactionSource.BANK_ACCOUNT

    def validate(self, payload: Any) -> None:
        if not isinstance(payload, list):
            raise ValueError(f"Expected a list of records, got {type(payload).__name__}")

    def parse(self, payload: List[Dict[str, Any]]) -> List[Transaction]:
        self.validate(payload)

        transactions = []
        for record in payload:
            try:
                transaction = self._parse_record(record)
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning("Skipping %s record: %s", self.source.value, e)
                continue
            if transaction:
                transactions.append(transaction)
        return transactions

    def _signed_amount(self, record: Dict[str, Any]):
        return to_decimal(record.get("amount"))

    def _parse_record(self, record: Dict[str, Any]) -> Optional[Transaction]:
        reference = record.get("transaction_id") or record.get("id")
        if not reference:
            return None

        moment = parse_datetime(record.get("timestamp"))
        if moment == EPOCH:
            raise ValueError(f"unreadable timestamp for {reference}")

        amount = self._signed_amount(record)
        description = record.get("description") or record.get("merchant_name") or ""

        return Transaction(
            type=TransactionType.DEPOSIT if amount > 0 else TransactionType.WITHDRAW,
            amount=amount,
            reference=str(reference),
            date_time=to_iso(moment),
            source=self.source,
            description=str(description),
        )


class AccountTransactionParser(ProviderTransactionParser):
    """Bank-account records keep the provider's sign."""
    source = TransactionSource.BANK_ACCOUNT


class CardTransactionParser(ProviderTransactionParser):
    """Card records are always spending, whatever sign the provider used."""
    source = TransactionSource.CREDIT_CARD

    def _signed_amount(self, record: Dict[str, Any]):
        return -abs(to_decimal(record.get("amount")))
