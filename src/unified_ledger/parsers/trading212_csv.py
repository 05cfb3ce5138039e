import io
import logging
from typing import List, Optional

import pandas as pd

from unified_ledger.domain.dates import EPOCH, parse_datetime, to_iso
from unified_ledger.domain.enums import TransactionSource, TransactionType
from unified_ledger.domain.models import Transaction, to_decimal
from unified_ledger.parsers.base import TransactionParser

logger = logging.getLogger(__name__)


def normalise_action(action: str) -> TransactionType:
    """Map a Trading212 'Action' column value to a transaction type."""
    a = action.lower().strip()
    if "deposit" in a:
        return TransactionType.DEPOSIT
    if "withdrawal" in a or "debit" in a:
        return TransactionType.WITHDRAW
    if "interest" in a or "cashback" in a:
        return TransactionType.INTEREST_CASHBACK
    return TransactionType.TRANSFER


class Trading212CsvParser(TransactionParser):
    """
    Parser for Trading212 history export CSVs.

    Handles the export format with:
    - One row per account action (deposits, withdrawals, interest, trades)
    - 'Total' amounts that may carry thousands separators
    - An optional 'Merchant name' column for card spending
    """

    source = TransactionSource.TRADING212

    ACTION_COL = "Action"
    TIME_COL = "Time"
    ID_COL = "ID"
    TOTAL_COL = "Total"
    MERCHANT_COL = "Merchant name"

    REQUIRED_COLUMNS = [ACTION_COL, TIME_COL, ID_COL]

    def _read(self, csv_text: str) -> pd.DataFrame:
        try:
            return pd.read_csv(
                io.StringIO(csv_text),
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=True,
            )
        except pd.errors.EmptyDataError:
            return pd.DataFrame(columns=self.REQUIRED_COLUMNS)
        except pd.errors.ParserError as e:
            raise ValueError(f"Failed to read Trading212 CSV: {e}") from e

    def validate(self, payload: str) -> None:
        if not isinstance(payload, str):
            raise ValueError(f"Expected CSV text, got {type(payload).__name__}")

        df = self._read(payload)
        missing = [col for col in self.REQUIRED_COLUMNS if col not in df.columns]
        if missing and len(df.columns) > 0:
            raise ValueError(f"CSV is missing required columns: {', '.join(missing)}")

    def parse(self, payload: str) -> List[Transaction]:
        """
        Parse a Trading212 export.

        Rows without an Action, ID or Time are skipped, as are rows whose
        time or amount can't be read.
        """
        self.validate(payload)
        df = self._read(payload)

        transactions = []
        for _, row in df.iterrows():
            try:
                transaction = self._parse_row(row)
            except ValueError as e:
                logger.warning("Skipping Trading212 row: %s", e)
                continue
            if transaction:
                transactions.append(transaction)

        return transactions

    def _cell(self, row: pd.Series, column: str) -> str:
        value = row.get(column, "")
        if value is None or pd.isna(value):
            return ""
        return str(value).strip()

    def _parse_row(self, row: pd.Series) -> Optional[Transaction]:
        action = self._cell(row, self.ACTION_COL)
        reference = self._cell(row, self.ID_COL)
        time = self._cell(row, self.TIME_COL)

        if not action or not reference or not time:
            return None

        moment = parse_datetime(time)
        if moment == EPOCH:
            raise ValueError(f"unreadable time {time!r} for {reference}")

        total = self._cell(row, self.TOTAL_COL)
        amount = to_decimal(total) if total else to_decimal(0)

        return Transaction(
            type=normalise_action(action),
            amount=amount,
            reference=reference,
            date_time=to_iso(moment),
            source=self.source,
            description=self._cell(row, self.MERCHANT_COL),
        )
