from abc import ABC, abstractmethod
from typing import Any, List

from unified_ledger.domain.enums import TransactionSource
from unified_ledger.domain.models import Transaction


class TransactionParser(ABC):
    """
    Abstract base class for all provider payload parsers.

    This implements the Strategy pattern - each source gets its own
    concrete parser that turns the provider's raw payload into canonical
    transactions.
    """

    source: TransactionSource

    @abstractmethod
    def parse(self, payload: Any) -> List[Transaction]:
        """
        Parse a provider payload into transactions.

        Rows that can't be understood are skipped, never fatal to the batch.

        Args:
            payload: Raw provider data (CSV text, list of JSON records, ...)

        Returns:
            List of Transaction objects

        Raises:
            ValueError: If the payload as a whole has the wrong shape
        """
        pass

    @abstractmethod
    def validate(self, payload: Any) -> None:
        """
        Validate that the payload matches the expected format.

        Raises:
            ValueError: If the payload format is invalid
        """
        pass
