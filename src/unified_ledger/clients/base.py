from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional


class TokenProvider(ABC):
    """Supplies a valid bearer token for the banking provider."""

    @abstractmethod
    async def get_token(self) -> str:
        """
        Raises:
            MissingCredentialsError: If there is no usable token
        """
        pass


class BankDataClient(ABC):
    """
    Banking provider API: account/card listing, balances and transactions.

    Transaction methods return raw provider records; parsing into
    canonical transactions is the parsers' job, including turning card
    amounts into outflows.
    """

    async def check_credentials(self) -> None:
        """Raise MissingCredentialsError when calls would be unauthenticated."""
        return None

    @abstractmethod
    async def list_accounts(self) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def list_cards(self) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def get_account_balance(self, account_id: str) -> Optional[Decimal]:
        pass

    @abstractmethod
    async def get_card_balance(self, card_id: str) -> Optional[Decimal]:
        pass

    @abstractmethod
    async def get_account_transactions(
        self,
        account_id: str,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def get_card_transactions(
        self,
        card_id: str,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        pass


class TradingClient(ABC):
    """Trading platform API built around asynchronous CSV export jobs."""

    async def check_credentials(self) -> None:
        return None

    @abstractmethod
    async def create_export_job(self, date_from: datetime, date_to: datetime) -> int:
        """Start an export and return its report id."""
        pass

    @abstractmethod
    async def get_download_url(self, report_id: int) -> Optional[str]:
        """Download link of a finished export; None while it is still running."""
        pass

    @abstractmethod
    async def download_csv(self, url: str) -> str:
        pass

    @abstractmethod
    async def get_balance(self) -> Decimal:
        pass

    @abstractmethod
    async def fetch_export(self, date_from: datetime, date_to: datetime) -> str:
        """
        Run a whole export: create, wait, poll, download.

        Returns:
            The CSV text

        Raises:
            ExportNotReadyError: If the export never finished
        """
        pass
