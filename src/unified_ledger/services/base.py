from abc import ABC, abstractmethod
from typing import Optional

from unified_ledger.repositories.base import CategoryRepository
from unified_ledger.services.models import CombinedFinancialData
from unified_ledger.sync.stream import FinanceStream


class FinancialDataProvider(ABC):
    """
    Where the combined ledger and category data come from.

    Live and demo implementations are chosen once, by an explicit flag, when
    the provider is built.
    """

    is_demo: bool = False
    category_repository: CategoryRepository
    stream: Optional[FinanceStream] = None

    @abstractmethod
    async def get_combined_data(self) -> CombinedFinancialData:
        pass

    async def wait_for_refreshes(self) -> None:
        """Wait for background refreshes started by reads (none by default)."""
        return None
