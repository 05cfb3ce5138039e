from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from unified_ledger.domain.models import CategoryRule

TransactionCategoryMap = Dict[str, str]


class CategoryRepository(ABC):
    """
    Abstract repository for category rules and manual overrides.

    Rules come back in their stored order, which is the order keyword
    matching uses.
    """

    @abstractmethod
    async def list_rules(self) -> List[CategoryRule]:
        """Return all rules in stored order."""
        pass

    @abstractmethod
    async def create_rule(
        self,
        name: str,
        keywords: List[str],
        color: Optional[str] = None,
        icon: Optional[str] = None,
    ) -> CategoryRule:
        """
        Append a new rule.

        Returns:
            The rule with id and timestamps populated

        Raises:
            InvalidRuleError: If the name or keywords are empty
            ReadOnlyRepositoryError: If the repository is read-only
        """
        pass

    @abstractmethod
    async def update_rule(self, rule_id: str, **changes) -> CategoryRule:
        """
        Update name/keywords/color/icon of an existing rule.

        Raises:
            RuleNotFoundError: If no rule has this id
        """
        pass

    @abstractmethod
    async def delete_rule(self, rule_id: str) -> bool:
        """
        Delete a rule by id.

        Returns:
            True if deleted, False if not found
        """
        pass

    @abstractmethod
    async def list_overrides(self) -> TransactionCategoryMap:
        """Return the reference -> category override map."""
        pass

    @abstractmethod
    async def set_override(self, reference: str, category: str) -> TransactionCategoryMap:
        """Assign a category to one transaction reference."""
        pass

    @abstractmethod
    async def remove_override(self, reference: str) -> TransactionCategoryMap:
        """Remove the override for a reference, if any."""
        pass
