from abc import ABC, abstractmethod
from typing import Optional

from unified_ledger.domain.models import CategoryMatch


class CategorizationRule(ABC):
    """
    Abstract base class for all categorization rules.

    Implements Chain of Responsibility:
    - Each rule tries to categorize a description/reference pair
    - If it can't it passes to the next rule
    - Rules are tried in priority order

    Usage:
        Create chain: override -> keyword -> default
        ```
        override_rule = OverrideRule(overrides, rules)
        keyword_rule = KeywordRule(rules)
        default_rule = DefaultRule()

        override_rule.set_next(keyword_rule).set_next(default_rule)

        match = override_rule.categorize("TESCO STORES", "tx-123")
        ```
    """

    def __init__(self):
        self._next_rule: Optional['CategorizationRule'] = None

    def set_next(self, rule: 'CategorizationRule') -> 'CategorizationRule':
        """
        Set the next rule in the chain.

        Args:
            rule: The next rule to try if this one doesn't match

        Returns:
            The rule that was set (for chaining)
        """
        self._next_rule = rule
        return rule

    @property
    def next_rule(self) -> Optional['CategorizationRule']:
        return self._next_rule

    @abstractmethod
    def _matches(self, description: str, reference: Optional[str]) -> bool:
        """
        Check if this rule matches.

        Args:
            description: Lowercased, trimmed transaction description
            reference: Transaction reference, if known

        Returns:
            True if this rule can categorize the transaction
        """
        pass

    @abstractmethod
    def _get_match(self, description: str, reference: Optional[str]) -> CategoryMatch:
        """
        Build the match result. Called only if _matches() returns True.
        """
        pass

    def categorize(self, description: str, reference: Optional[str] = None) -> Optional[CategoryMatch]:
        """
        Attempt to categorize, falling through the chain.

        Returns:
            CategoryMatch, or None if no rule in the chain matched
        """
        if self._matches(description, reference):
            return self._get_match(description, reference)

        if self._next_rule:
            return self._next_rule.categorize(description, reference)

        return None

    def __repr__(self):
        return f"{self.__class__.__name__}()"
