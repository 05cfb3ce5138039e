from typing import Dict, List, Optional

from unified_ledger.categorization.base import CategorizationRule
from unified_ledger.domain.categories import UNCATEGORIZED
from unified_ledger.categorization.rules import DefaultRule, KeywordRule, OverrideRule
from unified_ledger.domain.models import CategoryMatch, CategoryRule, Transaction
from unified_ledger.repositories.base import CategoryRepository
from unified_ledger.services.models import CategoryStats
from unified_ledger.stats.category_stats import calculate_category_stats


class CategorizationEngine:
    """
    Main engine for categorizing transactions.

    Works on one snapshot of rules and overrides, so a batch only reads the
    repository once. Builds a chain of rules in priority order:
    1. Manual overrides (by transaction reference)
    2. Keyword rules, in stored order
    3. Default (Uncategorized)

    Usage:
        # Production - snapshot the repository once per batch
        engine = await CategorizationEngine.from_repository(repository)

        # Testing - inject rules directly
        engine = CategorizationEngine(rules=[...], overrides={"tx-1": "Rent"})

        match = engine.match("TESCO STORES 2041", reference="tx-9")
        categorized = engine.categorize_many(transactions)
    """

    def __init__(
        self,
        rules: Optional[List[CategoryRule]] = None,
        overrides: Optional[Dict[str, str]] = None,
    ):
        self.rules: List[CategoryRule] = list(rules or [])
        self.overrides: Dict[str, str] = dict(overrides or {})
        self._rule_chain: Optional[CategorizationRule] = None

        self._build_rule_chain()

    @classmethod
    async def from_repository(cls, repository: CategoryRepository) -> "CategorizationEngine":
        """Fetch rules and overrides once and build an engine over them."""
        rules = await repository.list_rules()
        overrides = await repository.list_overrides()
        return cls(rules=rules, overrides=overrides)

    def _build_rule_chain(self) -> None:
        rules: List[CategorizationRule] = []

        if self.overrides:
            rules.append(OverrideRule(self.overrides, self.rules))

        if self.rules:
            rules.append(KeywordRule(self.rules))

        rules.append(DefaultRule(UNCATEGORIZED))

        self._rule_chain = rules[0]
        for i in range(len(rules) - 1):
            rules[i].set_next(rules[i + 1])

    def match(self, description: Optional[str], reference: Optional[str] = None) -> CategoryMatch:
        """
        Match a description (and optional reference) to a category.

        Args:
            description: Free-text transaction description
            reference: Transaction reference used for manual overrides

        Returns:
            CategoryMatch; `is_uncategorized` is True only for the fallback

        Example:
            ```
            >>> engine = CategorizationEngine(rules=[groceries])
            >>> engine.match("  TESCO Metro ").category
            'Groceries'
            ```
        """
        if not self._rule_chain:
            raise RuntimeError("Rule chain not initialized")

        normalized = (description or "").lower().strip()
        match = self._rule_chain.categorize(normalized, reference)

        assert match is not None, "Rule chain should never return None"

        return match

    def categorize(self, transaction: Transaction) -> Transaction:
        """Return a copy of the transaction with its category set."""
        match = self.match(transaction.description, transaction.reference)
        return transaction.with_category(match.category)

    def categorize_many(
        self,
        transactions: List[Transaction],
        overwrite: bool = True,
    ) -> List[Transaction]:
        """
        Categorize multiple transactions.

        Args:
            transactions: Transactions to categorize
            overwrite: If False, keep categories already assigned
                (anything but Uncategorized)

        Returns:
            New list of categorized copies, in input order
        """
        categorized = []

        for txn in transactions:
            if not overwrite and txn.category and txn.category != UNCATEGORIZED:
                categorized.append(txn)
                continue
            categorized.append(self.categorize(txn))

        return categorized

    def category_stats(self, transactions: List[Transaction]) -> List[CategoryStats]:
        """Categorize, then summarise spending per category."""
        return calculate_category_stats(self.categorize_many(transactions), self.rules)

    def get_rule_chain_info(self) -> str:
        """
        Get information about the current rule chain.

        Returns:
            String description of the current rule chain.
        """
        if not self._rule_chain:
            return "No rules loaded"

        rules = []
        current = self._rule_chain
        priority = 1

        while current:
            rules.append(f"{priority}. {current}")
            current = current.next_rule
            priority += 1

        return "\n".join(rules)

    def __repr__(self) -> str:
        num_rules = 0
        current = self._rule_chain
        while current:
            num_rules += 1
            current = current.next_rule

        return f"CategorizationEngine({num_rules} rules in chain)"
