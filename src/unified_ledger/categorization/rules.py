from typing import Dict, List, Optional, Tuple

from unified_ledger.categorization.base import CategorizationRule
from unified_ledger.domain.categories import UNCATEGORIZED
from unified_ledger.domain.models import CategoryMatch, CategoryRule


def normalize_keyword(keyword: str) -> str:
    return str(keyword).lower().strip()


class OverrideRule(CategorizationRule):
    """
    Manual per-transaction category assignments.

    Always first in the chain: an override wins even when the description
    also matches a keyword rule. The owning rule is looked up by name on a
    best-effort basis; an override naming a category with no rule is fine.
    """

    def __init__(self, overrides: Dict[str, str], rules: List[CategoryRule]):
        super().__init__()
        self.overrides = dict(overrides)
        self._rules_by_name: Dict[str, CategoryRule] = {}
        for rule in rules:
            # First rule with a given name wins, like a list scan would
            self._rules_by_name.setdefault(rule.name, rule)

    def _matches(self, description: str, reference: Optional[str]) -> bool:
        return bool(reference) and bool(self.overrides.get(reference))

    def _get_match(self, description: str, reference: Optional[str]) -> CategoryMatch:
        category = self.overrides[reference]
        return CategoryMatch(
            category=category,
            rule=self._rules_by_name.get(category),
            is_uncategorized=False,
        )

    def __repr__(self):
        return f"OverrideRule({len(self.overrides)} overrides)"


class KeywordRule(CategorizationRule):
    """
    Rule that matches keywords in transaction descriptions.

    Features:
    - Case-insensitive substring matching
    - Rules are tried in their stored order; first hit wins
    - Blank keywords are ignored

    Example:
        ```
        # "TESCO METRO 1234" -> "Groceries"
        rule = KeywordRule([CategoryRule(id="1", name="Groceries", keywords=["tesco"])])
        ```
    """

    def __init__(self, rules: List[CategoryRule]):
        super().__init__()
        self.rules = list(rules)

        # Pre-process keywords to lowercase for case-insensitive matching
        self._normalized: List[Tuple[CategoryRule, List[str]]] = []
        for rule in self.rules:
            keywords = [normalize_keyword(kw) for kw in rule.keywords]
            self._normalized.append((rule, [kw for kw in keywords if kw]))

    def _find(self, description: str) -> Optional[CategoryRule]:
        for rule, keywords in self._normalized:
            for keyword in keywords:
                if keyword in description:
                    return rule
        return None

    def _matches(self, description: str, reference: Optional[str]) -> bool:
        return self._find(description) is not None

    def _get_match(self, description: str, reference: Optional[str]) -> CategoryMatch:
        rule = self._find(description)
        if rule is None:
            # _matches must have made a whoopsie
            raise RuntimeError("_get_match called but no match found")
        return CategoryMatch(category=rule.name, rule=rule, is_uncategorized=False)

    def __repr__(self):
        return f"KeywordRule({len(self.rules)} rules)"


class DefaultRule(CategorizationRule):
    """
    Fallback rule that always matches.

    Should be the last rule in the chain.
    """

    def __init__(self, default_category: str = UNCATEGORIZED):
        super().__init__()
        self.default_category = default_category

    def _matches(self, description: str, reference: Optional[str]) -> bool:
        """Always matches"""
        return True

    def _get_match(self, description: str, reference: Optional[str]) -> CategoryMatch:
        return CategoryMatch(category=self.default_category, is_uncategorized=True)

    def __repr__(self) -> str:
        return f"DefaultRule('{self.default_category}')"
