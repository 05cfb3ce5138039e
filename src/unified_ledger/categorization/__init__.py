"""
Categorization system for the unified ledger.

Assigns user-defined categories to transactions with a chain of
responsibility: manual overrides, then keyword rules, then Uncategorized.

Quick Start:
    >>> from unified_ledger.categorization import CategorizationEngine
    >>>
    >>> engine = await CategorizationEngine.from_repository(repository)
    >>> categorized = engine.categorize_many(transactions)
"""
from unified_ledger.categorization.categorizer import CategorizationEngine
from unified_ledger.categorization.base import CategorizationRule
from unified_ledger.categorization.rules import (
    OverrideRule,
    KeywordRule,
    DefaultRule,
)
from unified_ledger.domain import categories

__all__ = [
    "CategorizationEngine",
    "CategorizationRule",
    "OverrideRule",
    "KeywordRule",
    "DefaultRule",
    "categories",
]
