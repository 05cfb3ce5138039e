from typing import Any, Dict, List, Optional

from unified_ledger.config.settings import ConfigLoader
from unified_ledger.domain.models import CategoryRule
from unified_ledger.errors import ReadOnlyRepositoryError
from unified_ledger.repositories.base import CategoryRepository, TransactionCategoryMap


class DemoCategoryRepository(CategoryRepository):
    """
    Fixed sample rules and overrides for demo mode.

    Reads always succeed; every mutation raises ReadOnlyRepositoryError.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Args:
            config: Optional {"rules": [...], "overrides": {...}} dict.
                If None, loads demo_categories.json from ConfigLoader.
        """
        if config is None:
            config = ConfigLoader.load_demo_categories_config()
        self._rules = [CategoryRule.from_dict(r) for r in config.get("rules", [])]
        self._overrides = dict(config.get("overrides") or {})

    async def list_rules(self) -> List[CategoryRule]:
        return list(self._rules)

    async def list_overrides(self) -> TransactionCategoryMap:
        return dict(self._overrides)

    def _reject(self, action: str):
        raise ReadOnlyRepositoryError(f"Cannot {action} in demo mode")

    async def create_rule(self, name, keywords, color=None, icon=None) -> CategoryRule:
        self._reject("create rules")

    async def update_rule(self, rule_id: str, **changes) -> CategoryRule:
        self._reject("update rules")

    async def delete_rule(self, rule_id: str) -> bool:
        self._reject("delete rules")

    async def set_override(self, reference: str, category: str) -> TransactionCategoryMap:
        self._reject("set overrides")

    async def remove_override(self, reference: str) -> TransactionCategoryMap:
        self._reject("remove overrides")

    def __repr__(self) -> str:
        return f"DemoCategoryRepository({len(self._rules)} rules)"
