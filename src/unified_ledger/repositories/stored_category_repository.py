import logging
import uuid
from typing import Any, Dict, List, Optional

from unified_ledger.domain.categories import DEFAULT_COLOR, DEFAULT_ICON
from unified_ledger.categorization.rules import normalize_keyword
from unified_ledger.domain.dates import to_iso, utcnow
from unified_ledger.domain.models import CategoryRule
from unified_ledger.errors import InvalidRuleError, RuleNotFoundError
from unified_ledger.repositories.base import CategoryRepository, TransactionCategoryMap
from unified_ledger.storage.base import KeyValueStore

logger = logging.getLogger(__name__)

RULES_KEY = "category-rules.json"
OVERRIDES_KEY = "category-overrides.json"

_UPDATABLE = ("name", "keywords", "color", "icon")


def clean_keywords(keywords: List[str]) -> List[str]:
    cleaned = [normalize_keyword(kw) for kw in keywords or []]
    return [kw for kw in cleaned if kw]


class StoredCategoryRepository(CategoryRepository):
    """
    CategoryRepository kept in the key-value store as two JSON documents.

    Malformed documents read as empty; malformed individual rules are skipped.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def _read_rule_dicts(self) -> List[Dict[str, Any]]:
        raw = await self.store.get_item(RULES_KEY)
        if not isinstance(raw, list):
            return []
        return [r for r in raw if isinstance(r, dict)]

    async def list_rules(self) -> List[CategoryRule]:
        rules = []
        for row in await self._read_rule_dicts():
            try:
                rules.append(CategoryRule.from_dict(row))
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed category rule: %r", row)
        return rules

    async def _save_rules(self, rules: List[CategoryRule]) -> None:
        await self.store.set_item(RULES_KEY, [r.to_dict() for r in rules])

    async def create_rule(
        self,
        name: str,
        keywords: List[str],
        color: Optional[str] = None,
        icon: Optional[str] = None,
    ) -> CategoryRule:
        name = (name or "").strip()
        keywords = clean_keywords(keywords)
        if not name:
            raise InvalidRuleError("Rule name is required")
        if not keywords:
            raise InvalidRuleError(f"Rule '{name}' needs at least one keyword")

        now = to_iso(utcnow())
        rule = CategoryRule(
            id=str(uuid.uuid4()),
            name=name,
            keywords=keywords,
            color=color or DEFAULT_COLOR,
            icon=icon or DEFAULT_ICON,
            created_at=now,
            updated_at=now,
        )

        rules = await self.list_rules()
        rules.append(rule)
        await self._save_rules(rules)
        logger.info("Created category rule %s (%s)", rule.name, rule.id)
        return rule

    async def update_rule(self, rule_id: str, **changes) -> CategoryRule:
        unknown = set(changes) - set(_UPDATABLE)
        if unknown:
            raise InvalidRuleError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        name = changes.get("name")
        if name is not None and not name.strip():
            raise InvalidRuleError("Rule name is required")

        rules = await self.list_rules()
        for index, existing in enumerate(rules):
            if existing.id != rule_id:
                continue

            keywords = changes.get("keywords")
            updated = CategoryRule(
                id=existing.id,
                name=name.strip() if name else existing.name,
                keywords=clean_keywords(keywords) if keywords is not None else existing.keywords,
                color=changes.get("color") or existing.color,
                icon=changes.get("icon") or existing.icon,
                created_at=existing.created_at,
                updated_at=to_iso(utcnow()),
            )
            if not updated.keywords:
                raise InvalidRuleError(f"Rule '{updated.name}' needs at least one keyword")

            rules[index] = updated
            await self._save_rules(rules)
            return updated

        raise RuleNotFoundError(f"Category rule with ID {rule_id} not found")

    async def delete_rule(self, rule_id: str) -> bool:
        rows = await self._read_rule_dicts()
        remaining = [r for r in rows if str(r.get("id")) != rule_id]
        if len(remaining) == len(rows):
            return False
        await self.store.set_item(RULES_KEY, remaining)
        return True

    async def list_overrides(self) -> TransactionCategoryMap:
        raw = await self.store.get_item(OVERRIDES_KEY)
        if not isinstance(raw, dict):
            return {}
        return {str(ref): str(cat) for ref, cat in raw.items() if cat}

    async def set_override(self, reference: str, category: str) -> TransactionCategoryMap:
        if not reference or not category:
            raise InvalidRuleError("reference and category are both required")

        overrides = await self.list_overrides()
        overrides[reference] = category
        await self.store.set_item(OVERRIDES_KEY, overrides)
        return overrides

    async def remove_override(self, reference: str) -> TransactionCategoryMap:
        overrides = await self.list_overrides()
        if overrides.pop(reference, None) is not None:
            await self.store.set_item(OVERRIDES_KEY, overrides)
        return overrides
