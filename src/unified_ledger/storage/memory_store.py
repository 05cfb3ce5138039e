import copy
from typing import Any, Dict, Optional

from unified_ledger.storage.base import KeyValueStore


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store used by demo mode and tests."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._items: Dict[str, Any] = copy.deepcopy(initial) if initial else {}

    async def get_item(self, key: str) -> Optional[Any]:
        # Copies keep callers from mutating stored state by accident
        return copy.deepcopy(self._items.get(key))

    async def set_item(self, key: str, value: Any) -> None:
        self._items[key] = copy.deepcopy(value)

    async def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self):
        return list(self._items.keys())

    def __repr__(self) -> str:
        return f"InMemoryKeyValueStore({len(self._items)} keys)"
