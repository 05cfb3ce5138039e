from abc import ABC, abstractmethod
from typing import Any, Optional


class KeyValueStore(ABC):
    """
    Abstract async key-value storage for caches, locks and user data.

    Values are JSON-compatible structures. Implementations may block
    briefly, but callers always await them as suspension points.
    """

    @abstractmethod
    async def get_item(self, key: str) -> Optional[Any]:
        """
        Read a value.

        Args:
            key: Storage key (e.g. 'trading212.json', 'locks/trading212-export')

        Returns:
            The stored value, or None if absent
        """
        pass

    @abstractmethod
    async def set_item(self, key: str, value: Any) -> None:
        """Create or replace a value."""
        pass

    @abstractmethod
    async def remove_item(self, key: str) -> None:
        """Delete a value; missing keys are ignored."""
        pass
