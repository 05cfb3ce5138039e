"""
TTL-bound advisory lock over the key-value store.

Acquisition is a plain read followed by a write. Two readers racing on the
same key can both see it free and both "acquire" it; the result is an
occasional duplicate refresh, which the merge policies absorb. The TTL is
the only bound on a holder that never releases.
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from unified_ledger.domain.dates import parse_datetime, to_iso, utcnow
from unified_ledger.storage.base import KeyValueStore

logger = logging.getLogger(__name__)

LOCK_PREFIX = "locks/"


def lock_key(name: str) -> str:
    return name if name.startswith(LOCK_PREFIX) else f"{LOCK_PREFIX}{name}"


class AdvisoryLock:
    """Named, expiring lock records stored under `locks/<name>`."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def acquire(
        self,
        name: str,
        ttl_seconds: float,
        owner: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[str]:
        """
        Try to take the lock without waiting.

        Args:
            name: Lock name, with or without the `locks/` prefix
            ttl_seconds: How long the record stays valid
            owner: Owner token to store; a random one is generated if omitted
            now: Clock override for tests

        Returns:
            The owner token on success, None if an unexpired lock is held
        """
        key = lock_key(name)
        now = now or utcnow()

        current = await self.store.get_item(key)
        if isinstance(current, dict):
            expires_at = parse_datetime(current.get("expiresAt"))
            if expires_at > now:
                logger.info("Lock %s held by %s until %s", key, current.get("owner"), current.get("expiresAt"))
                return None
            logger.info("Lock %s expired, taking over", key)

        owner = owner or uuid.uuid4().hex
        await self.store.set_item(key, {
            "acquiredAt": to_iso(now),
            "expiresAt": to_iso(now + timedelta(seconds=ttl_seconds)),
            "owner": owner,
        })
        logger.debug("Acquired lock %s for %s", key, owner)
        return owner

    async def release(self, name: str, owner: Optional[str] = None) -> bool:
        """
        Remove the lock record.

        When `owner` is given, a record belonging to someone else (taken over
        after our TTL ran out) is left alone.

        Returns:
            True if a record was removed
        """
        key = lock_key(name)
        current = await self.store.get_item(key)
        if current is None:
            return False
        if owner is not None and isinstance(current, dict) and current.get("owner") not in (None, owner):
            logger.warning("Not releasing %s: now owned by %s", key, current.get("owner"))
            return False
        await self.store.remove_item(key)
        logger.debug("Released lock %s", key)
        return True

