import json
import logging
from typing import Any, Optional

from unified_ledger.database.connection import DatabaseManager, execute_schema
from unified_ledger.storage.base import KeyValueStore

logger = logging.getLogger(__name__)


class SQLiteKeyValueStore(KeyValueStore):
    """
    KeyValueStore persisted in a single SQLite table.

    Values are stored as JSON text. A row whose JSON can't be decoded reads
    as absent, so a half-written or legacy value never breaks a read path.
    """

    def __init__(self, db_manager: DatabaseManager, ensure_schema: bool = True):
        self.db = db_manager
        if ensure_schema:
            execute_schema(self.db.get_connection())

    async def get_item(self, key: str) -> Optional[Any]:
        conn = self.db.get_connection()
        row = conn.execute(
            "SELECT value FROM kv_store WHERE key = ?",
            (key,),
        ).fetchone()

        if row is None:
            return None

        try:
            return json.loads(row["value"])
        except (TypeError, ValueError):
            logger.warning("Ignoring undecodable value stored under %r", key)
            return None

    async def set_item(self, key: str, value: Any) -> None:
        payload = json.dumps(value)
        with self.db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at)
                VALUES (?, ?, datetime('now'))
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, payload),
            )

    async def remove_item(self, key: str) -> None:
        with self.db.transaction() as conn:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
