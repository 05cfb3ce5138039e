import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

Connection = sqlite3.Connection

SCHEMA_PATH = Path(__file__).parent / "schema.sql"


class DatabaseConfig:
    """Location of the SQLite file backing the key-value store."""

    def __init__(self, db_path: Path | str = "data/ledger.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_settings(cls, settings) -> "DatabaseConfig":
        return cls(settings.database_path)

    @property
    def connection_string(self) -> str:
        return str(self.db_path.absolute())

    def __repr__(self) -> str:
        return f"DatabaseConfig({str(self.db_path)!r})"


def configure_connection(conn: Connection) -> None:
    """Apply the pragmas every ledger connection needs; rows are sqlite3.Row."""
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")
    conn.row_factory = sqlite3.Row


class DatabaseManager:
    """
    Owns the single connection to the ledger database.

    Usage:
        with DatabaseManager(DatabaseConfig("data/ledger.db")) as db:
            with db.transaction() as conn:
                conn.execute("DELETE FROM kv_store WHERE key = ?", ("locks/x",))
    """

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self._connection: Optional[Connection] = None

    def get_connection(self) -> Connection:
        """Open the connection on first use and reuse it afterwards."""
        if self._connection is None:
            conn = sqlite3.connect(
                self.config.connection_string,
                check_same_thread=False,
                timeout=10,
            )
            configure_connection(conn)
            self._connection = conn
        return self._connection

    def close(self) -> None:
        if self._connection:
            self._connection.close()
            self._connection = None

    @contextmanager
    def transaction(self) -> Generator[Connection, None, None]:
        """Commit when the block succeeds, roll back and re-raise when it fails."""
        conn = self.get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def schema_version(self) -> Optional[int]:
        """Latest applied schema version; None before the schema exists."""
        try:
            row = self.get_connection().execute(
                "SELECT MAX(version) AS version FROM schema_version"
            ).fetchone()
        except sqlite3.OperationalError:
            return None
        return row["version"] if row else None

    def __enter__(self) -> "DatabaseManager":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def execute_schema(conn: Connection, schema_path: Path = SCHEMA_PATH) -> None:
    """
    Run a schema script. The bundled one is idempotent, so this is safe on
    every startup.
    """
    with open(schema_path) as f:
        conn.executescript(f.read())
    conn.commit()
