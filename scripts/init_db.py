#!/usr/bin/env python3
"""
Initialize the unified ledger database.

Creates the key-value store schema at the path configured in settings.json.
"""
from unified_ledger.config.settings import AppSettings
from unified_ledger.database.connection import DatabaseConfig, DatabaseManager, execute_schema


def main():
    """Initialize the database."""
    config = DatabaseConfig.from_settings(AppSettings.load())
    print(f"Initializing database at: {config.db_path}")

    with DatabaseManager(config) as db:
        conn = db.get_connection()
        execute_schema(conn)

        version = db.schema_version()
        keys = conn.execute("SELECT COUNT(*) AS n FROM kv_store").fetchone()

        if version:
            print("✓ Database initialized successfully!")
            print(f"  Schema version: {version}")
            print(f"  Stored keys: {keys['n']}")
        else:
            print("✗ Database initialization may have failed")


if __name__ == "__main__":
    main()
