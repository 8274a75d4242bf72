"""Database schema and connection management for SQLite."""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

# Concurrent chunk workers may register files at the same time.
BUSY_TIMEOUT_SECONDS = 30.0


def init_database(database_path: Path) -> None:
    """
    Initialize the metadata database and create tables if they don't exist.
    """
    Path(database_path).parent.mkdir(parents=True, exist_ok=True)

    with get_db_connection(database_path) as conn:
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS files (
                upload_identity TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                storage_path TEXT NOT NULL,
                size INTEGER NOT NULL,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_files_name ON files(name)
        """)

        conn.commit()


@contextmanager
def get_db_connection(database_path: Path) -> Generator[sqlite3.Connection, None, None]:
    """
    Context manager for metadata database connections.
    """
    conn = sqlite3.connect(str(database_path), timeout=BUSY_TIMEOUT_SECONDS)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def get_warehouse_connection(warehouse_path: Path) -> Generator[sqlite3.Connection, None, None]:
    """
    Context manager for the database that receives ingested tables.
    One connection per ingestion run; the caller owns the transaction.
    """
    Path(warehouse_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(warehouse_path), timeout=BUSY_TIMEOUT_SECONDS)
    try:
        yield conn
    finally:
        conn.close()
