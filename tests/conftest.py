"""Shared pytest fixtures for all tests."""

import csv
import hashlib
import sqlite3

import pytest

from chunkstore.chunk_store import ChunkStore
from controller.config import Settings
from controller.services.upload_service import UploadService


@pytest.fixture
def settings(tmp_path):
    """
    Settings rooted in a temporary directory.

    Args:
        tmp_path: pytest tmp_path fixture

    Returns:
        Settings with metadata, warehouse and chunk storage under tmp_path
    """
    return Settings.from_env({"CHUNKLOAD_STORAGE_ROOT": str(tmp_path / "data")})


@pytest.fixture
def service(settings):
    """UploadService wired to the temporary settings."""
    return UploadService(settings)


@pytest.fixture
def chunk_store(tmp_path):
    return ChunkStore(tmp_path / "chunks")


@pytest.fixture
def warehouse(tmp_path):
    """
    Path of a scratch warehouse database.

    Returns:
        Path to a SQLite file that tests may open freely
    """
    return tmp_path / "warehouse.db"


@pytest.fixture
def write_csv(tmp_path):
    """
    Factory that writes rows to a CSV file under tmp_path.

    Returns:
        Callable (name, rows) -> Path
    """
    def _write(name, rows):
        path = tmp_path / name
        with open(path, 'w', encoding='utf-8', newline='') as f:
            csv.writer(f).writerows(rows)
        return path
    return _write


def md5_hex(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


def split_chunks(data: bytes, count: int):
    """Split data into count contiguous pieces (the last may be empty)."""
    size = max(1, -(-len(data) // count))
    return [data[i * size:(i + 1) * size] for i in range(count)]


def fetch_all(db_path, sql):
    conn = sqlite3.connect(str(db_path))
    try:
        return conn.execute(sql).fetchall()
    finally:
        conn.close()
