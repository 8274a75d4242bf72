"""Integration tests for the finished-file metadata store."""

import sqlite3
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest

from common.exceptions import DatabaseError
from common.types import FinishedFile
from controller.database import get_db_connection, init_database
from controller.repositories.file_repository import FileRepository


@pytest.fixture
def test_db(tmp_path):
    """
    Create a temporary metadata database for each test.
    """
    db_path = tmp_path / "meta" / "test.db"
    init_database(db_path)
    return db_path


@pytest.fixture
def file_repo(test_db):
    return FileRepository(test_db)


def make_file(identity="abc", name="data.csv", size=10):
    return FinishedFile(
        logical_name=name,
        upload_identity=identity,
        storage_path=f"/store/{identity}.csv",
        size=size,
        created_at=datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc),
    )


class TestInitDatabase:

    def test_creates_files_table(self, test_db):
        with get_db_connection(test_db) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type = 'table' AND name = 'files'")
            assert cursor.fetchone() is not None

    def test_is_idempotent(self, test_db, file_repo):
        file_repo.save(make_file())

        init_database(test_db)

        assert file_repo.exists_by_identity("abc")


class TestFileRepository:

    def test_save_and_get(self, file_repo):
        assert file_repo.save(make_file()) is True

        stored = file_repo.get_by_identity("abc")

        assert stored == make_file()

    def test_save_twice_keeps_first(self, file_repo):
        file_repo.save(make_file(size=10))

        assert file_repo.save(make_file(size=99)) is False
        assert file_repo.get_by_identity("abc").size == 10

    def test_exists_by_identity(self, file_repo):
        assert not file_repo.exists_by_identity("abc")
        file_repo.save(make_file())
        assert file_repo.exists_by_identity("abc")

    def test_get_missing(self, file_repo):
        assert file_repo.get_by_identity("missing") is None

    def test_concurrent_saves_create_once(self, file_repo):
        with ThreadPoolExecutor(max_workers=8) as pool:
            created = list(pool.map(lambda _: file_repo.save(make_file()), range(16)))

        assert created.count(True) == 1

    def test_save_failure_is_wrapped(self, tmp_path):
        db_path = tmp_path / "no_schema.db"
        sqlite3.connect(str(db_path)).close()

        with pytest.raises(DatabaseError) as exc_info:
            FileRepository(db_path).save(make_file())

        assert exc_info.value.upload_identity == "abc"
        assert isinstance(exc_info.value.__cause__, sqlite3.OperationalError)

    def test_lookup_failure_is_wrapped(self, tmp_path):
        with pytest.raises(DatabaseError):
            FileRepository(tmp_path / "missing" / "meta.db").exists_by_identity("abc")
