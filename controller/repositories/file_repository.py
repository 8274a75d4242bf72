"""File repository for the finished-file metadata store."""

import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Optional

from common.exceptions import DatabaseError
from common.logging_config import get_logger
from common.types import FinishedFile
from controller.database import get_db_connection

logger = get_logger(__name__)


class FileRepository:
    def __init__(self, database_path: Path):
        self.database_path = database_path

    def save(self, finished_file: FinishedFile) -> bool:
        """
        Register a finished file.

        Returns:
            True if this call created the record, False if the identity was
            already registered

        Raises:
            DatabaseError: If the metadata store cannot be opened or rejects the insert
        """
        try:
            with get_db_connection(self.database_path) as conn:
                try:
                    cursor = conn.cursor()
                    cursor.execute(
                        """
                        INSERT OR IGNORE INTO files (upload_identity, name, storage_path, size, created_at)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        (
                            finished_file.upload_identity,
                            finished_file.logical_name,
                            finished_file.storage_path,
                            finished_file.size,
                            finished_file.created_at.isoformat(),
                        )
                    )
                    created = cursor.rowcount == 1
                    conn.commit()
                except sqlite3.Error:
                    conn.rollback()
                    raise
        except sqlite3.Error as e:
            logger.error(f"Failed to save file [identity={finished_file.upload_identity}]: {e}", exc_info=True)
            raise DatabaseError(
                f"Failed to register file: {e}",
                upload_identity=finished_file.upload_identity,
            ) from e

        if created:
            logger.info(f"Registered file {finished_file.logical_name} [identity={finished_file.upload_identity}]")
        else:
            logger.info(f"File already registered [identity={finished_file.upload_identity}]")
        return created

    def exists_by_identity(self, upload_identity: str) -> bool:
        """
        Raises:
            DatabaseError: If the metadata store cannot be queried
        """
        try:
            with get_db_connection(self.database_path) as conn:
                cursor = conn.cursor()
                cursor.execute(
                    "SELECT 1 FROM files WHERE upload_identity = ?",
                    (upload_identity,)
                )
                return cursor.fetchone() is not None
        except sqlite3.Error as e:
            logger.error(f"Failed to look up file [identity={upload_identity}]: {e}")
            raise DatabaseError(f"Failed to look up file: {e}", upload_identity=upload_identity) from e

    def get_by_identity(self, upload_identity: str) -> Optional[FinishedFile]:
        with get_db_connection(self.database_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT upload_identity, name, storage_path, size, created_at
                FROM files WHERE upload_identity = ?
                """,
                (upload_identity,)
            )
            row = cursor.fetchone()

            if row is None:
                return None

            return FinishedFile(
                logical_name=row["name"],
                upload_identity=row["upload_identity"],
                storage_path=row["storage_path"],
                size=row["size"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
