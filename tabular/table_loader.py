"""Creates a table for an inferred schema and bulk-loads rows in one transaction."""

import sqlite3
from enum import Enum
from typing import Any, Iterable, List, Sequence

from common.constants import DEFAULT_BATCH_SIZE, DEFAULT_TEXT_COLUMN_WIDTH
from common.exceptions import (
    DatabaseError,
    RowArityMismatch,
    SchemaCreationFailed,
    ValueTypeMismatch,
)
from common.logging_config import get_logger
from common.types import ColumnType, TableSchema
from tabular.type_parsers import PARSERS

logger = get_logger(__name__)


class LoaderState(str, Enum):
    CREATED = "created"
    TABLE_CREATED = "table_created"
    LOADING = "loading"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


def quote_identifier(name: str) -> str:
    """
    Double-quote an SQL identifier, doubling embedded quotes.

    Raises:
        ValueError: If the name is empty or contains a NUL character
    """
    if not name or '\x00' in name:
        raise ValueError(f"Invalid identifier: {name!r}")
    return '"' + name.replace('"', '""') + '"'


def column_type_sql(column_type: ColumnType, text_width: int = DEFAULT_TEXT_COLUMN_WIDTH) -> str:
    if column_type is ColumnType.TEXT:
        return f"VARCHAR({text_width})"
    return column_type.value


def build_create_table_sql(table_name: str, schema: TableSchema, text_width: int = DEFAULT_TEXT_COLUMN_WIDTH) -> str:
    columns = ", ".join(
        f"{quote_identifier(column.name)} {column_type_sql(column.column_type, text_width)}"
        for column in schema.columns
    )
    return f"CREATE TABLE {quote_identifier(table_name)} ({columns})"


def build_insert_sql(table_name: str, schema: TableSchema, placeholder: str = "?") -> str:
    columns = ", ".join(quote_identifier(name) for name in schema.column_names)
    placeholders = ", ".join(placeholder for _ in schema.columns)
    return f"INSERT INTO {quote_identifier(table_name)} ({columns}) VALUES ({placeholders})"


class TableLoader:
    """
    One ingestion run against one DB-API connection.

    State machine: CREATED -> TABLE_CREATED -> LOADING -> COMMITTED, or
    ROLLED_BACK from LOADING. The table is committed on its own before loading
    starts, so a rolled-back load leaves the empty table in place. Rows become
    visible only at the final commit.
    """

    def __init__(
        self,
        connection,
        table_name: str,
        schema: TableSchema,
        batch_size: int = DEFAULT_BATCH_SIZE,
        text_width: int = DEFAULT_TEXT_COLUMN_WIDTH,
        placeholder: str = "?",
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self._connection = connection
        self.table_name = table_name
        self.schema = schema
        self.batch_size = batch_size
        self.text_width = text_width
        self.placeholder = placeholder
        self.rows_loaded = 0
        self._state = LoaderState.CREATED
        # PEP 249 optional extension: drivers expose their Error class on the connection.
        self._db_error = getattr(connection, 'Error', sqlite3.Error)

    @property
    def state(self) -> LoaderState:
        return self._state

    def _require_state(self, expected: LoaderState) -> None:
        if self._state is not expected:
            raise ValueError(f"TableLoader is {self._state.value}, expected {expected.value}")

    def create_table(self) -> str:
        """
        Issue the CREATE TABLE statement and commit it.

        Returns:
            The executed DDL

        Raises:
            SchemaCreationFailed: If the schema is empty, a name is not a valid
                identifier, or the database rejects the statement
        """
        self._require_state(LoaderState.CREATED)

        if not self.schema.columns:
            raise SchemaCreationFailed("Header has no named columns", table_name=self.table_name)
        try:
            ddl = build_create_table_sql(self.table_name, self.schema, self.text_width)
        except ValueError as e:
            raise SchemaCreationFailed(str(e), table_name=self.table_name) from e

        cursor = self._connection.cursor()
        try:
            cursor.execute(ddl)
            self._connection.commit()
        except self._db_error as e:
            self._rollback()
            logger.error(f"CREATE TABLE failed for {self.table_name}: {e}")
            raise SchemaCreationFailed(str(e), table_name=self.table_name) from e
        finally:
            cursor.close()

        self._state = LoaderState.TABLE_CREATED
        logger.info(f"Created table {self.table_name} ({len(self.schema)} columns)")
        return ddl

    def load_rows(self, rows: Iterable[Sequence[str]]) -> int:
        """
        Insert rows in batches inside a single transaction, then commit.

        Returns:
            Number of rows committed

        Raises:
            RowArityMismatch: If a row's cell count differs from the header's
            ValueTypeMismatch: If a cell does not parse as its column type
            DatabaseError: If an insert or the commit fails
        """
        self._require_state(LoaderState.TABLE_CREATED)
        self._begin()
        self._state = LoaderState.LOADING

        insert_sql = build_insert_sql(self.table_name, self.schema, self.placeholder)
        cursor = self._connection.cursor()
        batch: List[List[Any]] = []
        pending = 0
        try:
            for row_index, row in enumerate(rows):
                batch.append(self._bind(row_index, row))
                if len(batch) >= self.batch_size:
                    cursor.executemany(insert_sql, batch)
                    pending += len(batch)
                    batch = []
            if batch:
                cursor.executemany(insert_sql, batch)
                pending += len(batch)
            self._connection.commit()
        except Exception as e:
            self._rollback()
            self._state = LoaderState.ROLLED_BACK
            logger.error(f"Load into {self.table_name} rolled back after {pending} buffered rows: {e}")
            if isinstance(e, self._db_error):
                raise DatabaseError(str(e), table_name=self.table_name) from e
            raise
        finally:
            cursor.close()

        self.rows_loaded = pending
        self._state = LoaderState.COMMITTED
        logger.info(f"Committed {pending} rows into {self.table_name}")
        return pending

    def _begin(self) -> None:
        # Drivers with an autocommit attribute (sqlite3 >= 3.12, psycopg) must
        # not commit per statement while loading.
        if getattr(self._connection, 'autocommit', None) is True:
            self._connection.autocommit = False

    def _bind(self, row_index: int, row: Sequence[str]) -> List[Any]:
        if len(row) != self.schema.source_width:
            raise RowArityMismatch(self.table_name, row_index, self.schema.source_width, len(row))

        values = []
        for column in self.schema.columns:
            raw = row[column.position]
            if column.column_type is ColumnType.TEXT:
                values.append(raw)
                continue
            if not raw.strip():
                values.append(None)
                continue
            result = PARSERS[column.column_type](raw)
            if not result.ok:
                raise ValueTypeMismatch(
                    self.table_name, row_index, column.name, column.column_type.value, raw
                )
            value = result.value
            values.append(value.isoformat() if column.column_type is ColumnType.DATE else value)
        return values

    def _rollback(self) -> None:
        try:
            self._connection.rollback()
        except self._db_error as e:
            logger.error(f"Rollback failed for {self.table_name}: {e}")
