"""CSV file -> inferred schema -> created table -> committed rows."""

from contextlib import ExitStack
from pathlib import Path, PurePath
from typing import Callable, ContextManager, Iterable, Optional

from common.constants import DEFAULT_BATCH_SIZE, DEFAULT_TABULAR_EXTENSIONS, DEFAULT_TEXT_COLUMN_WIDTH
from common.exceptions import DatabaseError
from common.logging_config import get_logger
from common.types import IngestionReport, IngestionStatus
from tabular.csv_source import CsvSource
from tabular.schema_inference import SchemaInferencer
from tabular.table_loader import TableLoader

logger = get_logger(__name__)

ConnectionFactory = Callable[[], ContextManager]


def is_tabular(logical_name: str, extensions: Iterable[str] = DEFAULT_TABULAR_EXTENSIONS) -> bool:
    suffix = PurePath(logical_name).suffix.lower()
    return bool(suffix) and suffix in {ext.lower() for ext in extensions}


def table_name_for(logical_name: str) -> str:
    """Base name of the logical file with its extension stripped."""
    name = PurePath(logical_name).name
    stem = PurePath(name).stem
    return stem or name


class TabularIngestionPipeline:
    """
    Runs one ingestion per call, each on its own connection and transaction.

    The file is streamed twice: once for schema inference (all rows, or the
    configured sample) and once for loading.
    """

    def __init__(
        self,
        connection_factory: ConnectionFactory,
        batch_size: int = DEFAULT_BATCH_SIZE,
        text_column_width: int = DEFAULT_TEXT_COLUMN_WIDTH,
        schema_sample_rows: Optional[int] = None,
        placeholder: str = "?",
    ):
        self._connection_factory = connection_factory
        self._inferencer = SchemaInferencer(sample_rows=schema_sample_rows)
        self.batch_size = batch_size
        self.text_column_width = text_column_width
        self.placeholder = placeholder

    def run(self, path: Path, table_name: str) -> IngestionReport:
        """
        Ingest one CSV file into a new table.

        Raises:
            TabularIngestionError: Any format, schema or row failure
            DatabaseError: If the warehouse cannot be opened, or rejects a
                statement or the commit
        """
        source = CsvSource(path)
        header = source.read_header()
        schema = self._inferencer.infer_schema(header, source.iter_rows())

        with ExitStack() as stack:
            try:
                connection = stack.enter_context(self._connection_factory())
            except Exception as e:
                logger.error(f"Cannot open warehouse connection for {table_name}: {e}")
                raise DatabaseError(f"Cannot open warehouse connection: {e}", table_name=table_name) from e

            loader = TableLoader(
                connection,
                table_name,
                schema,
                batch_size=self.batch_size,
                text_width=self.text_column_width,
                placeholder=self.placeholder,
            )
            loader.create_table()
            rows_loaded = loader.load_rows(source.iter_rows())

        logger.info(f"Ingested {path.name} into {table_name}: {rows_loaded} rows")
        return IngestionReport(
            table_name=table_name,
            status=IngestionStatus.LOADED,
            rows_loaded=rows_loaded,
            columns=tuple(schema.pairs()),
        )
