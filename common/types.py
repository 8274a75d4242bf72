"""Shared data type definitions (ChunkRecord, FinishedFile, TableSchema, results)."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Sequence, Tuple


@dataclass(frozen=True)
class ChunkRecord:
    """
    One durably written chunk of an upload.
    """
    upload_identity: str
    chunk_index: int
    byte_length: int
    storage_location: str


@dataclass(frozen=True)
class FinishedFile:
    """
    A reassembled (or single-shot) upload registered in the metadata store.
    """
    logical_name: str
    upload_identity: str
    storage_path: str
    size: int
    created_at: datetime


@dataclass(frozen=True)
class ProgressSnapshot:
    """
    Read-only view of an in-flight upload.
    """
    upload_identity: str
    total_expected: int
    received_indices: Tuple[int, ...]

    @property
    def complete(self) -> bool:
        return len(self.received_indices) == self.total_expected


class ColumnType(str, Enum):
    """Column types in precedence order."""
    INTEGER = "INTEGER"
    FLOAT = "FLOAT"
    DATE = "DATE"
    TEXT = "TEXT"


@dataclass(frozen=True)
class Column:
    """
    A schema column and the position of its cells in the source rows.
    """
    name: str
    column_type: ColumnType
    position: int


@dataclass(frozen=True)
class TableSchema:
    """
    Ordered columns of an inferred table.

    source_width is the number of cells every source row must carry,
    including positions dropped because their header was blank.
    """
    columns: Tuple[Column, ...]
    source_width: int

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self.columns]

    def pairs(self) -> List[Tuple[str, ColumnType]]:
        return [(column.name, column.column_type) for column in self.columns]

    def __len__(self) -> int:
        return len(self.columns)


class UploadStatus(str, Enum):
    RECEIVED = "received"
    COMPLETED = "completed"
    ALREADY_UPLOADED = "already_uploaded"


class IngestionStatus(str, Enum):
    LOADED = "loaded"
    FAILED = "failed"


@dataclass(frozen=True)
class IngestionReport:
    """
    Outcome of one tabular pipeline run.
    """
    table_name: str
    status: IngestionStatus
    rows_loaded: int = 0
    columns: Sequence[Tuple[str, ColumnType]] = field(default_factory=tuple)
    error: Optional[str] = None
    error_code: Optional[str] = None


@dataclass(frozen=True)
class UploadResult:
    """
    Outcome of a chunk or whole-file submission.
    """
    upload_identity: str
    status: UploadStatus
    chunk_index: Optional[int] = None
    finished_file: Optional[FinishedFile] = None
    ingestion: Optional[IngestionReport] = None
