"""Exception hierarchy shared by the chunk store, tabular pipeline and controller."""

from typing import Optional


class ChunkloadError(Exception):
    """
    Base exception class for all upload and ingestion errors.
    """
    pass


class UploadError(ChunkloadError):
    """
    Base class for errors tied to a single upload identity.
    """

    def __init__(self, message: str, upload_identity: Optional[str] = None, chunk_index: Optional[int] = None):
        self.upload_identity = upload_identity
        self.chunk_index = chunk_index
        context = []
        if upload_identity is not None:
            context.append(f"identity={upload_identity}")
        if chunk_index is not None:
            context.append(f"chunk={chunk_index}")
        if context:
            message = f"{message} [{' '.join(context)}]"
        super().__init__(message)


class InvalidUploadIdentity(UploadError):
    """
    Raised when an upload identity cannot be used as a storage key.
    """
    pass


class InvalidChunkIndex(UploadError):
    """
    Raised when a chunk index is negative or not below the expected total.
    """
    pass


class InconsistentUploadMetadata(UploadError):
    """
    Raised when a chunk reports a total that conflicts with the recorded one.
    """
    pass


class StorageError(UploadError):
    """
    Raised when writing or publishing bytes on disk fails.
    """
    pass


class CorruptUpload(UploadError):
    """
    Raised when bookkeeping says an upload is complete but its chunks are
    missing, unreadable or do not match the recorded sizes or checksum.
    """
    pass


class TabularIngestionError(ChunkloadError):
    """
    Base class for failures of the CSV-to-table pipeline.
    """

    def __init__(self, message: str, table_name: Optional[str] = None, row_index: Optional[int] = None):
        self.table_name = table_name
        self.row_index = row_index
        context = []
        if table_name is not None:
            context.append(f"table={table_name}")
        if row_index is not None:
            context.append(f"row={row_index}")
        if context:
            message = f"{message} [{' '.join(context)}]"
        super().__init__(message)


class TabularFormatError(TabularIngestionError):
    """
    Raised when a tabular file cannot be decoded or has no header row.
    """
    pass


class SchemaCreationFailed(TabularIngestionError):
    """
    Raised when the CREATE TABLE statement cannot be built or executed.
    """
    pass


class RowArityMismatch(TabularIngestionError):
    """
    Raised when a data row does not have one cell per header column.
    """

    def __init__(self, table_name: str, row_index: int, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Row has {actual} values, expected {expected}",
            table_name=table_name,
            row_index=row_index,
        )


class ValueTypeMismatch(TabularIngestionError):
    """
    Raised when a cell does not fit the type inferred for its column.
    Only reachable when inference runs on a bounded sample.
    """

    def __init__(self, table_name: str, row_index: int, column_name: str, column_type: str, value: str):
        self.column_name = column_name
        self.column_type = column_type
        self.value = value
        super().__init__(
            f"Value {value!r} in column {column_name!r} is not a valid {column_type}",
            table_name=table_name,
            row_index=row_index,
        )


class DatabaseError(ChunkloadError):
    """
    Raised when the metadata store or the warehouse cannot be reached, or
    rejects a statement or the commit.
    """

    def __init__(self, message: str, table_name: Optional[str] = None, upload_identity: Optional[str] = None):
        self.table_name = table_name
        self.upload_identity = upload_identity
        context = []
        if table_name is not None:
            context.append(f"table={table_name}")
        if upload_identity is not None:
            context.append(f"identity={upload_identity}")
        if context:
            message = f"{message} [{' '.join(context)}]"
        super().__init__(message)
