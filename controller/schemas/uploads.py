"""Pydantic schemas for upload endpoints."""

from typing import List, Optional

from pydantic import BaseModel

from common.types import IngestionReport, ProgressSnapshot, UploadResult


class FileRecordResponse(BaseModel):
    """Finished file as registered in the metadata store."""
    upload_identity: str
    name: str
    storage_path: str
    size: int
    created_at: str


class ColumnResponse(BaseModel):
    name: str
    type: str


class IngestionReportResponse(BaseModel):
    """Outcome of loading a tabular upload into the warehouse."""
    table_name: str
    status: str
    rows_loaded: int
    columns: List[ColumnResponse] = []
    error: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def from_report(cls, report: IngestionReport) -> "IngestionReportResponse":
        return cls(
            table_name=report.table_name,
            status=report.status.value,
            rows_loaded=report.rows_loaded,
            columns=[ColumnResponse(name=name, type=column_type.value) for name, column_type in report.columns],
            error=report.error,
            error_code=report.error_code,
        )


class UploadResponse(BaseModel):
    """Response model for chunk and whole-file submissions."""
    upload_identity: str
    status: str
    chunk_index: Optional[int] = None
    file: Optional[FileRecordResponse] = None
    ingestion: Optional[IngestionReportResponse] = None

    @classmethod
    def from_result(cls, result: UploadResult) -> "UploadResponse":
        file_response = None
        if result.finished_file is not None:
            finished = result.finished_file
            file_response = FileRecordResponse(
                upload_identity=finished.upload_identity,
                name=finished.logical_name,
                storage_path=finished.storage_path,
                size=finished.size,
                created_at=finished.created_at.isoformat(),
            )
        return cls(
            upload_identity=result.upload_identity,
            status=result.status.value,
            chunk_index=result.chunk_index,
            file=file_response,
            ingestion=IngestionReportResponse.from_report(result.ingestion) if result.ingestion else None,
        )


class UploadCheckResponse(BaseModel):
    """Response model for the skip-upload check."""
    upload_identity: str
    uploaded: bool


class UploadProgressResponse(BaseModel):
    """Received chunk indices of an in-flight upload."""
    upload_identity: str
    total_chunks: int
    received_chunks: List[int]
    complete: bool

    @classmethod
    def from_snapshot(cls, snapshot: ProgressSnapshot) -> "UploadProgressResponse":
        return cls(
            upload_identity=snapshot.upload_identity,
            total_chunks=snapshot.total_expected,
            received_chunks=list(snapshot.received_indices),
            complete=snapshot.complete,
        )


class ErrorResponse(BaseModel):
    """Body of every upload error response; code is the UPPER_SNAKE error name."""
    detail: str
    code: str
