"""Pydantic schemas for API requests and responses."""

from controller.schemas.uploads import (
    ColumnResponse,
    ErrorResponse,
    FileRecordResponse,
    IngestionReportResponse,
    UploadCheckResponse,
    UploadProgressResponse,
    UploadResponse,
)

__all__ = [
    "ColumnResponse",
    "ErrorResponse",
    "FileRecordResponse",
    "IngestionReportResponse",
    "UploadCheckResponse",
    "UploadProgressResponse",
    "UploadResponse",
]
