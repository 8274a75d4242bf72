"""Service layer for business logic."""

from controller.services.upload_service import UploadService

__all__ = [
    "UploadService",
]
