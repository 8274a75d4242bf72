"""Entry point for the upload service."""

import time
import uuid
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from common.exceptions import (
    ChunkloadError,
    CorruptUpload,
    DatabaseError,
    InconsistentUploadMetadata,
    InvalidChunkIndex,
    InvalidUploadIdentity,
    StorageError,
)
from common.logging_config import get_logger, setup_component_logging
from controller.config import Settings
from controller.routes.upload_routes import router as upload_router
from controller.services.upload_service import UploadService

logger = get_logger('controller')


async def log_requests(request: Request, call_next):
    """
    Middleware to log all HTTP requests and responses.
    """
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    start_time = time.time()
    logger.info(f"Request started: {request.method} {request.url.path} [request_id={request_id}]")

    response = await call_next(request)

    duration = time.time() - start_time
    logger.info(
        f"Request completed: {request.method} {request.url.path} "
        f"status={response.status_code} duration={duration:.3f}s [request_id={request_id}]"
    )

    response.headers["X-Request-ID"] = request_id
    return response


def _error_response(request: Request, exc: Exception, status_code: int, code: str) -> JSONResponse:
    request_id = getattr(request.state, 'request_id', 'unknown')
    if status_code >= 500:
        logger.error(f"{code}: {exc} [request_id={request_id}] path={request.url.path}", exc_info=exc)
    else:
        logger.warning(f"{code}: {exc} [request_id={request_id}] path={request.url.path}")
    return JSONResponse(status_code=status_code, content={"detail": str(exc), "code": code})


async def invalid_identity_handler(request: Request, exc: InvalidUploadIdentity):
    return _error_response(request, exc, status.HTTP_400_BAD_REQUEST, "INVALID_UPLOAD_IDENTITY")


async def invalid_chunk_index_handler(request: Request, exc: InvalidChunkIndex):
    return _error_response(request, exc, status.HTTP_400_BAD_REQUEST, "INVALID_CHUNK_INDEX")


async def inconsistent_metadata_handler(request: Request, exc: InconsistentUploadMetadata):
    return _error_response(request, exc, status.HTTP_409_CONFLICT, "INCONSISTENT_UPLOAD_METADATA")


async def storage_error_handler(request: Request, exc: StorageError):
    return _error_response(request, exc, status.HTTP_500_INTERNAL_SERVER_ERROR, "STORAGE_ERROR")


async def corrupt_upload_handler(request: Request, exc: CorruptUpload):
    return _error_response(request, exc, status.HTTP_500_INTERNAL_SERVER_ERROR, "CORRUPT_UPLOAD")


async def database_error_handler(request: Request, exc: DatabaseError):
    return _error_response(request, exc, status.HTTP_500_INTERNAL_SERVER_ERROR, "DATABASE_ERROR")


async def chunkload_error_handler(request: Request, exc: ChunkloadError):
    return _error_response(request, exc, status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR")


async def root():
    """
    Root endpoint for health check.
    """
    return {"message": "Chunkload Upload API", "status": "running"}


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application around one UploadService.

    Args:
        settings: Process configuration (default: read from the environment)
    """
    if settings is None:
        settings = Settings.from_env()

    setup_component_logging(settings.log_level)

    app = FastAPI(
        title="Chunkload Upload Service",
        description="Chunked uploads with CSV-to-table ingestion",
        version="1.0.0"
    )

    service = UploadService(settings)
    recovered = service.recover()
    if recovered:
        logger.info(f"Finished {len(recovered)} uploads left complete by a previous run")
    app.state.settings = settings
    app.state.upload_service = service

    app.middleware("http")(log_requests)

    app.add_exception_handler(InvalidUploadIdentity, invalid_identity_handler)
    app.add_exception_handler(InvalidChunkIndex, invalid_chunk_index_handler)
    app.add_exception_handler(InconsistentUploadMetadata, inconsistent_metadata_handler)
    app.add_exception_handler(StorageError, storage_error_handler)
    app.add_exception_handler(CorruptUpload, corrupt_upload_handler)
    app.add_exception_handler(DatabaseError, database_error_handler)
    app.add_exception_handler(ChunkloadError, chunkload_error_handler)

    app.add_api_route("/", root, methods=["GET"])
    app.include_router(upload_router)

    logger.info(f"Upload service ready (storage={settings.storage_root}, warehouse={settings.warehouse_path})")
    return app


def main() -> None:
    settings = Settings.from_env()
    uvicorn.run(
        "controller.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
