"""Upload API routes."""

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status
from starlette.concurrency import run_in_threadpool

from controller.schemas.uploads import ErrorResponse, UploadCheckResponse, UploadProgressResponse, UploadResponse
from controller.services.upload_service import UploadService

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}

router = APIRouter(prefix="/uploads", tags=["Uploads"])


def get_upload_service(request: Request) -> UploadService:
    return request.app.state.upload_service


@router.get("/{upload_identity}", response_model=UploadCheckResponse)
async def check_upload(upload_identity: str, service: UploadService = Depends(get_upload_service)):
    """
    Report whether content with this identity is already stored, so the
    client can skip sending it.
    """
    uploaded = await run_in_threadpool(service.is_uploaded, upload_identity)
    return UploadCheckResponse(upload_identity=upload_identity, uploaded=uploaded)


@router.get("/{upload_identity}/progress", response_model=UploadProgressResponse)
async def get_progress(upload_identity: str, service: UploadService = Depends(get_upload_service)):
    """
    Chunk indices received so far for an in-flight upload.

    Raises:
        - 404: No in-flight upload with this identity
    """
    snapshot = await run_in_threadpool(service.get_progress, upload_identity)
    if snapshot is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No upload in progress for {upload_identity}"
        )
    return UploadProgressResponse.from_snapshot(snapshot)


@router.post("/chunks", response_model=UploadResponse, responses=ERROR_RESPONSES)
async def upload_chunk(
    file: UploadFile = File(...),
    upload_identity: str = Form(...),
    chunk_index: int = Form(..., ge=0),
    total_chunks: int = Form(..., ge=1),
    name: str = Form(...),
    service: UploadService = Depends(get_upload_service),
):
    """
    Upload one chunk of a file. Chunks may arrive in any order and any chunk
    may be resent.

    Parameters:
        - file: Chunk bytes (multipart/form-data)
        - upload_identity: Content fingerprint shared by all chunks (e.g. MD5 of the file)
        - chunk_index: Zero-based chunk position
        - total_chunks: Number of chunks in the upload
        - name: Logical file name; a .csv name is loaded into a table on completion

    Returns:
        - status: received, completed or already_uploaded
        - file / ingestion: present on the request that completed the upload

    Raises:
        - 400: Invalid identity or chunk index
        - 409: total_chunks conflicts with earlier chunks
        - 500: Storage failure or corrupt upload
    """
    data = await file.read()
    result = await run_in_threadpool(
        service.submit_chunk, upload_identity, chunk_index, total_chunks, data, name
    )
    return UploadResponse.from_result(result)


@router.post("", response_model=UploadResponse, status_code=status.HTTP_201_CREATED, responses=ERROR_RESPONSES)
async def upload_whole_file(
    file: UploadFile = File(...),
    upload_identity: str = Form(...),
    name: str = Form(None),
    service: UploadService = Depends(get_upload_service),
):
    """
    Upload a complete file in one request.

    Parameters:
        - file: File bytes (multipart/form-data)
        - upload_identity: Content fingerprint of the file
        - name: Logical file name (defaults to the multipart filename)
    """
    data = await file.read()
    result = await run_in_threadpool(
        service.submit_whole_file, name or file.filename or "", upload_identity, data
    )
    return UploadResponse.from_result(result)
