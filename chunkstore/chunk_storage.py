"""Manages physical chunk files on disk: atomic writes, streaming reads, manifests."""

import json
import os
import re
import shutil
import uuid
from pathlib import Path
from typing import Dict, Iterator, Optional

from common.constants import (
    CHUNK_FILE_SUFFIX,
    MANIFEST_FILE_NAME,
    MAX_UPLOAD_IDENTITY_LENGTH,
    READ_PIECE_SIZE_BYTES,
)
from common.exceptions import InvalidUploadIdentity

_IDENTITY_RE = re.compile(r'^[A-Za-z0-9_-]+$')


def validate_upload_identity(upload_identity: str) -> str:
    """
    Ensure an identity is safe to use as a directory name.

    Raises:
        InvalidUploadIdentity: If empty, too long or containing path characters
    """
    if not upload_identity or len(upload_identity) > MAX_UPLOAD_IDENTITY_LENGTH:
        raise InvalidUploadIdentity("Upload identity must be 1-128 characters", upload_identity=upload_identity)
    if not _IDENTITY_RE.match(upload_identity):
        raise InvalidUploadIdentity(
            "Upload identity may only contain letters, digits, '-' and '_'",
            upload_identity=upload_identity,
        )
    return upload_identity


def get_upload_dir(chunks_dir: Path, upload_identity: str) -> Path:
    return chunks_dir / upload_identity


def get_chunk_path(chunks_dir: Path, upload_identity: str, chunk_index: int) -> Path:
    """
    Get file path for a chunk.

    Args:
        chunks_dir: Root directory for chunk files
        upload_identity: Identity shared by all chunks of the upload
        chunk_index: Zero-based chunk position

    Returns:
        Path object for chunk file
    """
    return get_upload_dir(chunks_dir, upload_identity) / f"{chunk_index}{CHUNK_FILE_SUFFIX}"


def write_file_atomic(filepath: Path, data: bytes) -> str:
    """
    Write bytes through a temporary sibling and rename into place.

    Readers never observe a partially written file, and rewriting the same
    path with the same bytes is harmless.

    Raises:
        OSError: If write operation fails
    """
    filepath.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = filepath.with_name(f".{filepath.name}.{uuid.uuid4().hex}.tmp")
    try:
        with open(tmp_path, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, filepath)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise
    return str(filepath)


def write_chunk(chunks_dir: Path, upload_identity: str, chunk_index: int, data: bytes) -> str:
    """
    Write chunk data to disk.

    Returns:
        String path to written file

    Raises:
        OSError: If write operation fails
    """
    return write_file_atomic(get_chunk_path(chunks_dir, upload_identity, chunk_index), data)


def read_chunk_streaming(filepath: Path, piece_size: int = READ_PIECE_SIZE_BYTES) -> Iterator[bytes]:
    """
    Stream chunk data in pieces.

    Args:
        filepath: Location of the chunk file
        piece_size: Size of each piece in bytes (default 64KB)

    Yields:
        Chunk data pieces

    Raises:
        FileNotFoundError: If chunk does not exist
        OSError: If read operation fails
    """
    with open(filepath, 'rb') as f:
        while True:
            piece = f.read(piece_size)
            if not piece:
                break
            yield piece


def write_manifest(chunks_dir: Path, upload_identity: str, total_expected: int, logical_name: Optional[str]) -> None:
    """Persist the upload-level metadata needed to rebuild progress after a restart."""
    manifest = {
        'upload_identity': upload_identity,
        'total_expected': total_expected,
        'logical_name': logical_name,
    }
    path = get_upload_dir(chunks_dir, upload_identity) / MANIFEST_FILE_NAME
    write_file_atomic(path, json.dumps(manifest).encode('utf-8'))


def read_manifest(chunks_dir: Path, upload_identity: str) -> Optional[dict]:
    path = get_upload_dir(chunks_dir, upload_identity) / MANIFEST_FILE_NAME
    if not path.exists():
        return None
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def list_upload_chunks(chunks_dir: Path, upload_identity: str) -> Dict[int, Path]:
    """
    List chunk files present for one upload.

    Returns:
        Mapping of chunk index to file path (temporary files are ignored)
    """
    upload_dir = get_upload_dir(chunks_dir, upload_identity)
    if not upload_dir.exists():
        return {}

    chunks = {}
    for filepath in upload_dir.glob(f"*{CHUNK_FILE_SUFFIX}"):
        if filepath.stem.isdigit():
            chunks[int(filepath.stem)] = filepath
    return chunks


def list_upload_identities(chunks_dir: Path) -> list[str]:
    """
    List identities that have a chunk directory.
    """
    if not chunks_dir.exists():
        return []
    return [path.name for path in chunks_dir.iterdir() if path.is_dir()]


def delete_upload(chunks_dir: Path, upload_identity: str) -> bool:
    """
    Delete every chunk and the manifest of an upload.

    Returns:
        True if the directory was deleted, False if it didn't exist
    """
    upload_dir = get_upload_dir(chunks_dir, upload_identity)
    if upload_dir.exists():
        shutil.rmtree(upload_dir)
        return True
    return False
