"""Per-identity chunk bookkeeping: which chunks arrived and when an upload completes."""

import threading
from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set

from chunkstore.chunk_storage import (
    delete_upload,
    list_upload_chunks,
    list_upload_identities,
    read_manifest,
    validate_upload_identity,
    write_chunk,
    write_manifest,
)
from common.constants import MAX_COMPLETED_TOMBSTONES
from common.exceptions import (
    InconsistentUploadMetadata,
    InvalidChunkIndex,
    StorageError,
    CorruptUpload,
)
from common.logging_config import get_logger
from common.types import ChunkRecord, ProgressSnapshot

logger = get_logger(__name__)


@dataclass
class UploadProgress:
    """
    Mutable progress record for one upload.

    Invariant: received_indices is a subset of range(total_expected) and of
    records; the upload is complete iff every index has been received.
    """
    upload_identity: str
    total_expected: int
    logical_name: Optional[str] = None
    records: Dict[int, ChunkRecord] = field(default_factory=dict)
    received_indices: Set[int] = field(default_factory=set)
    claimed: bool = False

    @property
    def is_complete(self) -> bool:
        return len(self.received_indices) == self.total_expected

    def snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            upload_identity=self.upload_identity,
            total_expected=self.total_expected,
            received_indices=tuple(sorted(self.received_indices)),
        )


class ChunkStore:
    """
    Durable chunk bytes plus in-memory progress records keyed by identity.

    All mutation of a progress record happens under that identity's own lock;
    different identities never contend. Chunk bytes are written outside the
    lock so slow disks do not serialize an upload's chunks.
    """

    def __init__(self, chunks_dir: Path, max_tombstones: int = MAX_COMPLETED_TOMBSTONES):
        self._chunks_dir = Path(chunks_dir)
        self._progress: Dict[str, UploadProgress] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._completed: "OrderedDict[str, None]" = OrderedDict()
        self._completed_lock = threading.Lock()
        self._max_tombstones = max_tombstones

    @property
    def chunks_dir(self) -> Path:
        return self._chunks_dir

    @contextmanager
    def _identity_lock(self, upload_identity: str, create: bool = True) -> Iterator[None]:
        # A lock lives only while its identity is tracked. A waiter that
        # acquired a retired lock retries with the current one. With
        # create=False an untracked identity is not locked at all.
        while True:
            if create:
                lock = self._locks.setdefault(upload_identity, threading.Lock())
            else:
                lock = self._locks.get(upload_identity)
                if lock is None:
                    yield
                    return
            with lock:
                if self._locks.get(upload_identity) is not lock:
                    continue
                try:
                    yield
                finally:
                    if upload_identity not in self._progress:
                        del self._locks[upload_identity]
                return

    def _validate(self, upload_identity: str, chunk_index: int, total_expected: int) -> None:
        validate_upload_identity(upload_identity)
        if total_expected < 1:
            raise InconsistentUploadMetadata(
                f"Total chunk count must be positive, got {total_expected}",
                upload_identity=upload_identity,
            )
        if chunk_index < 0 or chunk_index >= total_expected:
            raise InvalidChunkIndex(
                f"Chunk index must be in [0, {total_expected})",
                upload_identity=upload_identity,
                chunk_index=chunk_index,
            )

    def _get_or_create_progress(
        self,
        upload_identity: str,
        chunk_index: int,
        total_expected: int,
        logical_name: Optional[str] = None,
    ) -> UploadProgress:
        """Must be called with the identity lock held."""
        progress = self._progress.get(upload_identity)
        if progress is None:
            progress = UploadProgress(
                upload_identity=upload_identity,
                total_expected=total_expected,
                logical_name=logical_name,
            )
            try:
                write_manifest(self._chunks_dir, upload_identity, total_expected, logical_name)
            except OSError as e:
                raise StorageError(f"Failed to write upload manifest: {e}", upload_identity=upload_identity) from e
            self._progress[upload_identity] = progress
            logger.debug(f"Started tracking upload {upload_identity} ({total_expected} chunks)")
        elif progress.total_expected != total_expected:
            raise InconsistentUploadMetadata(
                f"Total chunk count {total_expected} conflicts with recorded {progress.total_expected}",
                upload_identity=upload_identity,
                chunk_index=chunk_index,
            )
        return progress

    def is_completed(self, upload_identity: str) -> bool:
        """True once the identity was registered and forgotten in this process."""
        return upload_identity in self._completed

    def put_chunk(
        self,
        upload_identity: str,
        chunk_index: int,
        data: bytes,
        total_expected: int,
        logical_name: Optional[str] = None,
    ) -> Optional[ChunkRecord]:
        """
        Durably store one chunk. Idempotent per index: rewriting an index
        replaces the file atomically.

        Returns:
            The ChunkRecord, or None when the identity already completed

        Raises:
            InvalidChunkIndex: If chunk_index is outside [0, total_expected)
            InconsistentUploadMetadata: If total_expected conflicts with the record
            StorageError: If the chunk cannot be written
        """
        self._validate(upload_identity, chunk_index, total_expected)
        if self.is_completed(upload_identity):
            logger.debug(f"Ignoring chunk {chunk_index} for completed upload {upload_identity}")
            return None

        with self._identity_lock(upload_identity):
            if self.is_completed(upload_identity):
                return None
            self._get_or_create_progress(upload_identity, chunk_index, total_expected, logical_name)

        try:
            location = write_chunk(self._chunks_dir, upload_identity, chunk_index, data)
        except OSError as e:
            logger.error(f"Failed to write chunk {chunk_index} of {upload_identity}: {e}")
            raise StorageError(
                f"Failed to write chunk: {e}",
                upload_identity=upload_identity,
                chunk_index=chunk_index,
            ) from e

        record = ChunkRecord(
            upload_identity=upload_identity,
            chunk_index=chunk_index,
            byte_length=len(data),
            storage_location=location,
        )

        with self._identity_lock(upload_identity):
            progress = self._progress.get(upload_identity)
            if progress is None:
                # Forgotten while the bytes were being written.
                self._discard_files(upload_identity)
                return None
            progress.records[chunk_index] = record

        logger.debug(f"Stored chunk {chunk_index}/{total_expected} of {upload_identity} ({len(data)} bytes)")
        return record

    def mark_received(self, upload_identity: str, chunk_index: int, total_expected: int) -> bool:
        """
        Record a stored chunk as received.

        Returns:
            True exactly once per upload: on the call that adds the last
            missing index. Duplicates and every other call return False.

        Raises:
            InvalidChunkIndex: If chunk_index is outside [0, total_expected)
            InconsistentUploadMetadata: If total_expected conflicts with the record
            StorageError: If the chunk was never stored
        """
        self._validate(upload_identity, chunk_index, total_expected)
        if self.is_completed(upload_identity):
            return False

        with self._identity_lock(upload_identity):
            progress = self._progress.get(upload_identity)
            if progress is None:
                if self.is_completed(upload_identity):
                    return False
                raise StorageError(
                    "Chunk marked received before it was stored",
                    upload_identity=upload_identity,
                    chunk_index=chunk_index,
                )
            if progress.total_expected != total_expected:
                raise InconsistentUploadMetadata(
                    f"Total chunk count {total_expected} conflicts with recorded {progress.total_expected}",
                    upload_identity=upload_identity,
                    chunk_index=chunk_index,
                )
            if chunk_index not in progress.records:
                raise StorageError(
                    "Chunk marked received before it was stored",
                    upload_identity=upload_identity,
                    chunk_index=chunk_index,
                )
            if chunk_index in progress.received_indices:
                return False

            progress.received_indices.add(chunk_index)
            completed = progress.is_complete

        if completed:
            logger.info(f"Upload {upload_identity} complete ({total_expected} chunks)")
        return completed

    def claim(self, upload_identity: str, total_expected: int) -> Optional[List[ChunkRecord]]:
        """
        Take the exclusive right to reassemble an upload.

        Returns:
            Chunk records in index order, or None if the identity was already
            forgotten or another caller holds the claim

        Raises:
            CorruptUpload: If the progress record is not complete
        """
        with self._identity_lock(upload_identity, create=False):
            progress = self._progress.get(upload_identity)
            if progress is None or progress.claimed:
                return None
            if progress.total_expected != total_expected or not progress.is_complete:
                raise CorruptUpload(
                    f"Reassembly requested with {len(progress.received_indices)}"
                    f"/{progress.total_expected} chunks received",
                    upload_identity=upload_identity,
                )
            progress.claimed = True
            return [progress.records[index] for index in sorted(progress.records)]

    def release(self, upload_identity: str) -> None:
        """Give up a reassembly claim so the upload can be retried."""
        with self._identity_lock(upload_identity, create=False):
            progress = self._progress.get(upload_identity)
            if progress is not None:
                progress.claimed = False

    def logical_name(self, upload_identity: str) -> Optional[str]:
        progress = self._progress.get(upload_identity)
        return progress.logical_name if progress else None

    def progress(self, upload_identity: str) -> Optional[ProgressSnapshot]:
        with self._identity_lock(upload_identity, create=False):
            progress = self._progress.get(upload_identity)
            return progress.snapshot() if progress else None

    def forget(self, upload_identity: str, completed: bool = False) -> None:
        """
        Discard progress and chunk files for an identity.

        Args:
            upload_identity: Upload to discard
            completed: Tombstone the identity so late duplicate chunks are no-ops.
                Only the most recent max_tombstones identities are kept.
        """
        with self._identity_lock(upload_identity):
            self._progress.pop(upload_identity, None)
            if completed:
                self._add_tombstone(upload_identity)
            self._discard_files(upload_identity)
        logger.debug(f"Forgot upload {upload_identity}")

    def _add_tombstone(self, upload_identity: str) -> None:
        with self._completed_lock:
            self._completed[upload_identity] = None
            self._completed.move_to_end(upload_identity)
            while len(self._completed) > self._max_tombstones:
                self._completed.popitem(last=False)

    def _discard_files(self, upload_identity: str) -> None:
        try:
            delete_upload(self._chunks_dir, upload_identity)
        except OSError as e:
            # Progress is already gone; leftover files only cost disk space.
            logger.warning(f"Failed to delete chunk files of {upload_identity}: {e}")

    def recover(self) -> List[ProgressSnapshot]:
        """
        Rebuild progress records from chunk files left by a previous process.

        Returns:
            Snapshots of every recovered upload
        """
        recovered = []
        for upload_identity in list_upload_identities(self._chunks_dir):
            manifest = read_manifest(self._chunks_dir, upload_identity)
            if manifest is None:
                logger.warning(f"Skipping chunk directory without manifest: {upload_identity}")
                continue

            total_expected = int(manifest['total_expected'])
            with self._identity_lock(upload_identity):
                if upload_identity in self._progress:
                    continue
                progress = UploadProgress(
                    upload_identity=upload_identity,
                    total_expected=total_expected,
                    logical_name=manifest.get('logical_name'),
                )
                for chunk_index, filepath in list_upload_chunks(self._chunks_dir, upload_identity).items():
                    if chunk_index >= total_expected:
                        logger.warning(f"Ignoring out-of-range chunk {chunk_index} of {upload_identity}")
                        continue
                    progress.records[chunk_index] = ChunkRecord(
                        upload_identity=upload_identity,
                        chunk_index=chunk_index,
                        byte_length=filepath.stat().st_size,
                        storage_location=str(filepath),
                    )
                    progress.received_indices.add(chunk_index)
                self._progress[upload_identity] = progress
                recovered.append(progress.snapshot())

        if recovered:
            logger.info(f"Recovered {len(recovered)} uploads from {self._chunks_dir}")
        return recovered
