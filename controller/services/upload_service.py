"""Upload orchestration: chunk arrival -> completion -> reassembly -> registration -> ingestion."""

from functools import partial
from pathlib import Path
from typing import List, Optional, Tuple

from chunkstore.checksum_validator import compute_checksum, verify_checksum
from chunkstore.chunk_storage import validate_upload_identity, write_file_atomic
from chunkstore.chunk_store import ChunkStore
from chunkstore.reassembler import Reassembler
from common.exceptions import ChunkloadError, CorruptUpload, DatabaseError, StorageError, TabularIngestionError
from common.logging_config import get_logger
from common.types import (
    FinishedFile,
    IngestionReport,
    IngestionStatus,
    ProgressSnapshot,
    UploadResult,
    UploadStatus,
)
from controller.config import Settings
from controller.database import get_warehouse_connection, init_database
from controller.repositories.file_repository import FileRepository
from controller.utils import clean_logical_name, storage_file_name, utc_now
from tabular.pipeline import TabularIngestionPipeline, is_tabular, table_name_for

logger = get_logger(__name__)


class UploadService:
    """
    Thread-safe coordinator; one instance serves every concurrent chunk worker.

    Per-identity serialization lives in the ChunkStore. Reassembly, file
    registration and ingestion run without holding any lock. They run at most
    once per identity: the reassembler claims the upload exclusively and
    FileRepository.save reports a single creator. An upload's chunks are
    forgotten only after its finished file is registered.
    """

    def __init__(
        self,
        settings: Settings,
        chunk_store: Optional[ChunkStore] = None,
        file_repo: Optional[FileRepository] = None,
        pipeline: Optional[TabularIngestionPipeline] = None,
    ):
        self.settings = settings
        settings.files_dir.mkdir(parents=True, exist_ok=True)
        settings.chunks_dir.mkdir(parents=True, exist_ok=True)

        if file_repo is None:
            init_database(settings.database_path)
            file_repo = FileRepository(settings.database_path)

        self.chunk_store = chunk_store or ChunkStore(settings.chunks_dir)
        self.file_repo = file_repo
        self.reassembler = Reassembler(
            self.chunk_store,
            checksum_algorithm=settings.checksum_algorithm if settings.verify_checksum else None,
        )
        self.pipeline = pipeline or TabularIngestionPipeline(
            partial(get_warehouse_connection, settings.warehouse_path),
            batch_size=settings.batch_size,
            text_column_width=settings.text_column_width,
            schema_sample_rows=settings.schema_sample_rows,
        )

    def is_uploaded(self, upload_identity: str) -> bool:
        """Whether a client may skip uploading content with this identity."""
        validate_upload_identity(upload_identity)
        return self.file_repo.exists_by_identity(upload_identity)

    def get_progress(self, upload_identity: str) -> Optional[ProgressSnapshot]:
        validate_upload_identity(upload_identity)
        return self.chunk_store.progress(upload_identity)

    def submit_chunk(
        self,
        upload_identity: str,
        chunk_index: int,
        total_chunks: int,
        data: bytes,
        logical_file_name: str,
    ) -> UploadResult:
        """
        Store one chunk and, if it completes the upload, finish the file.

        Safe to retry with the same arguments after any UploadError.
        """
        logical_name = clean_logical_name(logical_file_name)
        validate_upload_identity(upload_identity)

        if self.file_repo.exists_by_identity(upload_identity):
            logger.debug(f"Chunk {chunk_index} of already uploaded {upload_identity} ignored")
            return UploadResult(
                upload_identity=upload_identity,
                status=UploadStatus.ALREADY_UPLOADED,
                chunk_index=chunk_index,
            )

        received = UploadResult(
            upload_identity=upload_identity,
            status=UploadStatus.RECEIVED,
            chunk_index=chunk_index,
        )
        record = self.chunk_store.put_chunk(
            upload_identity, chunk_index, data, total_chunks, logical_name=logical_name
        )
        if record is None:
            return received

        if not self.chunk_store.mark_received(upload_identity, chunk_index, total_chunks):
            snapshot = self.chunk_store.progress(upload_identity)
            if snapshot is None or not snapshot.complete:
                return received
            # Complete but still tracked: an earlier reassembly failed or is
            # running. The reassembler's claim decides who proceeds.
            logger.info(f"Resent chunk {chunk_index} retries reassembly of {upload_identity}")

        # The name recorded with the first chunk wins.
        logical_name = self.chunk_store.logical_name(upload_identity) or logical_name
        return self._complete_chunked_upload(upload_identity, total_chunks, logical_name, chunk_index)

    def submit_whole_file(self, logical_file_name: str, content_identity: str, data: bytes) -> UploadResult:
        """
        Single-shot upload that bypasses chunk bookkeeping.
        """
        logical_name = clean_logical_name(logical_file_name)
        validate_upload_identity(content_identity)

        if self.file_repo.exists_by_identity(content_identity):
            return UploadResult(upload_identity=content_identity, status=UploadStatus.ALREADY_UPLOADED)

        algorithm = self.settings.checksum_algorithm
        if self.settings.verify_checksum and not verify_checksum(data, content_identity, algorithm):
            actual = compute_checksum(data, algorithm)
            logger.error(f"Checksum mismatch for {content_identity}: computed {actual}")
            raise CorruptUpload(
                f"Content {algorithm} {actual} does not match identity",
                upload_identity=content_identity,
            )

        target = self.settings.files_dir / storage_file_name(content_identity, logical_name)
        try:
            write_file_atomic(target, data)
        except OSError as e:
            raise StorageError(f"Failed to write file: {e}", upload_identity=content_identity) from e

        logger.info(f"Stored whole file {logical_name} [identity={content_identity}] ({len(data)} bytes)")
        finished_file, created = self._save(content_identity, logical_name, target)
        return self._finish(finished_file, created)

    def recover(self) -> List[UploadResult]:
        """
        Rebuild chunk progress after a restart and finish uploads whose
        chunks were all on disk.

        An upload that cannot be finished is logged and left on disk; the
        remaining uploads are still processed.
        """
        results = []
        for snapshot in self.chunk_store.recover():
            if not snapshot.complete:
                continue
            upload_identity = snapshot.upload_identity
            try:
                if self.file_repo.exists_by_identity(upload_identity):
                    self.chunk_store.forget(upload_identity, completed=True)
                    continue
                logical_name = self.chunk_store.logical_name(upload_identity) or clean_logical_name("")
                logger.info(f"Finishing recovered upload {upload_identity}")
                results.append(
                    self._complete_chunked_upload(upload_identity, snapshot.total_expected, logical_name)
                )
            except ChunkloadError as e:
                logger.error(f"Could not finish recovered upload {upload_identity}: {e}", exc_info=True)
        return results

    def _complete_chunked_upload(
        self,
        upload_identity: str,
        total_chunks: int,
        logical_name: str,
        chunk_index: Optional[int] = None,
    ) -> UploadResult:
        target = self.settings.files_dir / storage_file_name(upload_identity, logical_name)
        finished_path = self.reassembler.reassemble(upload_identity, total_chunks, target)
        if finished_path is None:
            return UploadResult(
                upload_identity=upload_identity,
                status=UploadStatus.RECEIVED,
                chunk_index=chunk_index,
            )

        try:
            finished_file, created = self._save(upload_identity, logical_name, finished_path)
        except Exception:
            # Chunks stay tracked so a resent chunk or the next recovery retries.
            self.chunk_store.release(upload_identity)
            raise

        self.chunk_store.forget(upload_identity, completed=True)
        return self._finish(finished_file, created, chunk_index)

    def _save(self, upload_identity: str, logical_name: str, path: Path) -> Tuple[FinishedFile, bool]:
        finished_file = FinishedFile(
            logical_name=logical_name,
            upload_identity=upload_identity,
            storage_path=str(path),
            size=path.stat().st_size,
            created_at=utc_now(),
        )
        return finished_file, self.file_repo.save(finished_file)

    def _finish(
        self,
        finished_file: FinishedFile,
        created: bool,
        chunk_index: Optional[int] = None,
    ) -> UploadResult:
        if not created:
            return UploadResult(
                upload_identity=finished_file.upload_identity,
                status=UploadStatus.ALREADY_UPLOADED,
                chunk_index=chunk_index,
            )

        ingestion = None
        if is_tabular(finished_file.logical_name, self.settings.tabular_extensions):
            ingestion = self._ingest(finished_file)

        return UploadResult(
            upload_identity=finished_file.upload_identity,
            status=UploadStatus.COMPLETED,
            chunk_index=chunk_index,
            finished_file=finished_file,
            ingestion=ingestion,
        )

    def _ingest(self, finished_file: FinishedFile) -> IngestionReport:
        """
        Run the tabular pipeline. Failures are reported, never raised: the
        finished file stays registered either way.
        """
        table_name = table_name_for(finished_file.logical_name)
        try:
            return self.pipeline.run(Path(finished_file.storage_path), table_name)
        except (TabularIngestionError, DatabaseError) as e:
            logger.error(
                f"Ingestion of {finished_file.logical_name} into {table_name} failed "
                f"[identity={finished_file.upload_identity}]: {e}",
                exc_info=True,
            )
            return IngestionReport(
                table_name=table_name,
                status=IngestionStatus.FAILED,
                error=str(e),
                error_code=_error_code(e),
            )


def _error_code(exc: Exception) -> str:
    """CamelCase exception name -> UPPER_SNAKE code."""
    name = type(exc).__name__
    return "".join(f"_{c}" if c.isupper() and i else c for i, c in enumerate(name)).upper()
