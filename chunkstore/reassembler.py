"""Concatenates a completed upload's chunks into one finished file."""

import os
import uuid
from pathlib import Path
from typing import Iterator, Optional

from chunkstore.checksum_validator import IncrementalChecksumCalculator, checksums_match
from chunkstore.chunk_storage import read_chunk_streaming
from chunkstore.chunk_store import ChunkStore
from common.constants import READ_PIECE_SIZE_BYTES
from common.exceptions import CorruptUpload, StorageError
from common.logging_config import get_logger
from common.types import ChunkRecord

logger = get_logger(__name__)


class Reassembler:
    """
    Produces the finished artifact for a completed upload, at most once.

    The output is written to a temporary sibling and renamed into place, so a
    failure never leaves a partial finished file. Chunks are kept on failure
    so the caller may retry. On success the claim stays held until the caller
    forgets the identity, once the finished file is registered.
    """

    def __init__(
        self,
        chunk_store: ChunkStore,
        checksum_algorithm: Optional[str] = None,
        piece_size: int = READ_PIECE_SIZE_BYTES,
    ):
        """
        Args:
            chunk_store: Store that signalled completion
            checksum_algorithm: When set, the finished bytes must hash to the
                upload identity with this algorithm
            piece_size: Streaming copy buffer size
        """
        self._chunk_store = chunk_store
        self._checksum_algorithm = checksum_algorithm
        self._piece_size = piece_size

    def reassemble(self, upload_identity: str, total_expected: int, target_path: Path) -> Optional[Path]:
        """
        Write chunks 0..total_expected-1 in index order to target_path.

        Returns:
            target_path on success, None if the identity was already
            reassembled (or is being reassembled) by another caller.
            After success the caller must forget the identity, or release
            it to allow another attempt.

        Raises:
            CorruptUpload: If a chunk is missing, unreadable, resized, or the
                content checksum does not match the identity
            StorageError: If the finished file cannot be written
        """
        records = self._chunk_store.claim(upload_identity, total_expected)
        if records is None:
            logger.info(f"Reassembly of {upload_identity} skipped: already handled")
            return None

        target_path = Path(target_path)
        tmp_path = target_path.with_name(f".{target_path.name}.{uuid.uuid4().hex}.partial")
        logger.info(f"Reassembling {upload_identity} from {total_expected} chunks into {target_path}")

        try:
            by_index = {record.chunk_index: record for record in records}
            calculator = IncrementalChecksumCalculator(self._checksum_algorithm) if self._checksum_algorithm else None
            total_bytes = 0

            try:
                target_path.parent.mkdir(parents=True, exist_ok=True)
                with open(tmp_path, 'wb') as out:
                    for chunk_index in range(total_expected):
                        record = by_index.get(chunk_index)
                        if record is None:
                            raise CorruptUpload(
                                "Chunk missing at reassembly",
                                upload_identity=upload_identity,
                                chunk_index=chunk_index,
                            )
                        for piece in self._read_pieces(record):
                            out.write(piece)
                            if calculator is not None:
                                calculator.update(piece)
                        total_bytes += record.byte_length
                    out.flush()
                    os.fsync(out.fileno())

                if calculator is not None:
                    self._verify_checksum(upload_identity, calculator.finalize())

                os.replace(tmp_path, target_path)
            except OSError as e:
                raise StorageError(
                    f"Failed to write finished file {target_path}: {e}",
                    upload_identity=upload_identity,
                ) from e
        except Exception:
            tmp_path.unlink(missing_ok=True)
            self._chunk_store.release(upload_identity)
            raise

        logger.info(f"Reassembled {upload_identity}: {total_bytes} bytes at {target_path}")
        return target_path

    def _read_pieces(self, record: ChunkRecord) -> Iterator[bytes]:
        copied = 0
        try:
            for piece in read_chunk_streaming(Path(record.storage_location), self._piece_size):
                copied += len(piece)
                yield piece
        except OSError as e:
            logger.error(f"Unreadable chunk {record.chunk_index} of {record.upload_identity}: {e}")
            raise CorruptUpload(
                f"Chunk unreadable at reassembly: {e}",
                upload_identity=record.upload_identity,
                chunk_index=record.chunk_index,
            ) from e

        if copied != record.byte_length:
            logger.error(
                f"Chunk {record.chunk_index} of {record.upload_identity} has {copied} bytes, "
                f"recorded {record.byte_length}"
            )
            raise CorruptUpload(
                f"Chunk size changed: {copied} bytes on disk, {record.byte_length} recorded",
                upload_identity=record.upload_identity,
                chunk_index=record.chunk_index,
            )

    def _verify_checksum(self, upload_identity: str, actual: str) -> None:
        if not checksums_match(actual, upload_identity):
            logger.error(f"Checksum mismatch for {upload_identity}: computed {actual}")
            raise CorruptUpload(
                f"Content {self._checksum_algorithm} {actual} does not match identity",
                upload_identity=upload_identity,
            )
