"""Provides content checksum calculation and verification helpers."""

import hashlib

from common.constants import DEFAULT_CHECKSUM_ALGORITHM


def ensure_algorithm(algorithm: str) -> str:
    """
    Validate that hashlib supports the given algorithm.

    Raises:
        ValueError: If the algorithm is unknown
    """
    normalized = algorithm.lower()
    if normalized not in hashlib.algorithms_available:
        raise ValueError(f"Unsupported checksum algorithm: {algorithm}")
    return normalized


def compute_checksum(data: bytes, algorithm: str = DEFAULT_CHECKSUM_ALGORITHM) -> str:
    """
    Compute checksum for given data.

    Args:
        data: Bytes to compute checksum for
        algorithm: hashlib algorithm name (default md5, as sent by upload clients)

    Returns:
        Hexadecimal digest
    """
    return hashlib.new(algorithm, data).hexdigest()


def checksums_match(actual: str, expected: str) -> bool:
    """Compare hex digests case-insensitively."""
    return actual.lower() == expected.lower()


def verify_checksum(data: bytes, expected: str, algorithm: str = DEFAULT_CHECKSUM_ALGORITHM) -> bool:
    """
    Verify that data matches expected checksum (case-insensitive hex).
    """
    return checksums_match(compute_checksum(data, algorithm), expected)


class IncrementalChecksumCalculator:
    """
    Calculate a checksum incrementally for streaming data.

    Usage:
        calculator = IncrementalChecksumCalculator("md5")
        calculator.update(chunk1)
        calculator.update(chunk2)
        final_checksum = calculator.finalize()
    """

    def __init__(self, algorithm: str = DEFAULT_CHECKSUM_ALGORITHM):
        self._hasher = hashlib.new(algorithm)
        self._finalized = False

    def update(self, data: bytes) -> None:
        if self._finalized:
            raise ValueError("Cannot update after finalization")
        self._hasher.update(data)

    def finalize(self) -> str:
        """
        Finalize checksum calculation and return result.

        Returns:
            Hexadecimal digest
        """
        self._finalized = True
        return self._hasher.hexdigest()
