"""Utility helper functions for the Controller."""

from datetime import datetime, timezone
from pathlib import PurePath

DEFAULT_LOGICAL_NAME = "upload"


def utc_now() -> datetime:
    """
    Get the current time as an aware UTC datetime.
    """
    return datetime.now(timezone.utc)


def clean_logical_name(name: str) -> str:
    """
    Reduce a client-supplied file name to its base name.

    Args:
        name: File name as sent by the client, possibly with directories

    Returns:
        Base name, or "upload" when nothing usable remains
    """
    base = PurePath((name or "").replace("\\", "/")).name.strip()
    return base or DEFAULT_LOGICAL_NAME


def storage_file_name(upload_identity: str, logical_name: str) -> str:
    """
    Name of the finished file on disk: the identity plus the logical extension.
    """
    return f"{upload_identity}{PurePath(logical_name).suffix.lower()}"
