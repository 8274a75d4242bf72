"""Repository layer for data access."""

from controller.repositories.file_repository import FileRepository

__all__ = [
    "FileRepository",
]
