"""Repository layer for data access."""

from wopi_host.repositories.file_repository import FileRecord, FileRepository

__all__ = [
    "FileRecord",
    "FileRepository",
]
