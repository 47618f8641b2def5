"""Service layer for business logic."""

from wopi_host.services.file_service import FileService, OpenedFile

__all__ = [
    "FileService",
    "OpenedFile",
]
