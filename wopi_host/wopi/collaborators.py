"""Interfaces the WOPI engine needs from its environment."""

from typing import Any, AsyncIterator, Optional, Protocol

from wopi_host.repositories.file_repository import FileRecord


class MetadataStore(Protocol):
    """
    File metadata keyed by file id, with optimistic-concurrency updates.
    """

    async def get_by_id(self, file_id: str) -> Optional[FileRecord]:
        ...

    async def create(self, record: FileRecord) -> FileRecord:
        ...

    async def update(self, record: FileRecord, expected_revision: int) -> FileRecord:
        """
        Must raise ConcurrencyConflictError when the stored revision differs.
        """
        ...


class BlobStore(Protocol):
    """Binary content keyed by (file id, container)."""

    async def get(self, file_id: str, container: str) -> bytes:
        ...

    async def put(self, file_id: str, container: str, data: bytes) -> int:
        ...

    async def stage(self, file_id: str, container: str, data: bytes) -> Any:
        """
        Write content without exposing it; returns a handle for `promote`
        or `discard`.
        """
        ...

    async def promote(self, staged: Any) -> None:
        ...

    async def discard(self, staged: Any) -> None:
        ...

    async def stream(self, file_id: str, container: str) -> AsyncIterator[bytes]:
        ...


class TokenIssuer(Protocol):
    def issue(self, owner_id: str, container: str, file_id: str) -> str:
        ...
