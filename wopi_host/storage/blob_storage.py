"""Manages document content on disk: read/write/stream keyed by (file_id, container)."""

import asyncio
import os
import uuid
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import AsyncIterator

from common.constants import STREAM_PIECE_SIZE_BYTES
from common.logging_config import get_logger
from wopi_host.exceptions import BackendTransientError, ResourceNotFoundError

logger = get_logger(__name__)


@dataclass(frozen=True)
class StagedBlob:
    """Content written beside its final location, not yet visible to readers."""
    file_id: str
    container: str
    path: Path
    size: int


class BlobStorage:
    """
    Filesystem binary store.

    Content for a file lives at `<root>/<container>/<file_id>.bin`. Writes are
    staged to a uniquely named sibling file and promoted with an atomic rename,
    so readers never observe a partially written document and a caller can
    stage content before committing the metadata that describes it.
    """

    def __init__(self, root: str):
        self.root = Path(root)

    def get_blob_path(self, file_id: str, container: str) -> Path:
        """
        Get file path for a blob.

        Args:
            file_id: UUID of the file
            container: Storage container name

        Returns:
            Path object for the blob file
        """
        return self.root / container / f"{file_id}.bin"

    async def get(self, file_id: str, container: str) -> bytes:
        """
        Read the entire blob.

        Raises:
            ResourceNotFoundError: If no content has been stored
            BackendTransientError: If the read fails
        """
        return await self._run(self._read, file_id, container)

    async def put(self, file_id: str, container: str, data: bytes) -> int:
        """
        Store (or replace) the blob.

        Returns:
            Number of bytes written
        """
        staged = await self.stage(file_id, container, data)
        await self.promote(staged)
        return staged.size

    async def stage(self, file_id: str, container: str, data: bytes) -> StagedBlob:
        """
        Write `data` next to the blob without replacing it.

        The staged file must later be passed to `promote` or `discard`.
        """
        return await self._run(self._stage, file_id, container, data)

    async def promote(self, staged: StagedBlob) -> None:
        """Atomically replace the blob with staged content."""
        await self._run(self._promote, staged)
        logger.info(f"Stored {staged.size} bytes [file_id={staged.file_id}] [container={staged.container}]")

    async def discard(self, staged: StagedBlob) -> None:
        """Remove staged content that will not be promoted."""
        await self._run(self._discard, staged)

    async def stream(
        self,
        file_id: str,
        container: str,
        piece_size: int = STREAM_PIECE_SIZE_BYTES
    ) -> AsyncIterator[bytes]:
        """
        Stream blob data in pieces.

        The file is opened eagerly so a missing blob is reported before the
        first piece is requested.
        """
        handle = await self._run(self._open, file_id, container)
        return self._iterate(handle, piece_size)

    async def _iterate(self, handle, piece_size: int) -> AsyncIterator[bytes]:
        loop = asyncio.get_running_loop()
        try:
            while True:
                piece = await loop.run_in_executor(None, handle.read, piece_size)
                if not piece:
                    break
                yield piece
        finally:
            handle.close()

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, partial(func, *args))
        except FileNotFoundError as e:
            raise ResourceNotFoundError(f"No content stored for {args[0]}") from e
        except OSError as e:
            logger.error(f"Blob storage failure in {func.__name__}: {e}", exc_info=True)
            raise BackendTransientError(f"Blob storage failure: {e}") from e

    def _read(self, file_id: str, container: str) -> bytes:
        return self.get_blob_path(file_id, container).read_bytes()

    def _open(self, file_id: str, container: str):
        return open(self.get_blob_path(file_id, container), "rb")

    def _stage(self, file_id: str, container: str, data: bytes) -> StagedBlob:
        filepath = self.get_blob_path(file_id, container)
        filepath.parent.mkdir(parents=True, exist_ok=True)

        staged_path = filepath.with_name(f"{file_id}.{uuid.uuid4().hex}.staged")
        try:
            staged_path.write_bytes(data)
        except OSError:
            staged_path.unlink(missing_ok=True)
            raise
        return StagedBlob(file_id=file_id, container=container, path=staged_path, size=len(data))

    def _promote(self, staged: StagedBlob) -> None:
        os.replace(staged.path, self.get_blob_path(staged.file_id, staged.container))

    def _discard(self, staged: StagedBlob) -> None:
        staged.path.unlink(missing_ok=True)

