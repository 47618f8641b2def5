"""File repository for database operations."""

import asyncio
import sqlite3
from dataclasses import dataclass, replace
from datetime import datetime
from functools import partial
from typing import Optional

from common.logging_config import get_logger
from wopi_host.database import get_db_connection
from wopi_host.exceptions import BackendTransientError, ConcurrencyConflictError

logger = get_logger(__name__)

_COLUMNS = (
    "file_id, container, name, size, version, lock_value, lock_expires, "
    "last_modified_time, last_modified_user, owner_id, user_info, revision"
)


@dataclass(frozen=True)
class FileRecord:
    """
    Persisted metadata for one document.

    `revision` is the optimistic-concurrency token: every successful update
    increments it, and a conditional update only applies when the stored
    revision still matches the one the caller read.
    """
    file_id: str
    container: str
    name: str
    size: int
    version: int
    owner_id: str
    last_modified_time: datetime
    last_modified_user: Optional[str] = None
    lock_value: Optional[str] = None
    lock_expires: Optional[datetime] = None
    user_info: Optional[str] = None
    revision: int = 1

    def __post_init__(self):
        if (self.lock_value is None) != (self.lock_expires is None):
            raise ValueError("lock_value and lock_expires must be set together")

    @property
    def extension(self) -> str:
        """Lower-cased extension (text after the last dot)."""
        return self.name.rsplit(".", 1)[-1].lower()


def _row_to_record(row: sqlite3.Row) -> FileRecord:
    return FileRecord(
        file_id=row["file_id"],
        container=row["container"],
        name=row["name"],
        size=row["size"],
        version=row["version"],
        owner_id=row["owner_id"],
        last_modified_time=datetime.fromisoformat(row["last_modified_time"]),
        last_modified_user=row["last_modified_user"],
        lock_value=row["lock_value"],
        lock_expires=datetime.fromisoformat(row["lock_expires"]) if row["lock_expires"] else None,
        user_info=row["user_info"],
        revision=row["revision"],
    )


class FileRepository:
    """
    SQLite-backed metadata store.

    Public methods are coroutines; the blocking sqlite work runs in the
    default executor so a slow disk never stalls other requests.
    """

    async def get_by_id(self, file_id: str) -> Optional[FileRecord]:
        return await self._run(self._get_by_id, file_id)

    async def create(self, record: FileRecord) -> FileRecord:
        return await self._run(self._create, record)

    async def update(self, record: FileRecord, expected_revision: int) -> FileRecord:
        """
        Persist `record` only if the stored revision equals `expected_revision`.

        Raises:
            ConcurrencyConflictError: the record changed (or vanished) since it was read
        """
        return await self._run(self._update, record, expected_revision)

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, partial(func, *args))
        except sqlite3.Error as e:
            logger.error(f"Metadata store failure in {func.__name__}: {e}", exc_info=True)
            raise BackendTransientError(f"Metadata store failure: {e}") from e

    @staticmethod
    def _get_by_id(file_id: str) -> Optional[FileRecord]:
        with get_db_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT {_COLUMNS} FROM files WHERE file_id = ?",
                (file_id,)
            )
            row = cursor.fetchone()

            if row is None:
                return None

            return _row_to_record(row)

    @staticmethod
    def _create(record: FileRecord) -> FileRecord:
        with get_db_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                INSERT INTO files ({_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.file_id,
                    record.container,
                    record.name,
                    record.size,
                    record.version,
                    record.lock_value,
                    record.lock_expires.isoformat() if record.lock_expires else None,
                    record.last_modified_time.isoformat(),
                    record.last_modified_user,
                    record.owner_id,
                    record.user_info,
                    record.revision,
                )
            )
            conn.commit()

        logger.info(f"File created [file_id={record.file_id}] [name={record.name}]")
        return record

    @staticmethod
    def _update(record: FileRecord, expected_revision: int) -> FileRecord:
        new_revision = expected_revision + 1

        with get_db_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                UPDATE files
                SET name = ?, size = ?, version = ?, lock_value = ?, lock_expires = ?,
                    last_modified_time = ?, last_modified_user = ?, user_info = ?,
                    revision = ?
                WHERE file_id = ? AND revision = ?
                """,
                (
                    record.name,
                    record.size,
                    record.version,
                    record.lock_value,
                    record.lock_expires.isoformat() if record.lock_expires else None,
                    record.last_modified_time.isoformat(),
                    record.last_modified_user,
                    record.user_info,
                    new_revision,
                    record.file_id,
                    expected_revision,
                )
            )

            if cursor.rowcount == 0:
                conn.rollback()
                logger.debug(
                    f"Conditional update lost [file_id={record.file_id}] "
                    f"[expected_revision={expected_revision}]"
                )
                raise ConcurrencyConflictError(
                    f"File {record.file_id} changed since revision {expected_revision}"
                )

            conn.commit()

        return replace(record, revision=new_revision)
