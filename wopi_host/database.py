"""SQLite schema for file metadata and the connection helper used by the repository."""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from wopi_host.config import DATABASE_PATH, DATABASE_TIMEOUT_SECONDS

# Lock value and lock expiry are either both present or both absent.
FILES_TABLE = """
    CREATE TABLE IF NOT EXISTS files (
        file_id TEXT PRIMARY KEY,
        container TEXT NOT NULL,
        name TEXT NOT NULL,
        size INTEGER NOT NULL DEFAULT 0,
        version INTEGER NOT NULL DEFAULT 0,
        lock_value TEXT,
        lock_expires TEXT,
        last_modified_time TEXT NOT NULL,
        last_modified_user TEXT,
        owner_id TEXT NOT NULL,
        user_info TEXT,
        revision INTEGER NOT NULL DEFAULT 1,
        CHECK ((lock_value IS NULL) = (lock_expires IS NULL))
    )
"""


def init_database() -> None:
    """
    Create the metadata file and the files table if missing.

    WAL journaling lets the executor threads read while a conditional
    update is being committed.
    """
    Path(DATABASE_PATH).parent.mkdir(parents=True, exist_ok=True)

    with get_db_connection() as conn:
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute(FILES_TABLE)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_files_owner_id ON files(owner_id)")
        conn.commit()


@contextmanager
def get_db_connection() -> Generator[sqlite3.Connection, None, None]:
    """
    Open a connection with name-addressable rows; closed on exit.
    """
    conn = sqlite3.connect(DATABASE_PATH, timeout=DATABASE_TIMEOUT_SECONDS)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def row_to_dict(row: Optional[sqlite3.Row]) -> Optional[dict]:
    """Convert a sqlite3.Row into a plain dict (None passes through)."""
    if row is None:
        return None
    return dict(zip(row.keys(), row))
