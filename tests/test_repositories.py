"""Integration tests for the metadata repository and blob storage."""

import sqlite3
import time
from dataclasses import replace
from datetime import timedelta

import pytest

from wopi_host.database import get_db_connection, row_to_dict
from wopi_host.exceptions import BackendTransientError, ConcurrencyConflictError, ResourceNotFoundError
from wopi_host.security import AccessTokenIssuer


class TestDatabaseHelpers:
    """Test database helper functions."""

    def test_row_to_dict_with_valid_row(self, test_db):
        with get_db_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT INTO files (file_id, container, name, last_modified_time, owner_id) "
                "VALUES (?, ?, ?, ?, ?)",
                ("test-id", "documents", "a.docx", "2026-01-07T10:00:00+00:00", "alice")
            )
            conn.commit()

            cursor.execute("SELECT * FROM files WHERE file_id = ?", ("test-id",))
            row = cursor.fetchone()

            result = row_to_dict(row)
            assert result is not None
            assert result["file_id"] == "test-id"
            assert result["version"] == 0
            assert result["revision"] == 1
            assert result["lock_value"] is None
            assert isinstance(result, dict)

    def test_row_to_dict_with_none(self):
        result = row_to_dict(None)
        assert result is None

    def test_lock_columns_must_be_set_together(self, test_db):
        with get_db_connection() as conn:
            with pytest.raises(sqlite3.IntegrityError):
                conn.execute(
                    "INSERT INTO files (file_id, container, name, last_modified_time, owner_id, lock_value) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    ("test-id", "documents", "a.docx", "2026-01-07T10:00:00+00:00", "alice", "A")
                )


class TestFileRepository:
    """Test FileRepository operations."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, file_repo, make_record):
        record = make_record(user_info="theme=dark")

        await file_repo.create(record)
        stored = await file_repo.get_by_id(record.file_id)

        assert stored == record
        assert stored.last_modified_time.tzinfo is not None

    @pytest.mark.asyncio
    async def test_get_by_id_nonexistent(self, file_repo):
        assert await file_repo.get_by_id("does-not-exist") is None

    @pytest.mark.asyncio
    async def test_create_duplicate_is_backend_error(self, file_repo, make_record):
        await file_repo.create(make_record())

        with pytest.raises(BackendTransientError):
            await file_repo.create(make_record())

    @pytest.mark.asyncio
    async def test_update_increments_revision(self, file_repo, make_record, clock):
        record = await file_repo.create(make_record())
        locked = replace(record, lock_value="A", lock_expires=clock() + timedelta(minutes=30))

        updated = await file_repo.update(locked, expected_revision=record.revision)

        assert updated.revision == record.revision + 1
        stored = await file_repo.get_by_id(record.file_id)
        assert stored == updated
        assert stored.lock_value == "A"

    @pytest.mark.asyncio
    async def test_update_with_stale_revision(self, file_repo, make_record):
        record = await file_repo.create(make_record())
        await file_repo.update(replace(record, name="first.xlsx"), expected_revision=record.revision)

        with pytest.raises(ConcurrencyConflictError):
            await file_repo.update(replace(record, name="second.xlsx"), expected_revision=record.revision)

        stored = await file_repo.get_by_id(record.file_id)
        assert stored.name == "first.xlsx"

    @pytest.mark.asyncio
    async def test_update_missing_record(self, file_repo, make_record):
        with pytest.raises(ConcurrencyConflictError):
            await file_repo.update(make_record(), expected_revision=1)

    def test_record_extension(self, make_record):
        assert make_record(name="Quarterly.Report.XLSX").extension == "xlsx"
        assert make_record(name="README").extension == "readme"


class TestBlobStorage:
    """Test BlobStorage operations."""

    @pytest.mark.asyncio
    async def test_put_and_get(self, blob_storage):
        written = await blob_storage.put("file-1", "documents", b"content")

        assert written == len(b"content")
        assert await blob_storage.get("file-1", "documents") == b"content"
        assert blob_storage.get_blob_path("file-1", "documents").name == "file-1.bin"

    @pytest.mark.asyncio
    async def test_put_replaces_content(self, blob_storage):
        await blob_storage.put("file-1", "documents", b"old")
        await blob_storage.put("file-1", "documents", b"new")

        assert await blob_storage.get("file-1", "documents") == b"new"
        assert list(blob_storage.get_blob_path("file-1", "documents").parent.glob("*.staged")) == []

    @pytest.mark.asyncio
    async def test_staged_content_is_invisible_until_promoted(self, blob_storage):
        await blob_storage.put("file-1", "documents", b"old")

        staged = await blob_storage.stage("file-1", "documents", b"new")

        assert staged.size == 3
        assert await blob_storage.get("file-1", "documents") == b"old"
        await blob_storage.promote(staged)
        assert await blob_storage.get("file-1", "documents") == b"new"
        assert not staged.path.exists()

    @pytest.mark.asyncio
    async def test_discarded_content_leaves_blob_alone(self, blob_storage):
        await blob_storage.put("file-1", "documents", b"old")

        staged = await blob_storage.stage("file-1", "documents", b"new")
        await blob_storage.discard(staged)

        assert await blob_storage.get("file-1", "documents") == b"old"
        assert not staged.path.exists()

    @pytest.mark.asyncio
    async def test_containers_are_separate(self, blob_storage):
        await blob_storage.put("file-1", "documents", b"doc")

        with pytest.raises(ResourceNotFoundError):
            await blob_storage.get("file-1", "archive")

    @pytest.mark.asyncio
    async def test_stream_in_pieces(self, blob_storage):
        await blob_storage.put("file-1", "documents", b"abcdefghij")

        stream = await blob_storage.stream("file-1", "documents", piece_size=4)
        pieces = [piece async for piece in stream]

        assert pieces == [b"abcd", b"efgh", b"ij"]

    @pytest.mark.asyncio
    async def test_stream_missing_blob(self, blob_storage):
        with pytest.raises(ResourceNotFoundError):
            await blob_storage.stream("missing", "documents")


class TestAccessTokenIssuer:
    """Test access token issuance."""

    def test_expiry_in_milliseconds(self):
        issuer = AccessTokenIssuer(secret="s", ttl_seconds=600)
        now = int(time.time())

        token = issuer.issue("alice", "documents", "file-1", now=now)

        assert issuer.expires_at_ms(token) == (now + 600) * 1000

    def test_tokens_differ_per_file(self):
        issuer = AccessTokenIssuer(secret="s", ttl_seconds=600)

        first = issuer.issue("alice", "documents", "file-1", now=1_700_000_000)
        second = issuer.issue("alice", "documents", "file-2", now=1_700_000_000)

        assert first != second
