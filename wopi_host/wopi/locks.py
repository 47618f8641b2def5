"""
Per-file lock state machine.

A file is either Unlocked or Locked(value, expires). Expiry is lazy: a lock
whose expiry has passed reads as Unlocked, and the first mutating operation
that sees it clears it as part of its own conditional update.

Every decision is a pure function of (record, lock state, now) returning the
record to persist and, optionally, the conflict to report. `LockEngine`
runs those decisions through one load/decide/write pipeline.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from common.constants import CONCURRENCY_RETRIES, LOCK_DURATION_SECONDS
from common.logging_config import get_logger
from wopi_host.exceptions import (
    BackendTransientError,
    ConcurrencyConflictError,
    LockConflictError,
    ResourceNotFoundError
)
from wopi_host.repositories.file_repository import FileRecord
from wopi_host.wopi.collaborators import MetadataStore

logger = get_logger(__name__)

NOT_LOCKED_REASON = "File isn't locked"
MISMATCH_REASON = "Lock mismatch"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class LockState:
    value: Optional[str] = None
    expires: Optional[datetime] = None

    @property
    def is_locked(self) -> bool:
        return bool(self.value)

    @property
    def current_value(self) -> str:
        """Lock value as echoed in X-WOPI-Lock (empty when unlocked)."""
        return self.value or ""


UNLOCKED = LockState()


def lock_state(record: FileRecord, now: datetime) -> LockState:
    """Observable lock state of `record` at `now`."""
    if not record.lock_value or now > record.lock_expires:
        return UNLOCKED
    return LockState(record.lock_value, record.lock_expires)


@dataclass(frozen=True)
class Decision:
    """Outcome of a lock decision: the record to persist and an optional conflict."""
    record: FileRecord
    conflict: Optional[LockConflictError] = None


class LockRules:
    """
    Pure lock decisions for each mutating operation.

    Each rule receives the record with any expired lock already cleared,
    so persisting `Decision.record` also persists the lazy expiry.
    """

    def __init__(self, lock_duration: timedelta = timedelta(seconds=LOCK_DURATION_SECONDS)):
        self.lock_duration = lock_duration

    def locked(self, record: FileRecord, value: str, now: datetime) -> FileRecord:
        return replace(record, lock_value=value, lock_expires=now + self.lock_duration)

    @staticmethod
    def unlocked(record: FileRecord) -> FileRecord:
        return replace(record, lock_value=None, lock_expires=None)

    def lock(self, record: FileRecord, state: LockState, now: datetime, token: str) -> Decision:
        if not state.is_locked or state.value == token:
            return Decision(self.locked(record, token, now))
        return Decision(record, LockConflictError(state.value, f"File already locked by {state.value}"))

    def refresh_lock(self, record: FileRecord, state: LockState, now: datetime, token: str) -> Decision:
        conflict = self._require_lock(state, token)
        if conflict:
            return Decision(record, conflict)
        return Decision(self.locked(record, token, now))

    def unlock(self, record: FileRecord, state: LockState, now: datetime, token: str) -> Decision:
        conflict = self._require_lock(state, token)
        if conflict:
            return Decision(record, conflict)
        return Decision(self.unlocked(record))

    def unlock_and_relock(
        self,
        record: FileRecord,
        state: LockState,
        now: datetime,
        new_token: str,
        old_token: str
    ) -> Decision:
        conflict = self._require_lock(state, old_token)
        if conflict:
            return Decision(record, conflict)
        return Decision(self.locked(record, new_token, now))

    def put_file(
        self,
        record: FileRecord,
        state: LockState,
        now: datetime,
        token: Optional[str],
        size: int
    ) -> Decision:
        """
        Writing needs the caller's lock, except on a zero-byte unlocked file
        (the document-creation path).
        """
        if not state.is_locked:
            if record.size != 0:
                return Decision(record, LockConflictError("", NOT_LOCKED_REASON))
        elif state.value != token:
            return Decision(record, LockConflictError(state.value, MISMATCH_REASON))

        return Decision(replace(
            record,
            size=size,
            version=record.version + 1,
            last_modified_time=now,
            last_modified_user=record.owner_id,
        ))

    def rename(
        self,
        record: FileRecord,
        state: LockState,
        now: datetime,
        token: Optional[str],
        name: str
    ) -> Decision:
        if state.is_locked and state.value != token:
            return Decision(record, LockConflictError(state.value, f"File locked by {state.value}"))

        renamed = replace(record, name=name)
        if token:
            renamed = self.locked(renamed, token, now)
        return Decision(renamed)

    @staticmethod
    def put_user_info(record: FileRecord, state: LockState, now: datetime, user_info: str) -> Decision:
        return Decision(replace(record, user_info=user_info))

    @staticmethod
    def observe(record: FileRecord, state: LockState, now: datetime) -> Decision:
        """No change beyond clearing an expired lock (GetLock)."""
        return Decision(record)

    @staticmethod
    def _require_lock(state: LockState, token: Optional[str]) -> Optional[LockConflictError]:
        if not state.is_locked:
            return LockConflictError("", NOT_LOCKED_REASON)
        if state.value != token:
            return LockConflictError(state.value, MISMATCH_REASON)
        return None


DecideFn = Callable[[FileRecord, LockState, datetime], Decision]


class LockEngine:
    """
    Runs lock decisions against the metadata store with optimistic concurrency.

    The read-decide-write cycle is retried after a lost conditional update;
    if it is still losing after the retries, the operation fails with
    BackendTransientError.

    Args:
        store: Metadata store providing conditional updates
        clock: Source of aware UTC datetimes (injectable for tests)
        retries: Extra cycles attempted after a concurrency conflict
    """

    def __init__(
        self,
        store: MetadataStore,
        clock: Callable[[], datetime] = utc_now,
        retries: int = CONCURRENCY_RETRIES,
        rules: Optional[LockRules] = None
    ):
        self.store = store
        self.clock = clock
        self.retries = retries
        self.rules = rules or LockRules()

    def state_of(self, record: FileRecord) -> LockState:
        return lock_state(record, self.clock())

    async def transition(self, record: FileRecord, decide: DecideFn) -> FileRecord:
        """
        Apply `decide` to `record`, persisting the result if it changed.

        Args:
            record: The record as already loaded by the caller; later attempts reload it
            decide: Lock rule bound to the request's arguments

        Returns:
            The persisted record

        Raises:
            LockConflictError: The rule rejected the request (after persisting
                any expired-lock clearing)
            ResourceNotFoundError: The file disappeared between attempts
            BackendTransientError: Conditional updates kept losing
        """
        file_id = record.file_id

        for attempt in range(self.retries + 1):
            if attempt > 0:
                record = await self.store.get_by_id(file_id)
                if record is None:
                    raise ResourceNotFoundError(f"File {file_id} no longer exists")

            now = self.clock()
            state = lock_state(record, now)
            base = record if state.is_locked or record.lock_value is None else self.rules.unlocked(record)
            decision = decide(base, state, now)

            try:
                persisted = await self._persist(record, decision.record)
            except ConcurrencyConflictError:
                logger.info(
                    f"Concurrent update detected, retrying [file_id={file_id}] "
                    f"[attempt={attempt + 1}]"
                )
                continue

            if decision.conflict is not None:
                logger.warning(
                    f"Lock conflict [file_id={file_id}] "
                    f"[reason={decision.conflict.reason}]"
                )
                raise decision.conflict

            return persisted

        logger.error(f"Giving up after repeated concurrent updates [file_id={file_id}]")
        raise BackendTransientError(f"File {file_id} is being modified concurrently")

    async def _persist(self, original: FileRecord, updated: FileRecord) -> FileRecord:
        if updated == original:
            return original
        return await self.store.update(updated, original.revision)
