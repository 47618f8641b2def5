"""Maps an incoming WOPI request (path, verb, override header) to an operation."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from common.constants import (
    OVERRIDE_GET_LOCK,
    OVERRIDE_LOCK,
    OVERRIDE_PUT_RELATIVE,
    OVERRIDE_PUT_USER_INFO,
    OVERRIDE_REFRESH_LOCK,
    OVERRIDE_RENAME_FILE,
    OVERRIDE_UNLOCK,
    WOPI_BASE_PATH,
    WOPI_CONTENTS_PATH,
    WOPI_FILES_PATH,
)


class OperationKind(str, Enum):
    """The WOPI operations this host understands."""
    NONE = "None"
    CHECK_FILE_INFO = "CheckFileInfo"
    GET_FILE = "GetFile"
    PUT_FILE = "PutFile"
    LOCK = "Lock"
    GET_LOCK = "GetLock"
    REFRESH_LOCK = "RefreshLock"
    UNLOCK = "Unlock"
    UNLOCK_AND_RELOCK = "UnlockAndRelock"
    PUT_RELATIVE_FILE = "PutRelativeFile"
    RENAME_FILE = "RenameFile"
    PUT_USER_INFO = "PutUserInfo"


_OVERRIDES = {
    OVERRIDE_GET_LOCK: OperationKind.GET_LOCK,
    OVERRIDE_REFRESH_LOCK: OperationKind.REFRESH_LOCK,
    OVERRIDE_UNLOCK: OperationKind.UNLOCK,
    OVERRIDE_PUT_RELATIVE: OperationKind.PUT_RELATIVE_FILE,
    OVERRIDE_RENAME_FILE: OperationKind.RENAME_FILE,
    OVERRIDE_PUT_USER_INFO: OperationKind.PUT_USER_INFO,
}


@dataclass(frozen=True)
class Classification:
    kind: OperationKind
    file_id: str = ""


NO_OPERATION = Classification(OperationKind.NONE)


def classify(
    path: str,
    method: str,
    override: Optional[str] = None,
    has_old_lock: bool = False
) -> Classification:
    """
    Determine the operation kind and target file id of a request.

    Never raises and performs no I/O; anything unrecognised classifies as
    `OperationKind.NONE`, which the dispatcher answers with 501.

    Args:
        path: Request path, e.g. /wopi/files/<id>/contents
        method: HTTP verb
        override: Value of the X-WOPI-Override header, if any
        has_old_lock: Whether the X-WOPI-OldLock header is present

    Returns:
        Classification with kind and lower-cased file id
    """
    if not isinstance(path, str) or not isinstance(method, str):
        return NO_OPERATION

    request_path = path.lower()
    base_index = request_path.find(WOPI_BASE_PATH)
    if base_index < 0:
        return NO_OPERATION

    wopi_path = request_path[base_index + len(WOPI_BASE_PATH):].rstrip("/")
    if not wopi_path.startswith(WOPI_FILES_PATH):
        return NO_OPERATION

    raw_id = wopi_path[len(WOPI_FILES_PATH):]
    verb = method.upper()

    if raw_id.endswith(WOPI_CONTENTS_PATH):
        file_id = raw_id[:-len(WOPI_CONTENTS_PATH)]
        if not _is_valid_id(file_id):
            return NO_OPERATION
        if verb == "GET":
            return Classification(OperationKind.GET_FILE, file_id)
        if verb == "POST":
            return Classification(OperationKind.PUT_FILE, file_id)
        return NO_OPERATION

    if not _is_valid_id(raw_id):
        return NO_OPERATION

    if verb == "GET":
        return Classification(OperationKind.CHECK_FILE_INFO, raw_id)

    if verb == "POST":
        override_value = (override or "").strip().upper()
        if override_value == OVERRIDE_LOCK:
            kind = OperationKind.UNLOCK_AND_RELOCK if has_old_lock else OperationKind.LOCK
            return Classification(kind, raw_id)
        kind = _OVERRIDES.get(override_value)
        if kind is not None:
            return Classification(kind, raw_id)

    return NO_OPERATION


def _is_valid_id(file_id: str) -> bool:
    return bool(file_id) and "/" not in file_id
