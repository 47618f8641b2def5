"""Pydantic schemas for API requests and responses."""

from wopi_host.schemas.wopi import (
    CheckFileInfoResponse,
    PutRelativeFileResponse,
    RenameFileResponse
)
from wopi_host.schemas.files import (
    UploadFileResponse,
    ActionLinkResponse,
    FileActionsResponse
)
from wopi_host.schemas.common import ErrorResponse

__all__ = [
    "CheckFileInfoResponse",
    "PutRelativeFileResponse",
    "RenameFileResponse",
    "UploadFileResponse",
    "ActionLinkResponse",
    "FileActionsResponse",
    "ErrorResponse"
]
