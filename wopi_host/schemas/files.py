"""Pydantic schemas for the host-facing document endpoints."""

from typing import List
from pydantic import BaseModel


class UploadFileResponse(BaseModel):
    """Response model for document upload."""
    file_id: str
    name: str
    size: int
    container: str
    owner_id: str
    version: int


class ActionLinkResponse(BaseModel):
    """One discovery action resolved for a document."""
    app: str
    name: str
    ext: str
    url: str
    is_default: bool
    fav_icon_url: str = ""


class FileActionsResponse(BaseModel):
    """
    Response model for opening a document in the editor frame.

    `access_token_ttl` is the token expiry in milliseconds since the epoch,
    posted by the host page alongside the token.
    """
    file_id: str
    name: str
    access_token: str
    access_token_ttl: int
    actions: List[ActionLinkResponse]
