"""Schemas shared by the WOPI and document endpoints."""

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Error body: human-readable detail plus a stable error code."""
    detail: str
    code: str
