"""Pydantic schemas for WOPI response bodies (field names are protocol-defined)."""

from typing import Optional
from pydantic import BaseModel


class CheckFileInfoResponse(BaseModel):
    """Body of the CheckFileInfo response."""
    BaseFileName: str
    OwnerId: str
    Size: int
    Version: str
    UserId: str
    UserFriendlyName: str
    LastModifiedTime: Optional[str] = None
    UserInfo: Optional[str] = None

    SupportsCoauth: bool = False
    SupportsExtendedLockLength: bool = False
    SupportsFileCreation: bool = False
    SupportsFolders: bool = False
    SupportsGetLock: bool = True
    SupportsLocks: bool = True
    SupportsRename: bool = True
    SupportsScenarioLinks: bool = False
    SupportsSecureStore: bool = False
    SupportsUpdate: bool = True
    SupportsUserInfo: bool = True

    LicenseCheckForEditIsEnabled: bool = True
    ReadOnly: bool = False
    RestrictedWebViewOnly: bool = False
    UserCanAttend: bool = True
    UserCanNotWriteRelative: bool = False
    UserCanPresent: bool = True
    UserCanRename: bool = True
    UserCanWrite: bool = True
    WebEditingDisabled: bool = False

    CloseUrl: Optional[str] = None
    DownloadUrl: Optional[str] = None
    HostViewUrl: Optional[str] = None
    HostEditUrl: Optional[str] = None
    HostEmbeddedViewUrl: Optional[str] = None


class PutRelativeFileResponse(BaseModel):
    """Body of the PutRelativeFile response."""
    Name: str
    Url: str
    HostViewUrl: Optional[str] = None
    HostEditUrl: Optional[str] = None


class RenameFileResponse(BaseModel):
    """Body of the RenameFile response."""
    Name: str
