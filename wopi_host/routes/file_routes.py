"""Host-facing document routes: upload, and open in the editor frame."""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status, HTTPException

from wopi_host.routes.wopi_routes import public_base_url
from wopi_host.schemas.common import ErrorResponse
from wopi_host.schemas.files import ActionLinkResponse, FileActionsResponse, UploadFileResponse
from wopi_host.service_locator import get_file_service
from wopi_host.services.file_service import DEFAULT_CONTAINER, FileService

router = APIRouter(prefix="/files", tags=["Files"])


def require_file_service(file_service: FileService = Depends(get_file_service)) -> FileService:
    if file_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="File service not initialized"
        )
    return file_service


@router.post("", response_model=UploadFileResponse, status_code=status.HTTP_201_CREATED)
async def upload_file(
    file: UploadFile = File(...),
    owner_id: str = Form(...),
    container: str = Form(DEFAULT_CONTAINER),
    file_service: FileService = Depends(require_file_service)
):
    """
    Upload a document.

    Parameters:
        - file: Document to upload (multipart/form-data)
        - owner_id: Owner of the document
        - container: Storage container (defaults to "documents")

    Returns:
        - file_id: UUID of the uploaded document
        - name, size, container, owner_id, version

    Raises:
        - 400: Missing file name
        - 500: Storage failure
    """
    if not file.filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Uploaded file must have a name"
        )

    content = await file.read()

    record = await file_service.upload_file(
        file_name=file.filename,
        data=content,
        owner_id=owner_id,
        container=container,
    )

    return UploadFileResponse(
        file_id=record.file_id,
        name=record.name,
        size=record.size,
        container=record.container,
        owner_id=record.owner_id,
        version=record.version,
    )


@router.get(
    "/{file_id}/actions",
    response_model=FileActionsResponse,
    responses={404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}}
)
async def file_actions(
    file_id: str,
    request: Request,
    owner_id: str = Query(..., description="Owner requesting the document"),
    action: Optional[str] = Query(None, description="Restrict to one action, e.g. view or edit"),
    file_service: FileService = Depends(require_file_service)
):
    """
    Resolve the editor actions for a document.

    Returns the discovery actions that apply to the document's extension
    with their built iframe URLs, plus an access token and its expiry
    (milliseconds since the epoch) for the host page to post.

    Raises:
        - 404: File not found (or owned by someone else)
        - 500: Discovery unavailable
    """
    opened = await file_service.open_file(
        file_id=file_id.lower(),
        owner_id=owner_id,
        base_url=public_base_url(request),
        action=action,
    )

    return FileActionsResponse(
        file_id=opened.record.file_id,
        name=opened.record.name,
        access_token=opened.access_token,
        access_token_ttl=opened.access_token_ttl,
        actions=[
            ActionLinkResponse(
                app=descriptor.app,
                name=descriptor.name,
                ext=descriptor.ext,
                url=url,
                is_default=descriptor.is_default,
                fav_icon_url=descriptor.fav_icon_url,
            )
            for descriptor, url in opened.actions
        ],
    )
