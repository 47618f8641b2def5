"""WOPI protocol routes called by the remote editing service."""

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, Response, StreamingResponse

from common.constants import (
    ACCESS_TOKEN_PARAM,
    HEADER_LOCK,
    HEADER_OLD_LOCK,
    HEADER_OVERRIDE,
    HEADER_PROOF,
    HEADER_PROOF_OLD,
    HEADER_RELATIVE_TARGET,
    HEADER_REQUESTED_NAME,
    HEADER_SUGGESTED_TARGET,
    HEADER_TIMESTAMP,
)
from common.logging_config import get_logger
from wopi_host import config
from wopi_host.service_locator import get_dispatcher
from wopi_host.wopi.classifier import classify
from wopi_host.wopi.dispatcher import WopiDispatcher
from wopi_host.wopi.operations import OperationRequest, WopiResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/wopi", tags=["WOPI"])


def public_base_url(request: Request) -> str:
    """Base URL used in WOPISrc, download and close URLs."""
    if config.PUBLIC_BASE_URL:
        return config.PUBLIC_BASE_URL
    return f"{request.url.scheme}://{request.url.netloc}"


async def build_operation_request(request: Request) -> OperationRequest:
    """
    Classify an incoming request and capture the headers its operation needs.
    """
    headers = request.headers
    classification = classify(
        request.url.path,
        request.method,
        override=headers.get(HEADER_OVERRIDE),
        has_old_lock=HEADER_OLD_LOCK in headers,
    )
    body = await request.body() if request.method.upper() == "POST" else b""

    return OperationRequest(
        file_id=classification.file_id,
        kind=classification.kind,
        url=str(request.url),
        base_url=public_base_url(request),
        access_token=request.query_params.get(ACCESS_TOKEN_PARAM),
        lock=headers.get(HEADER_LOCK),
        old_lock=headers.get(HEADER_OLD_LOCK),
        requested_name=headers.get(HEADER_REQUESTED_NAME),
        relative_target=headers.get(HEADER_RELATIVE_TARGET),
        suggested_target=headers.get(HEADER_SUGGESTED_TARGET),
        proof=headers.get(HEADER_PROOF),
        proof_old=headers.get(HEADER_PROOF_OLD),
        timestamp=headers.get(HEADER_TIMESTAMP),
        body=body,
    )


def to_http_response(result: WopiResponse) -> Response:
    """Render a WopiResponse with the matching Starlette response class."""
    if isinstance(result.body, dict):
        return JSONResponse(status_code=result.status_code, content=result.body, headers=result.headers)
    if isinstance(result.body, bytes):
        return Response(
            content=result.body,
            status_code=result.status_code,
            headers=result.headers,
            media_type="application/octet-stream"
        )
    if result.body is not None:
        return StreamingResponse(
            result.body,
            status_code=result.status_code,
            headers=result.headers,
            media_type="application/octet-stream"
        )
    return Response(status_code=result.status_code, headers=result.headers)


async def _handle(request: Request, dispatcher: WopiDispatcher) -> Response:
    if dispatcher is None:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "WOPI dispatcher not initialized", "code": "NOT_READY"}
        )

    operation = await build_operation_request(request)
    result = await dispatcher.dispatch(operation)
    return to_http_response(result)


@router.get("/files/{file_id}")
async def check_file_info(file_id: str, request: Request, dispatcher: WopiDispatcher = Depends(get_dispatcher)):
    """
    CheckFileInfo: file metadata, capability flags and contextual URLs.

    Raises:
        - 404: File not found
        - 500: Proof validation failed
    """
    return await _handle(request, dispatcher)


@router.get("/files/{file_id}/contents")
async def get_file(file_id: str, request: Request, dispatcher: WopiDispatcher = Depends(get_dispatcher)):
    """
    GetFile: stream the current binary content with X-WOPI-ItemVersion.
    """
    return await _handle(request, dispatcher)


@router.post("/files/{file_id}/contents")
async def put_file(file_id: str, request: Request, dispatcher: WopiDispatcher = Depends(get_dispatcher)):
    """
    PutFile: replace the binary content (requires the caller's lock unless
    the file is still empty).

    Raises:
        - 409: Lock mismatch, X-WOPI-Lock carries the current lock
    """
    return await _handle(request, dispatcher)


@router.post("/files/{file_id}")
async def file_operation(file_id: str, request: Request, dispatcher: WopiDispatcher = Depends(get_dispatcher)):
    """
    Operations selected by X-WOPI-Override: LOCK, GET_LOCK, REFRESH_LOCK,
    UNLOCK, PUT_RELATIVE, RENAME_FILE and PUT_USER_INFO.

    Raises:
        - 400: A required header is missing
        - 409: Lock mismatch, X-WOPI-Lock carries the current lock
        - 501: Unknown override, or mutually exclusive headers
    """
    return await _handle(request, dispatcher)


@router.api_route(
    "/{wopi_path:path}",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    include_in_schema=False
)
async def unsupported(wopi_path: str, request: Request, dispatcher: WopiDispatcher = Depends(get_dispatcher)):
    """Any other WOPI path or verb (folders, ecosystem, PUT, DELETE, ...) answers 501."""
    return await _handle(request, dispatcher)
