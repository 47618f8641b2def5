"""
Composes the WOPI pipeline: classify, validate proof, load the file,
resolve its actions, run the operation handler.
"""

from typing import List, Optional

from common.constants import HEADER_LOCK, HEADER_LOCK_FAILURE_REASON, HEADER_SERVER_ERROR
from common.logging_config import get_logger
from common.types import ActionDescriptor
from wopi_host.exceptions import (
    LockConflictError,
    ProofValidationError,
    ResourceNotFoundError,
    UnsupportedOperationError,
    WopiException
)
from wopi_host.repositories.file_repository import FileRecord
from wopi_host.schemas.common import ErrorResponse
from wopi_host.wopi.actions import ActionResolver
from wopi_host.wopi.classifier import OperationKind
from wopi_host.wopi.collaborators import MetadataStore
from wopi_host.wopi.operations import OperationContext, OperationHandlers, OperationRequest, WopiResponse
from wopi_host.wopi.proof import ProofValidator

logger = get_logger(__name__)


def error_response(exc: WopiException) -> WopiResponse:
    """
    Map a WOPI error to its protocol response.

    Lock conflicts echo the current lock value (possibly empty) and the
    failure reason; server-side failures carry X-WOPI-ServerError.
    """
    headers = {}
    if isinstance(exc, LockConflictError):
        headers[HEADER_LOCK] = exc.current_lock
        if exc.reason:
            headers[HEADER_LOCK_FAILURE_REASON] = exc.reason
    elif exc.status_code >= 500 and exc.status_code != 501:
        headers[HEADER_SERVER_ERROR] = str(exc) or exc.code

    return WopiResponse(
        status_code=exc.status_code,
        headers=headers,
        body=ErrorResponse(detail=str(exc), code=exc.code).model_dump(),
        reason=str(exc),
    )


class WopiDispatcher:
    """
    Entry point for classified WOPI requests.

    Args:
        store: Metadata store used to locate the target file
        handlers: Operation handlers keyed by kind
        resolver: Discovery action resolver
        validator: Proof validator; None disables proof checking
    """

    def __init__(
        self,
        store: MetadataStore,
        handlers: OperationHandlers,
        resolver: ActionResolver,
        validator: Optional[ProofValidator] = None
    ):
        self.store = store
        self.handlers = handlers
        self.resolver = resolver
        self.validator = validator

    async def dispatch(self, request: OperationRequest) -> WopiResponse:
        """
        Run one WOPI request to completion.

        Every WopiException becomes its protocol response here; anything
        else propagates to the application's outermost error handler.
        """
        try:
            return await self._dispatch(request)
        except WopiException as e:
            if e.status_code >= 500 and e.status_code != 501:
                logger.error(f"{request.kind.value} failed [file_id={request.file_id}]: {e}")
            else:
                logger.info(
                    f"{request.kind.value} rejected [file_id={request.file_id}] "
                    f"status={e.status_code}: {e}"
                )
            return error_response(e)

    async def _dispatch(self, request: OperationRequest) -> WopiResponse:
        handler = self.handlers.handler_for(request.kind)
        if request.kind == OperationKind.NONE or handler is None:
            raise UnsupportedOperationError("Unsupported WOPI request")

        await self._validate_proof(request)

        record = await self._load(request.file_id)
        actions = await self._resolve_actions(record)

        logger.debug(f"Executing {request.kind.value} [file_id={record.file_id}]")
        return await handler(OperationContext(request=request, record=record, actions=actions))

    async def _validate_proof(self, request: OperationRequest) -> None:
        if self.validator is None:
            return

        valid = await self.validator.validate(
            proof=request.proof,
            proof_old=request.proof_old,
            timestamp=request.timestamp,
            access_token=request.access_token,
            url=request.url,
        )
        if not valid:
            raise ProofValidationError("Proof validation failed")

    async def _load(self, file_id: str) -> FileRecord:
        record = await self.store.get_by_id(file_id)
        if record is None:
            raise ResourceNotFoundError(f"File {file_id} not found")
        return record

    async def _resolve_actions(self, record: FileRecord) -> List[ActionDescriptor]:
        """Raises DiscoveryUnavailableError only when discovery was never loaded."""
        return await self.resolver.actions_for(record.name)
