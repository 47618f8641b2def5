"""
WOPI operation handlers.

One handler per `OperationKind`. Lock-sensitive handlers bind a rule from
`LockRules` to the request's headers and hand it to `LockEngine.transition`;
everything else reads the located record directly.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from functools import partial
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Union

from common.constants import (
    HEADER_ITEM_VERSION,
    HEADER_LOCK,
    HEADER_OLD_LOCK,
    HEADER_REQUESTED_NAME,
    HEADER_RELATIVE_TARGET,
    HEADER_SUGGESTED_TARGET,
)
from common.logging_config import get_logger
from common.types import ActionDescriptor
from wopi_host import config
from wopi_host.exceptions import ConflictingHeadersError, MissingHeaderError, WopiException
from wopi_host.repositories.file_repository import FileRecord
from wopi_host.schemas.wopi import CheckFileInfoResponse, PutRelativeFileResponse, RenameFileResponse
from wopi_host.wopi.actions import ActionResolver
from wopi_host.wopi.classifier import OperationKind
from wopi_host.wopi.collaborators import BlobStore, TokenIssuer
from wopi_host.wopi.locks import Decision, LockEngine, LockState, lock_state

logger = get_logger(__name__)

ResponseBody = Union[bytes, Dict[str, Any], AsyncIterator[bytes], None]


@dataclass(frozen=True)
class OperationRequest:
    """
    The parts of an HTTP request a WOPI operation may consume.

    Header values are None when the header is absent.
    """
    file_id: str
    kind: OperationKind
    url: str
    base_url: str
    access_token: Optional[str] = None
    lock: Optional[str] = None
    old_lock: Optional[str] = None
    requested_name: Optional[str] = None
    relative_target: Optional[str] = None
    suggested_target: Optional[str] = None
    proof: Optional[str] = None
    proof_old: Optional[str] = None
    timestamp: Optional[str] = None
    body: bytes = b""


@dataclass
class WopiResponse:
    status_code: int = 200
    headers: Dict[str, str] = field(default_factory=dict)
    body: ResponseBody = None
    reason: str = "Success"


@dataclass(frozen=True)
class OperationContext:
    """A request together with its located record and resolved actions."""
    request: OperationRequest
    record: FileRecord
    actions: List[ActionDescriptor]

    def find_action(self, name: str) -> Optional[ActionDescriptor]:
        for action in self.actions:
            if action.name == name:
                return action
        return None


Handler = Callable[[OperationContext], Awaitable[WopiResponse]]


def relative_file_name(source_name: str, relative_target: Optional[str], suggested_target: Optional[str]) -> str:
    """
    Name for a PutRelativeFile copy.

    A relative target is used verbatim. A suggested target starting with '.'
    is an extension appended to the source's stem; any other suggested
    target is a full name.

    Raises:
        ConflictingHeadersError: Both target headers are present
        MissingHeaderError: Neither target header is present
    """
    if relative_target is not None and suggested_target is not None:
        raise ConflictingHeadersError(
            f"Both {HEADER_RELATIVE_TARGET} and {HEADER_SUGGESTED_TARGET} were present"
        )
    if relative_target is not None:
        return relative_target
    if suggested_target is None:
        raise MissingHeaderError("PutRelativeFile mode was not provided in the request")

    if suggested_target.startswith("."):
        stem = source_name.rsplit(".", 1)[0] if "." in source_name else source_name
        return stem + suggested_target
    return suggested_target


def host_page_url(base_url: str, file_id: str, action: str) -> str:
    return config.HOST_PAGE_URL.format(base_url=base_url, file_id=file_id, action=action)


def _require(value: Optional[str], header: str) -> str:
    """A blank header value counts as missing."""
    if value is None:
        raise MissingHeaderError(f"{header} header wasn't included in request")
    if not value.strip():
        raise MissingHeaderError(f"{header} header was empty")
    return value


class OperationHandlers:
    """
    Executes classified WOPI operations against a located file.

    Args:
        engine: Lock engine wrapping the metadata store
        blobs: Binary content store
        tokens: Access-token issuer for PutRelativeFile
        resolver: Discovery action resolver, used to build action URLs
    """

    def __init__(
        self,
        engine: LockEngine,
        blobs: BlobStore,
        tokens: TokenIssuer,
        resolver: ActionResolver
    ):
        self.engine = engine
        self.rules = engine.rules
        self.blobs = blobs
        self.tokens = tokens
        self.resolver = resolver

        self._handlers: Dict[OperationKind, Handler] = {
            OperationKind.CHECK_FILE_INFO: self.check_file_info,
            OperationKind.GET_FILE: self.get_file,
            OperationKind.PUT_FILE: self.put_file,
            OperationKind.LOCK: self.lock,
            OperationKind.GET_LOCK: self.get_lock,
            OperationKind.REFRESH_LOCK: self.refresh_lock,
            OperationKind.UNLOCK: self.unlock,
            OperationKind.UNLOCK_AND_RELOCK: self.unlock_and_relock,
            OperationKind.PUT_RELATIVE_FILE: self.put_relative_file,
            OperationKind.RENAME_FILE: self.rename_file,
            OperationKind.PUT_USER_INFO: self.put_user_info,
        }

    def handler_for(self, kind: OperationKind) -> Optional[Handler]:
        return self._handlers.get(kind)

    async def check_file_info(self, ctx: OperationContext) -> WopiResponse:
        record = ctx.record
        request = ctx.request

        info = CheckFileInfoResponse(
            BaseFileName=record.name,
            OwnerId=record.owner_id,
            Size=record.size,
            Version=str(record.version),
            UserId=record.owner_id,
            UserFriendlyName=record.owner_id,
            LastModifiedTime=record.last_modified_time.isoformat(),
            UserInfo=record.user_info,
            CloseUrl=request.base_url,
            DownloadUrl=(
                f"{request.base_url}/wopi/files/{record.file_id}/contents"
                f"?access_token={request.access_token or ''}"
            ),
        )

        for action_name, attribute in (
            ("view", "HostViewUrl"),
            ("edit", "HostEditUrl"),
            ("embedview", "HostEmbeddedViewUrl"),
        ):
            if ctx.find_action(action_name) is not None:
                setattr(info, attribute, host_page_url(request.base_url, record.file_id, action_name))

        return WopiResponse(body=info.model_dump())

    async def get_file(self, ctx: OperationContext) -> WopiResponse:
        record = ctx.record
        content = await self.blobs.stream(record.file_id, record.container)
        return WopiResponse(
            headers={HEADER_ITEM_VERSION: str(record.version)},
            body=content,
        )

    async def put_file(self, ctx: OperationContext) -> WopiResponse:
        """
        Stage the bytes, commit the new version and size, then promote the
        staged bytes. A conflict or failure before promotion leaves both the
        metadata and the visible content as they were.
        """
        body = ctx.request.body
        previous: List[FileRecord] = []

        def decide(record: FileRecord, state: LockState, now: datetime) -> Decision:
            previous.append(record)
            return self.rules.put_file(record, state, now, token=ctx.request.lock, size=len(body))

        staged = await self.blobs.stage(ctx.record.file_id, ctx.record.container, body)
        promoted = False
        try:
            updated = await self.engine.transition(ctx.record, decide)
            try:
                await self.blobs.promote(staged)
                promoted = True
            except WopiException:
                await self._revert_content_metadata(updated, previous[-1])
                raise
        finally:
            if not promoted:
                await self.blobs.discard(staged)

        logger.info(f"Content written [file_id={updated.file_id}] [version={updated.version}]")
        return WopiResponse(headers={HEADER_ITEM_VERSION: str(updated.version)})

    async def _revert_content_metadata(self, updated: FileRecord, previous: FileRecord) -> None:
        """Undo a committed content write whose bytes never became visible."""
        restored = replace(
            updated,
            size=previous.size,
            version=previous.version,
            last_modified_time=previous.last_modified_time,
            last_modified_user=previous.last_modified_user,
        )
        try:
            await self.engine.store.update(restored, updated.revision)
        except WopiException as e:
            logger.error(f"Could not revert content metadata [file_id={updated.file_id}]: {e}")

    async def lock(self, ctx: OperationContext) -> WopiResponse:
        token = _require(ctx.request.lock, HEADER_LOCK)
        await self.engine.transition(ctx.record, partial(self.rules.lock, token=token))
        return WopiResponse()

    async def get_lock(self, ctx: OperationContext) -> WopiResponse:
        updated = await self.engine.transition(ctx.record, self.rules.observe)
        state = lock_state(updated, self.engine.clock())
        return WopiResponse(headers={HEADER_LOCK: state.current_value})

    async def refresh_lock(self, ctx: OperationContext) -> WopiResponse:
        token = _require(ctx.request.lock, HEADER_LOCK)
        await self.engine.transition(ctx.record, partial(self.rules.refresh_lock, token=token))
        return WopiResponse()

    async def unlock(self, ctx: OperationContext) -> WopiResponse:
        token = _require(ctx.request.lock, HEADER_LOCK)
        await self.engine.transition(ctx.record, partial(self.rules.unlock, token=token))
        return WopiResponse()

    async def unlock_and_relock(self, ctx: OperationContext) -> WopiResponse:
        new_token = _require(ctx.request.lock, HEADER_LOCK)
        old_token = _require(ctx.request.old_lock, HEADER_OLD_LOCK)
        await self.engine.transition(
            ctx.record,
            partial(self.rules.unlock_and_relock, new_token=new_token, old_token=old_token),
        )
        return WopiResponse()

    async def put_relative_file(self, ctx: OperationContext) -> WopiResponse:
        source = ctx.record
        request = ctx.request
        name = relative_file_name(source.name, request.relative_target, request.suggested_target)

        new_record = FileRecord(
            file_id=str(uuid.uuid4()),
            container=source.container,
            name=name,
            size=len(request.body),
            version=1,
            owner_id=source.owner_id,
            last_modified_time=self.engine.clock(),
            last_modified_user=source.owner_id,
        )

        await self.blobs.put(new_record.file_id, new_record.container, request.body)
        await self.engine.store.create(new_record)

        token = self.tokens.issue(new_record.owner_id, new_record.container, new_record.file_id)
        result = PutRelativeFileResponse(
            Name=new_record.name,
            Url=f"{request.base_url}/wopi/files/{new_record.file_id}?access_token={token}",
        )

        view = await self.resolver.find_action(new_record.name, "view")
        if view is not None:
            result.HostViewUrl = self.resolver.action_url(view, new_record.file_id, request.base_url)
        edit = await self.resolver.find_action(new_record.name, "edit")
        if edit is not None:
            result.HostEditUrl = self.resolver.action_url(edit, new_record.file_id, request.base_url)

        logger.info(f"Relative file created [source={source.file_id}] [file_id={new_record.file_id}]")
        return WopiResponse(body=result.model_dump(exclude_none=True))

    async def rename_file(self, ctx: OperationContext) -> WopiResponse:
        name = _require(ctx.request.requested_name, HEADER_REQUESTED_NAME)
        await self.engine.transition(
            ctx.record,
            partial(self.rules.rename, token=ctx.request.lock, name=name),
        )
        return WopiResponse(body=RenameFileResponse(Name=name).model_dump())

    async def put_user_info(self, ctx: OperationContext) -> WopiResponse:
        user_info = ctx.request.body.decode("utf-8", errors="replace")
        await self.engine.transition(
            ctx.record,
            partial(self.rules.put_user_info, user_info=user_info),
        )
        return WopiResponse()

