"""File service for the host-facing document API."""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from common.logging_config import get_logger
from common.types import ActionDescriptor
from wopi_host.exceptions import ResourceNotFoundError
from wopi_host.repositories.file_repository import FileRecord
from wopi_host.security import AccessTokenIssuer
from wopi_host.wopi.actions import ActionResolver
from wopi_host.wopi.collaborators import BlobStore, MetadataStore

logger = get_logger(__name__)

DEFAULT_CONTAINER = "documents"


@dataclass(frozen=True)
class OpenedFile:
    """Everything a host page needs to embed the editor frame for one file."""
    record: FileRecord
    access_token: str
    access_token_ttl: int
    actions: List[Tuple[ActionDescriptor, str]]


class FileService:
    def __init__(
        self,
        file_repo: MetadataStore,
        blobs: BlobStore,
        tokens: AccessTokenIssuer,
        resolver: ActionResolver
    ):
        self.file_repo = file_repo
        self.blobs = blobs
        self.tokens = tokens
        self.resolver = resolver

    async def upload_file(
        self,
        file_name: str,
        data: bytes,
        owner_id: str,
        container: str = DEFAULT_CONTAINER,
    ) -> FileRecord:
        """
        Store a new document: content first, then its metadata.
        """
        file_id = str(uuid.uuid4())
        record = FileRecord(
            file_id=file_id,
            container=container,
            name=file_name,
            size=len(data),
            version=1,
            owner_id=owner_id,
            last_modified_time=datetime.now(timezone.utc),
            last_modified_user=owner_id,
        )

        await self.blobs.put(file_id, container, data)
        created = await self.file_repo.create(record)

        logger.info(f"Uploaded document {file_name} [file_id={file_id}] [owner_id={owner_id}]")
        return created

    async def open_file(
        self,
        file_id: str,
        owner_id: str,
        base_url: str,
        action: Optional[str] = None
    ) -> OpenedFile:
        """
        Resolve the discovery actions for a document and mint an access token.

        Args:
            file_id: UUID of the document
            owner_id: Requesting owner; documents of other owners are reported missing
            base_url: Public base URL of this host
            action: Restrict the result to one action name (view, edit, ...)

        Raises:
            ResourceNotFoundError: Unknown file, or not owned by `owner_id`
        """
        record = await self.file_repo.get_by_id(file_id)
        if record is None or record.owner_id != owner_id:
            raise ResourceNotFoundError(f"File {file_id} not found")

        actions = await self.resolver.actions_for(record.name)
        if action is not None:
            actions = [a for a in actions if a.name == action]

        token = self.tokens.issue(record.owner_id, record.container, record.file_id)
        links = [
            (a, self.resolver.action_url(a, record.file_id, base_url))
            for a in actions
        ]

        return OpenedFile(
            record=record,
            access_token=token,
            access_token_ttl=self.tokens.expires_at_ms(token),
            actions=links,
        )
