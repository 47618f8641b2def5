"""Binary content storage."""

from wopi_host.storage.blob_storage import BlobStorage

__all__ = ["BlobStorage"]
