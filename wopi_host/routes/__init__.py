"""API routes package."""

from wopi_host.routes.wopi_routes import router as wopi_router
from wopi_host.routes.file_routes import router as file_router

__all__ = ["wopi_router", "file_router"]
