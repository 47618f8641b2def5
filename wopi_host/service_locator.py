"""Service locator for process-wide WOPI components."""

from typing import Optional, TYPE_CHECKING

from wopi_host.cache import TtlCache
from wopi_host.wopi.dispatcher import WopiDispatcher

if TYPE_CHECKING:
    from wopi_host.services.file_service import FileService

_dispatcher: Optional[WopiDispatcher] = None
_file_service: Optional['FileService'] = None
_action_cache: Optional[TtlCache] = None


def set_dispatcher(dispatcher: Optional[WopiDispatcher]):
    """Set global WOPI dispatcher instance"""
    global _dispatcher
    _dispatcher = dispatcher


def get_dispatcher() -> Optional[WopiDispatcher]:
    """Get global WOPI dispatcher instance"""
    return _dispatcher


def set_file_service(service):
    """Set global file service instance"""
    global _file_service
    _file_service = service


def get_file_service():
    """Get global file service instance"""
    return _file_service


def set_action_cache(cache: Optional[TtlCache]):
    """Set global discovery action cache"""
    global _action_cache
    _action_cache = cache


def get_action_cache() -> Optional[TtlCache]:
    """Get global discovery action cache"""
    return _action_cache
