"""WOPI protocol engine: classification, proof validation, discovery, locks, dispatch."""

from wopi_host.wopi.classifier import Classification, OperationKind, classify
from wopi_host.wopi.dispatcher import WopiDispatcher
from wopi_host.wopi.operations import OperationHandlers, OperationRequest, WopiResponse

__all__ = [
    "Classification",
    "OperationKind",
    "classify",
    "WopiDispatcher",
    "OperationHandlers",
    "OperationRequest",
    "WopiResponse",
]
