"""Custom exception classes for the WOPI host."""


class WopiException(Exception):
    """
    Base exception class for all WOPI host errors.
    """
    status_code = 500
    code = "INTERNAL_ERROR"


class ResourceNotFoundError(WopiException):
    """
    Raised when a requested file does not exist.
    """
    status_code = 404
    code = "FILE_NOT_FOUND"


class LockConflictError(WopiException):
    """
    Raised when a lock token does not match the file's current lock.

    Carries the authoritative current lock value (empty string when the
    file is unlocked) so the caller can echo it back.
    """
    status_code = 409
    code = "LOCK_CONFLICT"

    def __init__(self, current_lock: str, reason: str):
        super().__init__(reason)
        self.current_lock = current_lock or ""
        self.reason = reason


class ValidationFailureError(WopiException):
    """
    Raised when request headers are missing or contradictory.
    """
    status_code = 400
    code = "VALIDATION_FAILURE"


class MissingHeaderError(ValidationFailureError):
    """
    Raised when a header required by the operation is absent.
    """
    status_code = 400
    code = "MISSING_HEADER"


class ConflictingHeadersError(ValidationFailureError):
    """
    Raised when mutually exclusive headers are both present.
    """
    status_code = 501
    code = "CONFLICTING_HEADERS"


class UnsupportedOperationError(WopiException):
    """
    Raised when a request does not map to any supported operation.
    """
    status_code = 501
    code = "NOT_IMPLEMENTED"


class ProofValidationError(WopiException):
    """
    Raised when a request's proof signature cannot be verified.
    """
    status_code = 500
    code = "PROOF_INVALID"


class BackendTransientError(WopiException):
    """
    Raised when storage, metadata or discovery I/O fails.
    """
    status_code = 500
    code = "BACKEND_UNAVAILABLE"


class DiscoveryUnavailableError(BackendTransientError):
    """
    Raised when the discovery manifest cannot be fetched or parsed.
    """
    code = "DISCOVERY_UNAVAILABLE"


class ConcurrencyConflictError(WopiException):
    """
    Raised by the metadata store when a conditional update finds the
    record changed since it was read.
    """
    status_code = 500
    code = "CONCURRENCY_CONFLICT"
