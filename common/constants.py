"""Project-wide constants (WOPI header names, override values, TTLs, timeouts)."""

WOPI_BASE_PATH: str = "/wopi/"
WOPI_FILES_PATH: str = "files/"
WOPI_FOLDERS_PATH: str = "folders/"
WOPI_CONTENTS_PATH: str = "/contents"

# Request headers
HEADER_LOCK: str = "X-WOPI-Lock"
HEADER_OLD_LOCK: str = "X-WOPI-OldLock"
HEADER_OVERRIDE: str = "X-WOPI-Override"
HEADER_RELATIVE_TARGET: str = "X-WOPI-RelativeTarget"
HEADER_SUGGESTED_TARGET: str = "X-WOPI-SuggestedTarget"
HEADER_REQUESTED_NAME: str = "X-WOPI-RequestedName"
HEADER_PROOF: str = "X-WOPI-Proof"
HEADER_PROOF_OLD: str = "X-WOPI-ProofOld"
HEADER_TIMESTAMP: str = "X-WOPI-TimeStamp"

# Response headers
HEADER_LOCK_FAILURE_REASON: str = "X-WOPI-LockFailureReason"
HEADER_SERVER_ERROR: str = "X-WOPI-ServerError"
HEADER_ITEM_VERSION: str = "X-WOPI-ItemVersion"

ACCESS_TOKEN_PARAM: str = "access_token"

# X-WOPI-Override values
OVERRIDE_LOCK: str = "LOCK"
OVERRIDE_GET_LOCK: str = "GET_LOCK"
OVERRIDE_REFRESH_LOCK: str = "REFRESH_LOCK"
OVERRIDE_UNLOCK: str = "UNLOCK"
OVERRIDE_PUT_RELATIVE: str = "PUT_RELATIVE"
OVERRIDE_RENAME_FILE: str = "RENAME_FILE"
OVERRIDE_PUT_USER_INFO: str = "PUT_USER_INFO"

LOCK_DURATION_SECONDS: int = 30 * 60

PROOF_KEY_CACHE_TTL_SECONDS: int = 20 * 60
DISCOVERY_CACHE_TTL_SECONDS: int = 60 * 60
CACHE_FAILURE_BACKOFF_SECONDS: int = 30
DISCOVERY_TIMEOUT_SECONDS: float = 10.0
# A downloaded manifest is shared between the action and proof-key caches
DISCOVERY_REUSE_SECONDS: float = 60.0

# Read-decide-write cycles retried after a lost conditional update
CONCURRENCY_RETRIES: int = 1

STREAM_PIECE_SIZE_BYTES: int = 64 * 1024
