"""Configuration settings for the WOPI host."""

import os


DATABASE_PATH = os.environ.get("WOPI_DATABASE_PATH", "/app/data/metadata.db")

DATABASE_TIMEOUT_SECONDS = float(os.environ.get("WOPI_DATABASE_TIMEOUT_SECONDS", "5"))

BLOB_STORAGE_PATH = os.environ.get("WOPI_BLOB_STORAGE_PATH", "/app/data/blobs")

WOPI_HOST = os.environ.get("WOPI_HOST", "0.0.0.0")

WOPI_PORT = int(os.environ.get("WOPI_PORT", "8000"))

DISCOVERY_URL = os.environ.get(
    "WOPI_DISCOVERY_URL",
    "https://onenote.officeapps.live.com/hosting/discovery"
)

# Empty means "derive from the incoming request"
PUBLIC_BASE_URL = os.environ.get("WOPI_PUBLIC_BASE_URL", "").rstrip("/")

HOST_PAGE_URL = os.environ.get(
    "WOPI_HOST_PAGE_URL",
    "{base_url}/files/{file_id}?action={action}"
)

VALIDATE_PROOF = os.environ.get("WOPI_VALIDATE_PROOF", "true").lower() in ("1", "true", "yes")

TOKEN_SECRET = os.environ.get("WOPI_TOKEN_SECRET", "dev-only-wopi-token-secret")

TOKEN_TTL_SECONDS = int(os.environ.get("WOPI_TOKEN_TTL_SECONDS", "36000"))

UI_LOCALE = os.environ.get("WOPI_UI_LOCALE", "en-US")

BUSINESS_USER = os.environ.get("WOPI_BUSINESS_USER", "1")

THEME_ID = os.environ.get("WOPI_THEME_ID", "1")

VALIDATOR_TEST_CATEGORY = os.environ.get("WOPI_VALIDATOR_TEST_CATEGORY", "OfficeOnline")
