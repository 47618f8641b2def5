"""Shared pytest fixtures for all tests."""

import base64
import struct
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock
from xml.sax.saxutils import quoteattr

import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from common.types import ProofKeyPair
from wopi_host.cache import TtlCache
from wopi_host.database import init_database
from wopi_host.repositories.file_repository import FileRecord, FileRepository
from wopi_host.security import AccessTokenIssuer
from wopi_host.storage.blob_storage import BlobStorage
from wopi_host.wopi.actions import ActionResolver
from wopi_host.wopi.discovery import parse_discovery
from wopi_host.wopi.dispatcher import WopiDispatcher
from wopi_host.wopi.locks import LockEngine
from wopi_host.wopi.operations import OperationHandlers
from wopi_host.wopi.proof import build_expected_proof

BASE_URL = "https://host.example.com"

VIEW_URLSRC = (
    "https://excel.officeapps.live.com/x/_layouts/xlviewerinternal.aspx?"
    "<IsLicensedUser=BUSINESS_USER&><rs=DC_LLCC&><ui=UI_LLCC&><wopisrc=WOPI_SOURCE&>"
)
EDIT_URLSRC = (
    "https://excel.officeapps.live.com/x/_layouts/xlviewerinternal.aspx?edit=1&"
    "<IsLicensedUser=BUSINESS_USER&><rs=DC_LLCC&><ui=UI_LLCC&><wopisrc=WOPI_SOURCE&>"
)
EMBED_URLSRC = (
    "https://excel.officeapps.live.com/x/_layouts/xlembed.aspx?"
    "<ui=UI_LLCC&><wopisrc=WOPI_SOURCE&><e=EMBEDDED&>"
)
WORD_VIEW_URLSRC = (
    "https://word-view.officeapps.live.com/wv/wordviewerframe.aspx?"
    "<IsLicensedUser=BUSINESS_USER&><ui=UI_LLCC&><wopisrc=WOPI_SOURCE&>"
)


class FakeClock:
    """Settable clock returning aware UTC datetimes."""

    def __init__(self, start: datetime = datetime(2026, 1, 7, 10, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeMonotonic:
    """Settable monotonic clock in seconds."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _b64_int(value: int) -> str:
    return base64.b64encode(value.to_bytes((value.bit_length() + 7) // 8, "big")).decode()


def csp_public_key_blob(public_key: rsa.RSAPublicKey) -> str:
    """Encode a public key the way discovery publishes `value`/`oldvalue`."""
    numbers = public_key.public_numbers()
    bit_length = public_key.key_size
    blob = (
        struct.pack("<BBHI", 0x06, 0x02, 0, 0x0000A400)
        + struct.pack("<4sII", b"RSA1", bit_length, numbers.e)
        + numbers.n.to_bytes(bit_length // 8, "little")
    )
    return base64.b64encode(blob).decode()


def discovery_document(proof_keys: ProofKeyPair = None) -> str:
    proof_element = ""
    if proof_keys is not None:
        proof_element = (
            f'<proof-key value="{proof_keys.value}" modulus="{proof_keys.modulus}" '
            f'exponent="{proof_keys.exponent}" oldvalue="{proof_keys.old_value}" '
            f'oldmodulus="{proof_keys.old_modulus}" oldexponent="{proof_keys.old_exponent}" />'
        )
    return f"""<?xml version="1.0" encoding="utf-8"?>
<wopi-discovery>
  <net-zone name="external-https">
    <app name="Excel" favIconUrl="https://excel.officeapps.live.com/x/favicon.ico" checkLicense="true">
      <action name="view" ext="xlsx" default="true" urlsrc={quoteattr(VIEW_URLSRC)} />
      <action name="edit" ext="xlsx" requires="update" urlsrc={quoteattr(EDIT_URLSRC)} />
      <action name="embedview" ext="xlsx" urlsrc={quoteattr(EMBED_URLSRC)} />
      <action name="view" ext="xls" default="true" urlsrc={quoteattr(VIEW_URLSRC)} />
    </app>
    <app name="Word" favIconUrl="https://word-view.officeapps.live.com/wv/favicon.ico" checkLicense="false">
      <action name="view" ext="DOCX" default="true" urlsrc={quoteattr(WORD_VIEW_URLSRC)} />
    </app>
  </net-zone>
  {proof_element}
</wopi-discovery>"""


@pytest.fixture
def test_db(monkeypatch):
    """
    Create a temporary test database for each test.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        monkeypatch.setattr("wopi_host.database.DATABASE_PATH", str(db_path))
        monkeypatch.setattr("wopi_host.config.DATABASE_PATH", str(db_path))
        init_database()
        yield db_path


@pytest.fixture
def file_repo(test_db):
    return FileRepository()


@pytest.fixture
def blob_storage(tmp_path):
    return BlobStorage(str(tmp_path / "blobs"))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_record(clock):
    """
    Factory for FileRecords with sensible defaults.
    """
    def _make(**overrides) -> FileRecord:
        values = dict(
            file_id="3f2c6b1e-0000-4000-8000-000000000001",
            container="documents",
            name="report.xlsx",
            size=12,
            version=1,
            owner_id="alice",
            last_modified_time=clock(),
            last_modified_user="alice",
        )
        values.update(overrides)
        return FileRecord(**values)

    return _make


@pytest.fixture(scope="session")
def rsa_keys():
    """
    Current and previous proof signing keys.
    """
    current = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    old = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return current, old


@pytest.fixture(scope="session")
def proof_keys(rsa_keys) -> ProofKeyPair:
    current, old = rsa_keys
    current_numbers = current.public_key().public_numbers()
    old_numbers = old.public_key().public_numbers()
    return ProofKeyPair(
        value=csp_public_key_blob(current.public_key()),
        modulus=_b64_int(current_numbers.n),
        exponent=_b64_int(current_numbers.e),
        old_value=csp_public_key_blob(old.public_key()),
        old_modulus=_b64_int(old_numbers.n),
        old_exponent=_b64_int(old_numbers.e),
    )


@pytest.fixture
def sign_proof():
    """
    Sign a request the way the remote editing service does.
    """
    def _sign(private_key, access_token: str, url: str, timestamp: int) -> str:
        expected = build_expected_proof(access_token, url, timestamp)
        signature = private_key.sign(expected, padding.PKCS1v15(), hashes.SHA256())
        return base64.b64encode(signature).decode()

    return _sign


@pytest.fixture(scope="session")
def discovery_xml(proof_keys) -> str:
    return discovery_document(proof_keys)


@pytest.fixture
def action_cache(discovery_xml):
    loader = AsyncMock(return_value=parse_discovery(discovery_xml).actions)
    return TtlCache("discovery-actions", loader, ttl_seconds=3600)


@pytest.fixture
def resolver(action_cache):
    return ActionResolver(action_cache)


@pytest.fixture
def token_issuer():
    return AccessTokenIssuer(secret="test-secret", ttl_seconds=3600)


@pytest.fixture
def lock_engine(file_repo, clock):
    return LockEngine(file_repo, clock=clock)


@pytest.fixture
def handlers(lock_engine, blob_storage, token_issuer, resolver):
    return OperationHandlers(lock_engine, blob_storage, token_issuer, resolver)


@pytest.fixture
def dispatcher(file_repo, handlers, resolver):
    """
    Dispatcher without proof validation.
    """
    return WopiDispatcher(file_repo, handlers, resolver)


@pytest.fixture
def monotonic():
    return FakeMonotonic()
