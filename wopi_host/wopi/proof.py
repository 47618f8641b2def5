"""
WOPI proof-of-origin validation.

The remote editing service signs every request with an RSA key published in
its discovery document. The signed payload is

    int32 len | access_token (UTF-8)
    int32 len | REQUEST URL, upper-cased (UTF-8)
    int32 len | int64 X-WOPI-TimeStamp

with every integer big-endian. A request is genuine when the current
signature verifies against the current key, the old signature verifies
against the current key, or the current signature verifies against the old
key; the last two cover a key rotation in progress.
"""

import base64
import binascii
import struct
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from common.logging_config import get_logger
from common.types import ProofKeyPair
from wopi_host.cache import TtlCache
from wopi_host.exceptions import BackendTransientError

logger = get_logger(__name__)

_CSP_PUBLICKEYBLOB = 0x06
_CSP_RSA1_MAGIC = b"RSA1"


def normalize_host_url(url: str) -> str:
    """
    Upper-case the request URL and strip a default HTTPS port.
    """
    parts = urlsplit(url)
    netloc = parts.netloc
    if parts.scheme.lower() == "https" and parts.port == 443:
        netloc = netloc.rsplit(":", 1)[0]
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment)).upper()


def build_expected_proof(access_token: str, url: str, timestamp: int) -> bytes:
    """
    Build the byte sequence the remote service signed for this request.
    """
    token_bytes = (access_token or "").encode("utf-8")
    url_bytes = normalize_host_url(url).encode("utf-8")
    timestamp_bytes = struct.pack(">q", timestamp)

    return b"".join([
        struct.pack(">i", len(token_bytes)), token_bytes,
        struct.pack(">i", len(url_bytes)), url_bytes,
        struct.pack(">i", len(timestamp_bytes)), timestamp_bytes,
    ])


def public_key_from_csp_blob(blob_b64: str) -> rsa.RSAPublicKey:
    """
    Decode a base64 Microsoft CSP PUBLICKEYBLOB into an RSA public key.

    Layout (little-endian): BLOBHEADER (type, version, reserved, alg id),
    RSAPUBKEY ("RSA1", bit length, public exponent), then the modulus.
    """
    blob = base64.b64decode(blob_b64, validate=True)
    blob_type, _version, _reserved, _alg_id = struct.unpack_from("<BBHI", blob, 0)
    magic, bit_length, exponent = struct.unpack_from("<4sII", blob, 8)

    if blob_type != _CSP_PUBLICKEYBLOB or magic != _CSP_RSA1_MAGIC:
        raise ValueError("Not an RSA public key blob")

    modulus_bytes = blob[20:20 + bit_length // 8]
    if len(modulus_bytes) != bit_length // 8:
        raise ValueError("Truncated RSA public key blob")

    modulus = int.from_bytes(modulus_bytes, "little")
    return rsa.RSAPublicNumbers(exponent, modulus).public_key()


def public_key_from_components(modulus_b64: str, exponent_b64: str) -> rsa.RSAPublicKey:
    """
    Build an RSA public key from base64 big-endian modulus and exponent.
    """
    n = int.from_bytes(base64.b64decode(modulus_b64, validate=True), "big")
    e = int.from_bytes(base64.b64decode(exponent_b64, validate=True), "big")
    return rsa.RSAPublicNumbers(e, n).public_key()


def load_public_key(
    value: Optional[str],
    modulus: Optional[str] = None,
    exponent: Optional[str] = None
) -> Optional[rsa.RSAPublicKey]:
    """
    Load a discovery proof key, preferring modulus/exponent over the CSP blob.

    Returns None when the key is absent or cannot be decoded.
    """
    try:
        if modulus and exponent:
            return public_key_from_components(modulus, exponent)
        if value:
            return public_key_from_csp_blob(value)
    except (ValueError, binascii.Error, struct.error, UnsupportedAlgorithm) as e:
        logger.warning(f"Unusable proof key in discovery: {e}")
    return None


def verify_proof(expected: bytes, proof_b64: Optional[str], public_key: Optional[rsa.RSAPublicKey]) -> bool:
    """
    Check one RSA-SHA256 signature against one key. Never raises.
    """
    if not proof_b64 or public_key is None:
        return False
    try:
        signature = base64.b64decode(proof_b64, validate=True)
        public_key.verify(signature, expected, padding.PKCS1v15(), hashes.SHA256())
        return True
    except (InvalidSignature, ValueError, binascii.Error):
        return False


class ProofValidator:
    """
    Validates X-WOPI-Proof / X-WOPI-ProofOld signatures against the cached
    discovery key pair.
    """

    def __init__(self, key_cache: TtlCache[ProofKeyPair]):
        self.key_cache = key_cache

    async def validate(
        self,
        proof: Optional[str],
        proof_old: Optional[str],
        timestamp: Optional[str],
        access_token: Optional[str],
        url: str
    ) -> bool:
        """
        Return True if the request carries a valid signature.

        Missing proof or timestamp headers, undecodable values and
        unavailable keys all fail closed.
        """
        if not proof or not timestamp:
            logger.warning("Proof validation failed: missing proof or timestamp header")
            return False

        try:
            ticks = int(timestamp)
            expected = build_expected_proof(access_token or "", url, ticks)
        except (ValueError, struct.error):
            logger.warning(f"Proof validation failed: malformed timestamp {timestamp!r}")
            return False

        try:
            key_pair = await self.key_cache.get()
        except BackendTransientError as e:
            logger.error(f"Proof validation failed: proof keys unavailable: {e}")
            return False

        if key_pair is None:
            logger.error("Proof validation failed: discovery published no proof key")
            return False

        current_key = load_public_key(key_pair.value, key_pair.modulus, key_pair.exponent)
        old_key = load_public_key(key_pair.old_value, key_pair.old_modulus, key_pair.old_exponent)

        valid = (
            verify_proof(expected, proof, current_key)
            or verify_proof(expected, proof_old, current_key)
            or verify_proof(expected, proof, old_key)
        )

        if not valid:
            logger.warning(f"Proof validation failed: no signature matched for {url}")

        return valid
