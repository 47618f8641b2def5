"""Access-token issuance for WOPI clients."""

import time
from typing import Optional

import jwt

from wopi_host.config import TOKEN_SECRET, TOKEN_TTL_SECONDS

TOKEN_ALGORITHM = "HS256"


class AccessTokenIssuer:
    """
    Mints opaque bearer tokens that scope a WOPI client to one file.

    The token is an HS256 JWT; WOPI clients never inspect it, they only echo
    it back in the `access_token` query parameter.
    """

    def __init__(self, secret: str = TOKEN_SECRET, ttl_seconds: int = TOKEN_TTL_SECONDS):
        self.secret = secret
        self.ttl_seconds = ttl_seconds

    def issue(self, owner_id: str, container: str, file_id: str, now: Optional[float] = None) -> str:
        """
        Generate a token for (owner, container, file).

        Args:
            owner_id: Identifier of the user the token acts for
            container: Storage container holding the file
            file_id: UUID of the file
            now: Issue time as a UNIX timestamp (defaults to the current time)

        Returns:
            Encoded token string
        """
        issued_at = int(now if now is not None else time.time())
        claims = {
            "sub": owner_id,
            "container": container,
            "file_id": file_id,
            "iat": issued_at,
            "exp": issued_at + self.ttl_seconds,
        }
        return jwt.encode(claims, self.secret, algorithm=TOKEN_ALGORITHM)

    def expires_at_ms(self, token: str) -> int:
        """
        Expiry of an issued token in milliseconds since the epoch
        (the unit WOPI host pages post as `access_token_ttl`).
        """
        claims = jwt.decode(token, self.secret, algorithms=[TOKEN_ALGORITHM])
        return int(claims["exp"]) * 1000
