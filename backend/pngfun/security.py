from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Any
import jwt
from pngfun.config import settings

# Identity tokens are issued by the wallet-auth service after it has verified
# the wallet signature. We share its HS256 secret and only ever verify.
IDENTITY_ALG = "HS256"
IDENTITY_TTL_MIN = 60 * 24


class InvalidIdentity(Exception):
    pass


def make_identity_token(wallet_address: str, ttl_min: int = IDENTITY_TTL_MIN) -> str:
    """Mint a token the way the wallet-auth service does (used by tests and local tooling)."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": wallet_address,
        "type": "identity",
        "iat": now.timestamp(),
        "exp": int((now + timedelta(minutes=ttl_min)).timestamp()),
    }
    return jwt.encode(payload, settings.identity_token_secret, algorithm=IDENTITY_ALG)


def decode_identity_token(token: str) -> str:
    """Verified wallet address from an identity token."""
    try:
        data: dict[str, Any] = jwt.decode(token, settings.identity_token_secret, algorithms=[IDENTITY_ALG])
    except jwt.PyJWTError as e:
        raise InvalidIdentity("Invalid token") from e
    if data.get("type") != "identity":
        raise InvalidIdentity("Wrong token type")
    sub = data.get("sub")
    if not isinstance(sub, str) or not sub.strip():
        raise InvalidIdentity("Token has no subject")
    return sub.strip().lower()
