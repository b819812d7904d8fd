"""Signed bearer tokens for the dashboard API.

A token is ``<payload>.<signature>``: the base64url JSON claims
(``userId``, ``role``, ``exp``) and their HMAC-SHA256 signature.
"""

import base64
import hashlib
import hmac
import json
import time
from typing import Any


class TokenError(Exception):
    """Raised when a token is malformed, tampered with or expired."""


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _sign(payload: str, secret: str) -> str:
    digest = hmac.new(secret.encode(), payload.encode(), hashlib.sha256).digest()
    return _b64encode(digest)


def create_token(
    user_id: str,
    role: str,
    *,
    secret: str | None = None,
    ttl_hours: int | None = None,
    now: float | None = None,
) -> str:
    if secret is None or ttl_hours is None:
        from tanggap.config import settings

        secret = secret or settings.jwt_secret
        ttl_hours = ttl_hours or settings.token_ttl_hours

    issued = int(now if now is not None else time.time())
    claims = {"userId": user_id, "role": role, "iat": issued, "exp": issued + ttl_hours * 3600}
    payload = _b64encode(json.dumps(claims, separators=(",", ":")).encode())
    return f"{payload}.{_sign(payload, secret)}"


def decode_token(
    token: str, *, secret: str | None = None, now: float | None = None
) -> dict[str, Any]:
    """Verify a token and return its claims.

    Raises:
        TokenError: If the signature does not match or the token has expired.
    """
    if secret is None:
        from tanggap.config import settings

        secret = settings.jwt_secret

    payload, sep, signature = token.partition(".")
    if not sep or not payload or not signature:
        raise TokenError("Malformed token")

    if not hmac.compare_digest(signature, _sign(payload, secret)):
        raise TokenError("Invalid token signature")

    try:
        claims = json.loads(_b64decode(payload))
    except (ValueError, UnicodeDecodeError) as e:
        raise TokenError(f"Malformed token payload: {e}") from e

    if not isinstance(claims, dict) or "userId" not in claims:
        raise TokenError("Token has no subject")

    current = now if now is not None else time.time()
    if current >= claims.get("exp", 0):
        raise TokenError("Token expired")
    return claims


def password_matches(given: str | None, expected: str | None) -> bool:
    """Constant-time password comparison. An unset password never matches."""
    if not given or not expected:
        return False
    return hmac.compare_digest(given.encode(), expected.encode())
