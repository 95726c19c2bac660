"""
auth/tokens.py -- Signed identity assertions for calls to the posts API.

The posts API trusts the numeric user id it is given. The forwarder still
sends that id, and alongside it an X-Identity-Assertion header: a short-lived
JWT (python-jose, HS256) signed with IDENTITY_ASSERTION_SECRET that carries
the same id.
A posts API that shares the secret can call decode_identity_assertion() and
reject any request whose id does not match the assertion.

Verification returns None on any failure (bad signature, expired, missing
claims) so the caller's check stays a single comparison.

Layer rule: no imports from api/, web/, or posts/.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from core.config import get_settings

_ALGORITHM = "HS256"
_AUDIENCE = "quillblog-posts"


def create_identity_assertion(user_id: int, email: str, expire_seconds: int | None = None) -> str:
    """Encode a signed, time-bounded assertion of the caller's identity.

    Args:
        user_id:        Numeric user id forwarded to the posts API.
        email:          Stored as the subject claim.
        expire_seconds: Lifetime in seconds. If None (default), uses
                        Settings.identity_assertion_ttl_seconds.
    """
    settings = get_settings()
    duration = expire_seconds if expire_seconds is not None else settings.identity_assertion_ttl_seconds
    payload = {
        "sub": email,
        "user_id": user_id,
        "aud": _AUDIENCE,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=duration),
    }
    return jwt.encode(payload, settings.identity_assertion_secret, algorithm=_ALGORITHM)


def decode_identity_assertion(token: str) -> dict | None:
    """Decode and verify an assertion. Returns the payload dict or None on any failure."""
    try:
        payload = jwt.decode(
            token,
            get_settings().identity_assertion_secret,
            algorithms=[_ALGORITHM],
            audience=_AUDIENCE,
        )
    except JWTError:
        return None
    if "user_id" not in payload:
        return None
    return payload
