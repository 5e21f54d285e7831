"""
Signed access tokens.

Users sign in on the blog platform; this service only verifies the JWT it
issued (same secret) and reads the `sub` and `role` claims. Tokens are minted
here for operators and tests.
"""

import os
from datetime import UTC, datetime, timedelta
from typing import Any, cast

from jose import JWTError, jwt

SECRET_KEY = os.environ.get("BLOGPULSE_SECRET_KEY", "dev-secret-unsafe")
ALGORITHM = "HS256"
ADMIN_ROLE = "admin"
DEFAULT_EXPIRY = timedelta(minutes=15)


def create_access_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None,
    now_utc: datetime | None = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        data: Claims to encode in the token (sub, role)
        expires_delta: Optional custom expiration delta
        now_utc: Current UTC time (for testing/determinism). Defaults to datetime.now(UTC).
    """
    current_time = now_utc if now_utc is not None else datetime.now(UTC)
    claims = {**data, "exp": current_time + (expires_delta or DEFAULT_EXPIRY)}
    encoded: str = jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)
    return encoded


def create_admin_token(subject: str, expires_delta: timedelta | None = None) -> str:
    return create_access_token({"sub": subject, "role": ADMIN_ROLE}, expires_delta)


def decode_access_token(token: str) -> dict[str, Any] | None:
    """Verified claims, or None for a bad signature, malformed or expired token."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    return cast(dict[str, Any], payload)


def is_admin(claims: dict[str, Any]) -> bool:
    return claims.get("role") == ADMIN_ROLE
