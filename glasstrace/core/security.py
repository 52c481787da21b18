"""
Password hashing & JWT helpers for the store-side token issuer.

- Passwords and station secrets are hashed with bcrypt directly.
- Access tokens carry the subject id, email and session id.
- Refresh tokens support rotation with SHA-256 hash storage.

The session managers never call into this module; only the store's
own services do.
"""

import hashlib
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
from jose import JWTError, jwt

from glasstrace.core.config import settings
from glasstrace.core.errors import ErrorKind, StoreError

# ── Password / secret hashing ───────────────────────────────────────


def hash_password(plain: str) -> str:
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    if not hashed:
        return False
    return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))


# ── Token hashing (for refresh tokens) ──────────────────────────────


def hash_token(token: str) -> str:
    """SHA-256 hash: suitable for high-entropy tokens like JWTs."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


# ── JWT ──────────────────────────────────────────────────────────────


def access_token_lifetime() -> timedelta:
    return timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)


def create_access_token(
    data: dict[str, Any],
    expires_at: datetime | None = None,
) -> str:
    to_encode = data.copy()
    expire = expires_at or datetime.now(timezone.utc) + access_token_lifetime()
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def create_refresh_token(data: dict[str, Any]) -> str:
    """Create a long-lived refresh token with rotation support."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    # jti keeps two tokens minted in the same second distinct
    to_encode.update({"exp": expire, "type": "refresh", "jti": uuid.uuid4().hex})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str, expected_type: str) -> dict[str, Any]:
    """Decode & validate a JWT.  Raises a classified StoreError on failure."""
    kind = ErrorKind.INVALID_REFRESH_TOKEN if expected_type == "refresh" else ErrorKind.INVALID_JWT
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise StoreError(f"Invalid or expired {expected_type} token", kind)
    if payload.get("type") != expected_type:
        raise StoreError("Invalid token type", kind)
    return payload


def peek_claims(token: str) -> dict[str, Any]:
    """Read claims of a token we issued without enforcing expiry (sign-out path)."""
    try:
        return jwt.decode(
            token, settings.SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_exp": False},
        )
    except JWTError:
        raise StoreError("Malformed token", ErrorKind.INVALID_JWT)
