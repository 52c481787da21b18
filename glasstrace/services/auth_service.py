"""
Authentication service: the store's side of the session layer.

Handles:
- Password sign-in (opens a session row, issues a token pair)
- Sign-up (creates the auth user and its viewer profile)
- Refresh-token rotation
- Local / global sign-out

Every token pair maps to one `user_sessions` row; only the SHA-256
hash of the current refresh token is stored, so presenting a rotated
(old) refresh token fails as an invalid refresh credential.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from glasstrace.core.errors import ErrorKind, StoreError
from glasstrace.core.security import (
    access_token_lifetime,
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    hash_token,
    peek_claims,
    verify_password,
)
from glasstrace.models.auth_user import AuthUser
from glasstrace.models.profile import Profile, UserRole
from glasstrace.schemas import AuthUser as AuthUserOut
from glasstrace.schemas import Session
from glasstrace.services import session_service


# ── Helpers ──────────────────────────────────────────────────────────

def _issue(user: AuthUser, session_id: uuid.UUID) -> Session:
    """Mint an access + refresh pair bound to one session row."""
    expires_at = datetime.now(timezone.utc).replace(microsecond=0) + access_token_lifetime()
    access_token = create_access_token(
        {"sub": str(user.id), "email": user.email, "session_id": str(session_id)},
        expires_at=expires_at,
    )
    refresh_token = create_refresh_token({
        "sub": str(user.id),
        "session_id": str(session_id),
    })
    return Session(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=expires_at,
        user=AuthUserOut(id=user.id, email=user.email),
    )


async def _start_session(user: AuthUser, db: AsyncSession) -> Session:
    session_id = uuid.uuid4()
    session = _issue(user, session_id)
    await session_service.register_token_pair(
        user.id, hash_token(session.refresh_token), db, session_id=session_id,
    )
    return session


# ── Sign-in / sign-up ────────────────────────────────────────────────

async def authenticate_user(email: str, password: str, db: AsyncSession) -> Session:
    stmt = select(AuthUser).where(AuthUser.email == email)
    user = (await db.execute(stmt)).scalar_one_or_none()

    if user is None or not verify_password(password, user.password_hash):
        raise StoreError("Invalid login credentials", ErrorKind.INVALID_CREDENTIALS)

    return await _start_session(user, db)


async def register_user(
    email: str,
    password: str,
    display_name: str,
    db: AsyncSession,
) -> Session:
    """Create the auth user plus a viewer profile, then sign them in."""
    existing = (
        await db.execute(select(AuthUser).where(AuthUser.email == email))
    ).scalar_one_or_none()
    if existing is not None:
        raise StoreError("User already registered", ErrorKind.CONSTRAINT)

    user = AuthUser(id=uuid.uuid4(), email=email, password_hash=hash_password(password))
    db.add(user)
    await db.flush()
    db.add(Profile(id=user.id, email=email, name=display_name, role=UserRole.VIEWER, active=True))
    await db.flush()

    return await _start_session(user, db)


# ── Refresh ──────────────────────────────────────────────────────────

async def refresh_tokens(refresh_token_raw: str, db: AsyncSession) -> Session:
    """Validate a refresh token, rotate it, and return a new pair."""
    payload = decode_token(refresh_token_raw, "refresh")

    session_id_str = payload.get("session_id")
    user_id_str = payload.get("sub")
    if not session_id_str or not user_id_str:
        raise StoreError("Invalid refresh token payload", ErrorKind.INVALID_REFRESH_TOKEN)

    row = await session_service.find_live_session(uuid.UUID(session_id_str), db)
    if row is None or str(row.user_id) != user_id_str:
        raise StoreError("Refresh token not found", ErrorKind.INVALID_REFRESH_TOKEN)

    user = await db.get(AuthUser, row.user_id)
    if user is None:
        raise StoreError("User not found", ErrorKind.INVALID_REFRESH_TOKEN)

    session = _issue(user, row.id)
    await session_service.rotate(
        row, hash_token(refresh_token_raw), hash_token(session.refresh_token), db,
    )
    return session


# ── Sign-out ─────────────────────────────────────────────────────────

async def sign_out(session: Session, global_scope: bool, db: AsyncSession) -> int:
    """Deactivate the session behind `session` (or all of the user's)."""
    claims = peek_claims(session.access_token)
    if global_scope:
        return await session_service.end_all_sessions(session.user.id, db)
    return await session_service.end_session(uuid.UUID(claims["session_id"]), db)


def verify_access(session: Session | None) -> dict:
    """Row-level-security stand-in: the caller must hold a live access token."""
    if session is None:
        raise StoreError("JWT missing", ErrorKind.INVALID_JWT)
    return decode_token(session.access_token, "access")


async def get_profile(subject_id: uuid.UUID, db: AsyncSession) -> Profile | None:
    return await db.get(Profile, subject_id)
