"""
Session registry: one `user_sessions` row per issued token pair.

The row stores only the SHA-256 hash of the refresh token currently
valid for it.  Rotation swaps the hash; a presented token whose hash no
longer matches is a replay of an already-rotated token.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from glasstrace.core.errors import ErrorKind, StoreError
from glasstrace.models.session import UserSession


async def register_token_pair(
    user_id: uuid.UUID,
    refresh_token_hash: str,
    db: AsyncSession,
    session_id: uuid.UUID | None = None,
) -> UserSession:
    row = UserSession(
        id=session_id or uuid.uuid4(),
        user_id=user_id,
        refresh_token_hash=refresh_token_hash,
    )
    db.add(row)
    await db.flush()
    return row


async def find_live_session(session_id: uuid.UUID, db: AsyncSession) -> UserSession | None:
    stmt = select(UserSession).where(
        UserSession.id == session_id,
        UserSession.is_active == True,  # noqa: E712
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def rotate(
    row: UserSession,
    presented_hash: str,
    next_hash: str,
    db: AsyncSession,
) -> None:
    """Replace the stored refresh hash; the presented one must be current."""
    if row.refresh_token_hash != presented_hash:
        raise StoreError("Invalid Refresh Token: Already Used", ErrorKind.INVALID_REFRESH_TOKEN)
    row.refresh_token_hash = next_hash
    row.rotation_count += 1
    row.rotated_at = datetime.now(timezone.utc)
    await db.flush()


async def end_session(session_id: uuid.UUID, db: AsyncSession) -> int:
    """Local sign-out."""
    stmt = update(UserSession).where(UserSession.id == session_id).values(is_active=False)
    result = await db.execute(stmt)
    return result.rowcount


async def end_all_sessions(user_id: uuid.UUID, db: AsyncSession) -> int:
    """Global sign-out; returns how many live sessions were ended."""
    stmt = (
        update(UserSession)
        .where(
            UserSession.user_id == user_id,
            UserSession.is_active == True,  # noqa: E712
        )
        .values(is_active=False)
    )
    result = await db.execute(stmt)
    return result.rowcount
