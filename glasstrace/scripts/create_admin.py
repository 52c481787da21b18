"""
One-time bootstrap script: creates the first ADMIN user.

Usage:
    python -m glasstrace.scripts.create_admin

You only need this ONCE. Operators and viewers sign up through the
terminal and are promoted by an admin.
"""

import asyncio
import getpass
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from glasstrace.core.config import settings
from glasstrace.core.database import build_engine, build_session_factory
from glasstrace.core.security import hash_password
from glasstrace.models import Base
from glasstrace.models.auth_user import AuthUser
from glasstrace.models.profile import Profile, UserRole


class AdminExistsError(Exception):
    pass


async def create_admin_user(
    session: AsyncSession,
    email: str,
    full_name: str,
    password: str,
) -> AuthUser:
    existing = (
        await session.execute(select(AuthUser).where(AuthUser.email == email))
    ).scalar_one_or_none()
    if existing:
        raise AdminExistsError(f"User with email '{email}' already exists.")

    user_id = uuid.uuid4()
    admin_user = AuthUser(id=user_id, email=email, password_hash=hash_password(password))
    admin_user.profile = Profile(
        id=user_id,
        email=email,
        name=full_name,
        role=UserRole.ADMIN,
        active=True,
    )
    session.add(admin_user)
    await session.commit()
    return admin_user


async def create_admin() -> None:
    print("\n🔧  Glasstrace: First Admin Setup\n")
    email = input("  Admin email: ").strip()
    full_name = input("  Full name:   ").strip()
    password = getpass.getpass("  Password:    ")
    confirm = getpass.getpass("  Confirm:     ")

    if password != confirm:
        print("\n❌  Passwords do not match.")
        return

    if not email or not full_name or not password:
        print("\n❌  All fields are required.")
        return

    engine = build_engine(settings.DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        async with build_session_factory(engine)() as session:
            admin_user = await create_admin_user(session, email, full_name, password)
    except AdminExistsError as exc:
        print(f"\n❌  {exc}")
        return
    finally:
        await engine.dispose()

    print("\n✅  Admin user created successfully!")
    print(f"    ID:    {admin_user.id}")
    print(f"    Email: {admin_user.email}")
    print("    Role:  admin")
    print("\n   You can now sign in via POST /api/auth/login\n")


if __name__ == "__main__":
    asyncio.run(create_admin())
