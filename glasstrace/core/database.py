"""
Async engine & session factory for the backing store.

One engine per process, built from `settings.DATABASE_URL` at startup.
The store adapter opens one session (and one transaction) per store
operation.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from glasstrace.core.config import settings


def build_engine(url: str | None = None, **kwargs) -> AsyncEngine:
    return create_async_engine(url or settings.DATABASE_URL, echo=False, **kwargs)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, expire_on_commit=False)
