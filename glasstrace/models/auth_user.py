from __future__ import annotations

"""
Auth user model: the identity behind a Session.

Holds only credentials.  Everything the application cares about
(name, role, active flag) lives in `Profile`, keyed by the same id.
"""

from typing import TYPE_CHECKING

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from glasstrace.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from glasstrace.models.profile import Profile


class AuthUser(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "auth_users"

    email: Mapped[str] = mapped_column(String(256), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(512), nullable=False)

    profile: Mapped["Profile | None"] = relationship(  # noqa: F821
        back_populates="user",
        uselist=False,
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<AuthUser {self.email}>"
