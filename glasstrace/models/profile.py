from __future__ import annotations

"""
Profile model.

One-to-one with AuthUser: uses the auth user's id as its PK.
Roles form an ordered hierarchy: viewer < operator < admin.
"""

import enum
import uuid
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from glasstrace.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from glasstrace.models.auth_user import AuthUser


class UserRole(str, enum.Enum):
    VIEWER = "viewer"
    OPERATOR = "operator"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return ROLE_RANK[self]


ROLE_RANK: dict[UserRole, int] = {
    UserRole.VIEWER: 1,
    UserRole.OPERATOR: 2,
    UserRole.ADMIN: 3,
}


class Profile(Base, TimestampMixin):
    __tablename__ = "profiles"

    # PK = FK → auth_users.id  (true one-to-one)
    id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("auth_users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    email: Mapped[str] = mapped_column(String(256), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role", values_callable=lambda e: [m.value for m in e]),
        default=UserRole.VIEWER,
        nullable=False,
    )
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    user: Mapped["AuthUser"] = relationship(  # noqa: F821
        back_populates="profile",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Profile {self.email} role={self.role.value}>"
