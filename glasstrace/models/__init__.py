"""
Models package: import every model so SQLAlchemy's Base.metadata
knows about all tables (critical for `create_all`).
"""

from glasstrace.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from glasstrace.models.auth_user import AuthUser
from glasstrace.models.profile import Profile, UserRole, ROLE_RANK
from glasstrace.models.session import UserSession
from glasstrace.models.station import ServiceSession, WorkStation
from glasstrace.models.production import (
    Client,
    GlassType,
    Order,
    Piece,
    PieceStatus,
    PIECE_STATUS_DISPLAY,
    ProcessingHistory,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "AuthUser",
    "Profile",
    "UserRole",
    "ROLE_RANK",
    "UserSession",
    "ServiceSession",
    "WorkStation",
    "Client",
    "GlassType",
    "Order",
    "Piece",
    "PieceStatus",
    "PIECE_STATUS_DISPLAY",
    "ProcessingHistory",
]
