"""
Work station & service session models.

A WorkStation is a scanning point in the production flow, identified
by a stable `code` (e.g. ``STATION_CUTTING_01``) and a bcrypt-hashed
secret.  A ServiceSession is the long-lived credential record an
unattended station holds; rows are deactivated, never deleted.
"""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from glasstrace.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, utcnow

DEFAULT_STATION_PERMISSIONS = ["scan", "update_status"]


class WorkStation(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "work_stations"

    code: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    station_name: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    location: Mapped[str | None] = mapped_column(String(256), nullable=True)
    station_secret_hash: Mapped[str | None] = mapped_column(String(512), nullable=True)
    permissions: Mapped[list[str]] = mapped_column(
        JSON,
        default=lambda: list(DEFAULT_STATION_PERMISSIONS),
        nullable=False,
    )
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    order_sequence: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<WorkStation {self.code}>"


class ServiceSession(Base):
    __tablename__ = "service_sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )
    station_id: Mapped[str] = mapped_column(
        ForeignKey("work_stations.code", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    station_name: Mapped[str] = mapped_column(String(128), nullable=False)
    location: Mapped[str] = mapped_column(String(256), nullable=False)
    permissions: Mapped[list[str]] = mapped_column(
        JSON,
        default=lambda: list(DEFAULT_STATION_PERMISSIONS),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_activity: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("ix_service_sessions_station_active", "station_id", "active"),
    )

    def __repr__(self) -> str:
        return f"<ServiceSession station={self.station_id} active={self.active}>"
