from __future__ import annotations

"""
Production tables touched by the scanning core.

Only the columns the piece lookup and the atomic status update need
are mapped here; order entry, pricing and square-footage live
elsewhere.
"""

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from glasstrace.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, utcnow


class PieceStatus(str, enum.Enum):
    PENDING = "pending"
    CUTTING = "cutting"
    TEMPERING = "tempering"
    EDGE_WORK = "edge_work"
    QUALITY_CHECK = "quality_check"
    COMPLETED = "completed"
    DEFECTIVE = "defective"


# value → (label, colour) for scanner displays
PIECE_STATUS_DISPLAY: dict[PieceStatus, tuple[str, str]] = {
    PieceStatus.PENDING: ("Pending", "yellow"),
    PieceStatus.CUTTING: ("Cutting", "blue"),
    PieceStatus.TEMPERING: ("Tempering", "orange"),
    PieceStatus.EDGE_WORK: ("Edge Work", "purple"),
    PieceStatus.QUALITY_CHECK: ("Quality Check", "indigo"),
    PieceStatus.COMPLETED: ("Completed", "green"),
    PieceStatus.DEFECTIVE: ("Defective", "red"),
}


class Client(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "clients"

    name: Mapped[str] = mapped_column(String(256), nullable=False)

    def __repr__(self) -> str:
        return f"<Client {self.name}>"


class GlassType(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "glass_types"

    type_name: Mapped[str] = mapped_column(String(128), nullable=False)
    color: Mapped[str | None] = mapped_column(String(64), nullable=True)
    thickness: Mapped[float | None] = mapped_column(Numeric(6, 3), nullable=True)

    def __repr__(self) -> str:
        return f"<GlassType {self.type_name}>"


class Order(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "orders"

    order_number: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    client_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("clients.id"), nullable=False)
    glass_type_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("glass_types.id"), nullable=False)
    priority: Mapped[str] = mapped_column(String(16), default="medium", nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="pending", nullable=False)

    client: Mapped["Client"] = relationship(lazy="selectin")  # noqa: F821
    glass_type: Mapped["GlassType"] = relationship(lazy="selectin")  # noqa: F821
    pieces: Mapped[list["Piece"]] = relationship(back_populates="order", lazy="selectin")  # noqa: F821

    def __repr__(self) -> str:
        return f"<Order {self.order_number}>"


class Piece(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "pieces"

    order_number: Mapped[str] = mapped_column(
        ForeignKey("orders.order_number"),
        nullable=False,
        index=True,
    )
    piece_number: Mapped[int] = mapped_column(Integer, nullable=False)
    barcode: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    current_status: Mapped[str] = mapped_column(
        String(32),
        default=PieceStatus.PENDING.value,
        nullable=False,
    )
    location: Mapped[str | None] = mapped_column(String(256), nullable=True)
    label: Mapped[str | None] = mapped_column(String(128), nullable=True)

    order: Mapped["Order"] = relationship(back_populates="pieces", lazy="selectin")  # noqa: F821

    def __repr__(self) -> str:
        return f"<Piece {self.barcode} {self.current_status}>"


class ProcessingHistory(Base, UUIDPrimaryKeyMixin):
    """Append-only audit trail of status changes."""

    __tablename__ = "processing_history"

    barcode: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    station_id: Mapped[str | None] = mapped_column(
        ForeignKey("work_stations.code"),
        nullable=True,
    )
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    employee: Mapped[str] = mapped_column(String(256), nullable=False)
    observations: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
