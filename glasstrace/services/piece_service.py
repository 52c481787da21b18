"""
Piece service: scanner-facing reads and the atomic status update.

`update_piece_status` runs inside the caller's transaction: the status
change and its processing-history entry are flushed together, so the
store adapter's commit applies both or neither.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from glasstrace.core.errors import ErrorKind, StoreError
from glasstrace.models.production import Order, Piece, PieceStatus, ProcessingHistory

VALID_STATUSES = {s.value for s in PieceStatus}


async def update_piece_status(
    barcode: str,
    new_status: str,
    station_id: str | None,
    actor_label: str,
    notes: str | None,
    db: AsyncSession,
) -> Piece:
    if new_status not in VALID_STATUSES:
        raise StoreError(f"Invalid status: {new_status}", ErrorKind.CONSTRAINT)

    stmt = select(Piece).where(Piece.barcode == barcode).with_for_update()
    piece = (await db.execute(stmt)).scalar_one_or_none()
    if piece is None:
        raise StoreError("Piece not found", ErrorKind.NOT_FOUND)

    piece.current_status = new_status
    db.add(ProcessingHistory(
        barcode=barcode,
        station_id=station_id,
        status=new_status,
        employee=actor_label,
        observations=notes,
    ))
    await db.flush()
    await db.refresh(piece)
    return piece


async def get_piece_with_order(barcode: str, db: AsyncSession) -> Piece:
    stmt = (
        select(Piece)
        .options(
            selectinload(Piece.order).selectinload(Order.client),
            selectinload(Piece.order).selectinload(Order.glass_type),
        )
        .where(Piece.barcode == barcode)
    )
    piece = (await db.execute(stmt)).scalar_one_or_none()
    if piece is None:
        raise StoreError("Piece not found", ErrorKind.NOT_FOUND)
    return piece
