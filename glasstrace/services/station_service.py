"""
Station service: credential verification and service-session rows.

Station verification never reveals whether the code or the secret was
wrong: both yield the same failure payload.
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from glasstrace.core.errors import ErrorKind, StoreError
from glasstrace.core.security import verify_password
from glasstrace.models.station import DEFAULT_STATION_PERMISSIONS, ServiceSession, WorkStation
from glasstrace.schemas import StationVerification

logger = logging.getLogger(__name__)

INVALID_STATION_CREDENTIALS = "Invalid station credentials or station is inactive"


async def authenticate_station(
    station_id: str,
    station_secret: str,
    db: AsyncSession,
) -> StationVerification:
    stmt = select(WorkStation).where(WorkStation.code == station_id)
    station = (await db.execute(stmt)).scalar_one_or_none()

    if (
        station is None
        or not station.active
        or not verify_password(station_secret, station.station_secret_hash or "")
    ):
        logger.warning("Station authentication rejected for %s", station_id)
        return StationVerification(success=False, error=INVALID_STATION_CREDENTIALS)

    return StationVerification(
        success=True,
        station_name=station.station_name,
        location=station.location or station.station_name,
        permissions=list(station.permissions or DEFAULT_STATION_PERMISSIONS),
    )


async def create_service_session(
    station_id: str,
    name: str,
    location: str,
    permissions: list[str],
    expires_at: datetime,
    db: AsyncSession,
) -> ServiceSession:
    row = ServiceSession(
        id=uuid.uuid4(),
        station_id=station_id,
        station_name=name,
        location=location,
        permissions=list(permissions),
        expires_at=expires_at,
        last_activity=datetime.now(timezone.utc),
        active=True,
    )
    db.add(row)
    await db.flush()
    return row


async def update_service_session(
    session_id: uuid.UUID,
    db: AsyncSession,
    expires_at: datetime | None = None,
    last_activity: datetime | None = None,
    active: bool | None = None,
) -> None:
    """Patch a service session in place; a missing row is an error."""
    values: dict = {}
    if expires_at is not None:
        values["expires_at"] = expires_at
    if last_activity is not None:
        values["last_activity"] = last_activity
    if active is not None:
        values["active"] = active
    if not values:
        return

    stmt = update(ServiceSession).where(ServiceSession.id == session_id).values(**values)
    result = await db.execute(stmt)
    if result.rowcount == 0:
        raise StoreError("Service session not found", ErrorKind.NOT_FOUND)
    await db.flush()


async def list_work_stations(db: AsyncSession) -> list[WorkStation]:
    """Active stations in production order."""
    stmt = (
        select(WorkStation)
        .where(WorkStation.active == True)  # noqa: E712
        .order_by(WorkStation.order_sequence)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())
