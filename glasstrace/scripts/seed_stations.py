"""
Work-station seeding script.

Creates the fixed production sequence of scanning stations.  It is
IDEMPOTENT: safe to re-run: existing stations are left untouched and
keep their secrets.

A secret is generated for every newly created station and printed
exactly once; only its bcrypt hash is stored.  Configure it on the
station as STATION_ID / STATION_SECRET.

Usage:
    python -m glasstrace.scripts.seed_stations
"""

import asyncio
import secrets
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from glasstrace.core.config import settings
from glasstrace.core.database import build_engine, build_session_factory
from glasstrace.core.security import hash_password
from glasstrace.models import Base
from glasstrace.models.station import DEFAULT_STATION_PERMISSIONS, WorkStation

# ────────────────────────────────────────────────────────────────────
# 1.  PRODUCTION SEQUENCE
# ────────────────────────────────────────────────────────────────────
WORK_STATIONS: list[dict[str, str | int]] = [
    {"code": "STATION_CUTTING_01", "station_name": "Cutting", "location": "Line 1 - Cutting table", "order_sequence": 1},
    {"code": "STATION_TEMPERING_01", "station_name": "Tempering", "location": "Line 1 - Tempering furnace", "order_sequence": 2},
    {"code": "STATION_EDGE_WORK_01", "station_name": "Edge Work", "location": "Line 1 - Edging", "order_sequence": 3},
    {"code": "STATION_QUALITY_01", "station_name": "Quality Check", "location": "Line 1 - Inspection", "order_sequence": 4},
    {"code": "STATION_COMPLETION_01", "station_name": "Completion", "location": "Dispatch bay", "order_sequence": 5},
]


def generate_station_secret() -> str:
    return secrets.token_urlsafe(24)


# ────────────────────────────────────────────────────────────────────
# 2.  SEED FUNCTION (idempotent)
# ────────────────────────────────────────────────────────────────────
async def seed(session: AsyncSession) -> dict[str, str]:
    """Create missing stations; return {code: plain secret} for the new ones."""
    existing = (await session.execute(select(WorkStation.code))).scalars().all()
    existing_codes = set(existing)

    created: dict[str, str] = {}
    for data in WORK_STATIONS:
        if data["code"] in existing_codes:
            continue
        secret = generate_station_secret()
        session.add(WorkStation(
            id=uuid.uuid4(),
            station_secret_hash=hash_password(secret),
            permissions=list(DEFAULT_STATION_PERMISSIONS),
            active=True,
            **data,
        ))
        created[data["code"]] = secret

    await session.commit()
    return created


# ────────────────────────────────────────────────────────────────────
# 3.  CLI entrypoint:  python -m glasstrace.scripts.seed_stations
# ────────────────────────────────────────────────────────────────────
async def main() -> None:
    engine = build_engine(settings.DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with build_session_factory(engine)() as session:
        created = await seed(session)
    await engine.dispose()

    if not created:
        print("✔  All work stations already exist.")
        return
    print("✔  Work stations seeded.  Store these secrets now, they are not shown again:\n")
    for code, secret in created.items():
        print(f"    {code:<24} {secret}")


if __name__ == "__main__":
    asyncio.run(main())
