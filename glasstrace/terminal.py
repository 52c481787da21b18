"""
Terminal wiring.

One scanning terminal process owns one backing store client, one user
session manager, at most one station manager and the scanner variant
selected by SCAN_MODE.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine

from glasstrace.auth.recovery import EmergencyReset, RecordingNavigator
from glasstrace.auth.session_manager import UserSessionManager
from glasstrace.core.clock import AsyncioScheduler, Scheduler
from glasstrace.core.config import Settings, settings
from glasstrace.core.database import build_engine, build_session_factory
from glasstrace.core.storage import ClientStorage
from glasstrace.station.credential_manager import StationCredentialManager
from glasstrace.station.scanning import (
    PieceStatusUpdater,
    ScanMode,
    build_scanner,
    create_station_manager,
)
from glasstrace.store.sql_store import SqlAlchemyStore

logger = logging.getLogger(__name__)


@dataclass
class Terminal:
    config: Settings
    scheduler: Scheduler
    storage: ClientStorage
    navigator: RecordingNavigator
    store: SqlAlchemyStore
    session_manager: UserSessionManager
    station_manager: StationCredentialManager | None
    scanner: PieceStatusUpdater
    engine: AsyncEngine | None = None

    @property
    def mode(self) -> ScanMode:
        return self.scanner.mode

    async def start(self) -> None:
        await self.session_manager.initialize()
        await self.settle()
        if self.station_manager is not None:
            result = await self.station_manager.initialize()
            if not result.success:
                logger.warning("Station %s not authenticated: %s", self.station_manager.station_id, result.error)
        logger.info("Terminal started in %s mode", self.mode.value)

    async def settle(self) -> None:
        """Let pending auth events reach the session manager."""
        await self.store.flush_events()

    async def stop(self) -> None:
        if self.station_manager is not None:
            await self.station_manager.cleanup()
        self.session_manager.close()
        await self.store.flush_events()
        if self.engine is not None:
            await self.engine.dispose()
            logger.info("Database engine disposed.")


def build_terminal(
    config: Settings = settings,
    *,
    engine: AsyncEngine | None = None,
    scheduler: Scheduler | None = None,
) -> Terminal:
    engine = engine or build_engine(config.DATABASE_URL)
    scheduler = scheduler or AsyncioScheduler()
    storage = ClientStorage(config.CLIENT_STATE_DIR, config.STORAGE_NAMESPACE)
    navigator = RecordingNavigator()
    store = SqlAlchemyStore(build_session_factory(engine), storage)

    reset = EmergencyReset(storage, store, navigator, config.SIGN_IN_PATH)
    session_manager = UserSessionManager(store, reset, scheduler=scheduler)
    station_manager = create_station_manager(
        store, config.STATION_ID, config.STATION_SECRET, scheduler=scheduler,
    )
    scanner = build_scanner(ScanMode(config.SCAN_MODE), store, session_manager, station_manager)

    return Terminal(
        config=config,
        scheduler=scheduler,
        storage=storage,
        navigator=navigator,
        store=store,
        session_manager=session_manager,
        station_manager=station_manager,
        scanner=scanner,
        engine=engine,
    )
