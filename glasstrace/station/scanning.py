"""
Scanning capability.

The scanning interface updates piece statuses through one of two
variants chosen at configuration time:

- manual  : the signed-in operator's session and role authorise the
            update, and the operator's name is recorded on the audit row.
- service : the station's own service credential authorises it.

Both variants satisfy `PieceStatusUpdater`; a terminal holds exactly
one of them and never mixes calls between the two.
"""

import enum
import logging
from typing import Protocol

from glasstrace.auth.guard import resolve_guard
from glasstrace.auth.session_manager import UserSessionManager
from glasstrace.core.errors import ErrorKind
from glasstrace.models.production import PIECE_STATUS_DISPLAY
from glasstrace.models.profile import UserRole
from glasstrace.schemas import PieceDetail, PieceOut, StatusOption, WorkStationOut
from glasstrace.station.credential_manager import (
    OperationResult,
    StationCredentialManager,
    StationErrorKind,
)
from glasstrace.store.base import BackingStore

logger = logging.getLogger(__name__)

SCANNER_ROLE = UserRole.OPERATOR


class ScanMode(str, enum.Enum):
    MANUAL = "manual"
    SERVICE = "service"


def available_statuses() -> list[StatusOption]:
    return [
        StatusOption(value=status.value, label=label, color=color)
        for status, (label, color) in PIECE_STATUS_DISPLAY.items()
    ]


def default_notes(new_status: str) -> str:
    return f"Updated to {new_status} via scanner"


class PieceStatusUpdater(Protocol):
    mode: ScanMode

    async def update_piece_status(
        self, barcode: str, new_status: str, notes: str | None = None,
    ) -> OperationResult[PieceOut]: ...

    async def get_piece_info(self, barcode: str) -> OperationResult[PieceDetail]: ...

    async def get_work_stations(self) -> OperationResult[list[WorkStationOut]]: ...


class OperatorStatusUpdater:
    """Manual mode: backed by the interactive user session."""

    mode = ScanMode.MANUAL

    def __init__(self, store: BackingStore, session_manager: UserSessionManager):
        self._store = store
        self._sessions = session_manager

    def _authorise(self) -> OperationResult | None:
        decision = resolve_guard(self._sessions.snapshot, SCANNER_ROLE)
        if decision.allowed:
            return None
        if decision.pending:
            return OperationResult.failed("Session is still loading", StationErrorKind.SESSION_PENDING)
        return OperationResult.failed(
            "Operator sign-in required to scan", StationErrorKind.NOT_AUTHORIZED,
        )

    async def update_piece_status(
        self, barcode: str, new_status: str, notes: str | None = None,
    ) -> OperationResult[PieceOut]:
        denied = self._authorise()
        if denied is not None:
            return denied

        profile = self._sessions.snapshot.profile
        result = await self._store.update_piece_status_atomic(
            barcode, new_status, None, profile.name, notes or default_notes(new_status),
        )
        if result.error is not None:
            logger.error("Error updating piece %s: %s", barcode, result.error.message)
            return OperationResult.from_store_error(result.error)

        self._sessions.update_activity()
        logger.info("Piece %s updated to %s by %s", barcode, new_status, profile.name)
        return OperationResult(success=True, data=result.data)

    async def get_piece_info(self, barcode: str) -> OperationResult[PieceDetail]:
        denied = self._authorise()
        if denied is not None:
            return denied

        result = await self._store.get_piece_with_order(barcode)
        if result.error is not None:
            if result.error.kind is not ErrorKind.NOT_FOUND:
                logger.error("Error fetching piece %s: %s", barcode, result.error.message)
            return OperationResult.from_store_error(result.error)
        return OperationResult(success=True, data=result.data)

    async def get_work_stations(self) -> OperationResult[list[WorkStationOut]]:
        result = await self._store.list_work_stations()
        if result.error is not None:
            return OperationResult.from_store_error(result.error)
        return OperationResult(success=True, data=result.data or [])


class StationStatusUpdater:
    """Service mode: backed by the station's service credential."""

    mode = ScanMode.SERVICE

    def __init__(self, manager: StationCredentialManager):
        self.manager = manager

    async def update_piece_status(
        self, barcode: str, new_status: str, notes: str | None = None,
    ) -> OperationResult[PieceOut]:
        return await self.manager.update_piece_status(barcode, new_status, notes)

    async def get_piece_info(self, barcode: str) -> OperationResult[PieceDetail]:
        return await self.manager.get_piece_info(barcode)

    async def get_work_stations(self) -> OperationResult[list[WorkStationOut]]:
        return await self.manager.get_work_stations()


def create_station_manager(
    store: BackingStore,
    station_id: str,
    station_secret: str,
    **options,
) -> StationCredentialManager | None:
    """A station manager exists only when both id and secret are configured."""
    if not station_id or not station_secret:
        return None
    return StationCredentialManager(store, station_id, station_secret, **options)


def build_scanner(
    mode: ScanMode,
    store: BackingStore,
    session_manager: UserSessionManager,
    station_manager: StationCredentialManager | None,
) -> PieceStatusUpdater:
    if mode is ScanMode.SERVICE:
        if station_manager is None:
            logger.warning("Service scan mode without station credentials, falling back to manual")
        else:
            return StationStatusUpdater(station_manager)
    return OperatorStatusUpdater(store, session_manager)
