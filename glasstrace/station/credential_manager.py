"""
Station service-credential manager.

A scanning station authenticates with its configured id/secret pair and
holds a 12-hour service session, renewed in place every 10 hours.  Piece
lookups and status updates re-authenticate lazily when the local copy
of the session is missing, expired or inactive.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Generic, TypeVar

from glasstrace.auth.timers import TimerLine
from glasstrace.core.clock import AsyncioScheduler, Scheduler, utc_from_timestamp
from glasstrace.core.errors import ErrorKind, StoreError
from glasstrace.schemas import PieceDetail, PieceOut, ServiceSessionOut, WorkStationOut
from glasstrace.services.station_service import INVALID_STATION_CREDENTIALS
from glasstrace.store.base import BackingStore

logger = logging.getLogger(__name__)

SERVICE_SESSION_HOURS = 12
SERVICE_RENEWAL_HOURS = 10

SESSION_CREATE_FAILED = "Failed to create service session"
SESSION_CLOSED = "Station session was closed during authentication"

T = TypeVar("T")


class StationErrorKind(str, enum.Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    STORE_ERROR = "store_error"
    SESSION_CREATE_FAILED = "session_create_failed"
    OPERATION_FAILED = "operation_failed"
    NOT_FOUND = "not_found"
    NOT_AUTHORIZED = "not_authorized"
    SESSION_PENDING = "session_pending"


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    success: bool
    data: T | None = None
    error: str | None = None
    error_kind: StationErrorKind | None = None

    @classmethod
    def failed(cls, error: str, kind: StationErrorKind) -> "OperationResult[Any]":
        return cls(success=False, error=error, error_kind=kind)

    @classmethod
    def from_store_error(cls, error: StoreError) -> "OperationResult[Any]":
        """Store failures are returned verbatim; a missing row keeps its own kind."""
        if error.kind is ErrorKind.NOT_FOUND:
            return cls.failed(error.message, StationErrorKind.NOT_FOUND)
        return cls.failed(error.message, StationErrorKind.OPERATION_FAILED)


@dataclass
class StationState:
    is_authenticated: bool = False
    loading: bool = False
    error: str | None = None
    session: ServiceSessionOut | None = None


class StationCredentialManager:
    def __init__(
        self,
        store: BackingStore,
        station_id: str,
        station_secret: str,
        *,
        scheduler: Scheduler | None = None,
        session_hours: float = SERVICE_SESSION_HOURS,
        renewal_hours: float = SERVICE_RENEWAL_HOURS,
    ):
        self._store = store
        self.station_id = station_id
        self._station_secret = station_secret
        self._scheduler = scheduler or AsyncioScheduler()
        self.session_lifetime = timedelta(hours=session_hours)
        self.renewal_interval = timedelta(hours=renewal_hours)

        self.state = StationState()
        self.renewal_timer = TimerLine(self._scheduler, "service-renewal")
        self._generation = 0
        self._auth_lock = asyncio.Lock()

    @property
    def is_authenticated(self) -> bool:
        return self.state.is_authenticated

    @property
    def session_info(self) -> ServiceSessionOut | None:
        return self.state.session

    @property
    def station_name(self) -> str:
        if self.state.session is not None:
            return self.state.session.station_name
        return self.station_id

    def _expiry_from_now(self) -> datetime:
        return utc_from_timestamp(self._scheduler.now()) + self.session_lifetime

    def _fail(self, error: str, kind: StationErrorKind) -> OperationResult[Any]:
        self.state.is_authenticated = False
        self.state.error = error
        return OperationResult.failed(error, kind)

    def _superseded(self) -> OperationResult[Any]:
        # cleanup() ran while a store call was pending
        logger.info("Discarding station authentication for %s after cleanup", self.station_id)
        return OperationResult.failed(SESSION_CLOSED, StationErrorKind.OPERATION_FAILED)

    async def _deactivate(self, session: ServiceSessionOut) -> None:
        result = await self._store.update_service_session(session.id, active=False)
        if result.error is not None:
            logger.warning("Error cleaning up service session: %s", result.error.message)
        else:
            logger.info("Service session closed for %s", session.station_name)

    # ── Authentication ───────────────────────────────────────────────

    async def initialize(
        self,
        station_id: str | None = None,
        station_secret: str | None = None,
    ) -> OperationResult[ServiceSessionOut]:
        """Verify the station and open a fresh service session."""
        if station_id is not None:
            self.station_id = station_id
        if station_secret is not None:
            self._station_secret = station_secret

        self.state.loading = True
        try:
            return await self._authenticate()
        finally:
            self.state.loading = False

    async def _authenticate(self) -> OperationResult[ServiceSessionOut]:
        generation = self._generation
        logger.info("Authenticating station %s", self.station_id)
        verified = await self._store.authenticate_station(self.station_id, self._station_secret)
        if generation != self._generation:
            return self._superseded()
        if verified.error is not None:
            logger.error("Station authentication failed: %s", verified.error.message)
            return self._fail(verified.error.message, StationErrorKind.STORE_ERROR)

        payload = verified.data
        if payload is None or not payload.success:
            error = (payload.error if payload is not None else None) or INVALID_STATION_CREDENTIALS
            return self._fail(error, StationErrorKind.INVALID_CREDENTIALS)

        inserted = await self._store.insert_service_session(
            self.station_id,
            payload.station_name or self.station_id,
            payload.location or payload.station_name or self.station_id,
            payload.permissions,
            self._expiry_from_now(),
        )
        if generation != self._generation:
            if inserted.data is not None:
                await self._deactivate(inserted.data)
            return self._superseded()
        if inserted.error is not None or inserted.data is None:
            reason = inserted.error.message if inserted.error is not None else "no row returned"
            logger.error("Error creating service session for %s: %s", self.station_id, reason)
            return self._fail(SESSION_CREATE_FAILED, StationErrorKind.SESSION_CREATE_FAILED)

        self.state.session = inserted.data
        self.state.is_authenticated = True
        self.state.error = None
        self._schedule_renewal()
        logger.info("Service session created for %s", inserted.data.station_name)
        return OperationResult(success=True, data=inserted.data)

    def _schedule_renewal(self) -> None:
        generation = self._generation

        def fire() -> Any:
            if generation != self._generation:
                return None
            return self._renew()

        self.renewal_timer.arm(self.renewal_interval.total_seconds(), fire)

    async def _renew(self) -> None:
        session = self.state.session
        if session is None:
            return

        generation = self._generation
        now = utc_from_timestamp(self._scheduler.now())
        expires_at = now + self.session_lifetime
        result = await self._store.update_service_session(
            session.id, expires_at=expires_at, last_activity=now,
        )
        if generation != self._generation:
            return

        if result.error is None:
            self.state.session = session.model_copy(
                update={"expires_at": expires_at, "last_activity": now},
            )
            self._schedule_renewal()
            logger.info("Service session renewed for %s", session.station_name)
            return

        logger.warning("Error renewing service session (%s), re-authenticating", result.error.message)
        await self.initialize()

    def _is_valid_session(self) -> bool:
        session = self.state.session
        if session is None or not session.active:
            return False
        return session.expires_at.timestamp() > self._scheduler.now()

    async def _ensure_session(self) -> OperationResult[ServiceSessionOut] | None:
        """None when the local session is usable, else the failed re-auth."""
        async with self._auth_lock:
            if self._is_valid_session():
                return None
            logger.info("Service session invalid for %s, re-authenticating", self.station_id)
            result = await self.initialize()
            return None if result.success else result

    # ── Operations ───────────────────────────────────────────────────

    async def update_piece_status(
        self,
        barcode: str,
        new_status: str,
        notes: str | None = None,
    ) -> OperationResult[PieceOut]:
        failed = await self._ensure_session()
        if failed is not None:
            return OperationResult.failed(failed.error or SESSION_CREATE_FAILED, failed.error_kind)

        session = self.state.session
        result = await self._store.update_piece_status_atomic(
            barcode,
            new_status,
            self.station_id,
            f"Scanner: {session.station_name}",
            notes or f"Updated to {new_status} via scanner",
        )
        if result.error is not None:
            logger.error("Error updating piece %s: %s", barcode, result.error.message)
            return OperationResult.from_store_error(result.error)

        touched = await self._store.update_service_session(
            session.id, last_activity=utc_from_timestamp(self._scheduler.now()),
        )
        if touched.error is not None:
            logger.warning("Could not record station activity: %s", touched.error.message)

        logger.info("Piece %s updated to %s by %s", barcode, new_status, session.station_name)
        return OperationResult(success=True, data=result.data)

    async def get_piece_info(self, barcode: str) -> OperationResult[PieceDetail]:
        failed = await self._ensure_session()
        if failed is not None:
            return OperationResult.failed(failed.error or SESSION_CREATE_FAILED, failed.error_kind)

        result = await self._store.get_piece_with_order(barcode)
        if result.error is not None:
            if result.error.kind is not ErrorKind.NOT_FOUND:
                logger.error("Error fetching piece %s: %s", barcode, result.error.message)
            return OperationResult.from_store_error(result.error)
        return OperationResult(success=True, data=result.data)

    async def get_work_stations(self) -> OperationResult[list[WorkStationOut]]:
        result = await self._store.list_work_stations()
        if result.error is not None:
            logger.error("Error fetching work stations: %s", result.error.message)
            return OperationResult.from_store_error(result.error)
        return OperationResult(success=True, data=result.data or [])

    async def cleanup(self) -> None:
        """Stop renewing and deactivate the service session."""
        self._generation += 1
        self.renewal_timer.cancel()

        session = self.state.session
        if session is not None:
            await self._deactivate(session)

        self.state = StationState()
