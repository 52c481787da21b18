"""
SQLAlchemy-backed implementation of the backing store.

One session and one transaction per operation; a `StoreError` raised by
a service rolls the transaction back and is handed to the caller as
`StoreResult.error`.  Driver and network faults become TRANSIENT
errors.

The session layer keeps the current token pair in memory and persists
it to the terminal's client storage, so `get_session()` recovers it
after a restart (renewing it first if the access token has expired).
"""

import asyncio
import logging
import time
import uuid
from datetime import datetime
from typing import Awaitable, Callable, TypeVar

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from glasstrace.core.errors import ErrorKind, StoreError
from glasstrace.core.storage import ClientStorage
from glasstrace.schemas import (
    PieceDetail,
    PieceOut,
    Profile,
    ServiceSessionOut,
    Session,
    StationVerification,
    WorkStationOut,
)
from glasstrace.services import auth_service, piece_service, station_service
from glasstrace.store.base import (
    AuthEvent,
    AuthListener,
    SignOutScope,
    StoreResult,
    Unsubscribe,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SqlAlchemyStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        storage: ClientStorage,
    ):
        self._session_factory = session_factory
        self._storage = storage
        self._current: Session | None = None
        self._listeners: list[AuthListener] = []
        self._pending: set[asyncio.Task] = set()

    # ── Plumbing ─────────────────────────────────────────────────────

    async def _run(
        self,
        label: str,
        work: Callable[[AsyncSession], Awaitable[T]],
    ) -> StoreResult[T]:
        try:
            async with self._session_factory() as db:
                async with db.begin():
                    return StoreResult(data=await work(db))
        except StoreError as exc:
            return StoreResult(error=exc)
        except IntegrityError as exc:
            logger.warning("%s violated a constraint: %s", label, exc.orig)
            return StoreResult(error=StoreError(f"{label}: constraint violation", ErrorKind.CONSTRAINT))
        except (SQLAlchemyError, OSError) as exc:
            logger.warning("%s failed: %s", label, exc)
            return StoreResult(error=StoreError(f"{label} failed: store unavailable"))

    def _load(self) -> Session | None:
        if self._current is None:
            raw = self._storage.get_item(self._storage.session_key)
            if raw:
                try:
                    self._current = Session.model_validate(raw)
                except ValidationError:
                    logger.warning("Discarding unreadable persisted session")
                    self._storage.remove_item(self._storage.session_key)
        return self._current

    def _persist(self, session: Session | None) -> None:
        self._current = session
        if session is None:
            self._storage.remove_item(self._storage.session_key)
        else:
            self._storage.set_item(self._storage.session_key, session.model_dump(mode="json"))

    def _emit(self, event: AuthEvent, session: Session | None) -> None:
        for listener in list(self._listeners):
            task = asyncio.ensure_future(listener(event, session))
            self._pending.add(task)
            task.add_done_callback(self._listener_done)

    def _listener_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Auth listener failed", exc_info=task.exception())

    async def flush_events(self) -> None:
        """Wait until every auth event emitted so far has been delivered."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ── Session layer ────────────────────────────────────────────────

    def on_auth_state_change(self, listener: AuthListener) -> Unsubscribe:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def get_session(self) -> StoreResult[Session]:
        session = self._load()
        if session is None:
            return StoreResult()
        if session.expires_at.timestamp() > time.time():
            return StoreResult(data=session)
        logger.info("Persisted session expired, renewing before handing it out")
        return await self.refresh_session()

    async def refresh_session(self, forced: bool = False) -> StoreResult[Session]:
        current = self._load()
        if current is None:
            return StoreResult(error=StoreError(
                "Refresh token not found", ErrorKind.INVALID_REFRESH_TOKEN,
            ))

        result = await self._run(
            "refresh_session",
            lambda db: auth_service.refresh_tokens(current.refresh_token, db),
        )
        if result.error is not None:
            if result.error.is_invalid_refresh_token:
                self._persist(None)
            return result

        self._persist(result.data)
        self._emit(AuthEvent.TOKEN_REFRESHED, result.data)
        return result

    async def sign_in_with_password(self, identity: str, secret: str) -> StoreResult[Session]:
        result = await self._run(
            "sign_in",
            lambda db: auth_service.authenticate_user(identity, secret, db),
        )
        if result.ok:
            self._persist(result.data)
            self._emit(AuthEvent.SIGNED_IN, result.data)
        return result

    async def sign_up(self, identity: str, secret: str, display_name: str) -> StoreResult[Session]:
        result = await self._run(
            "sign_up",
            lambda db: auth_service.register_user(identity, secret, display_name, db),
        )
        if result.ok:
            self._persist(result.data)
            self._emit(AuthEvent.SIGNED_IN, result.data)
        return result

    async def sign_out(self, scope: SignOutScope = SignOutScope.GLOBAL) -> StoreResult[None]:
        current = self._load()
        if current is not None:
            result = await self._run(
                "sign_out",
                lambda db: auth_service.sign_out(current, scope is SignOutScope.GLOBAL, db),
            )
            if result.error is not None and result.error.kind is ErrorKind.TRANSIENT:
                return StoreResult(error=result.error)
        self._persist(None)
        self._emit(AuthEvent.SIGNED_OUT, None)
        return StoreResult()

    # ── Profiles ─────────────────────────────────────────────────────

    async def fetch_profile(self, subject_id: uuid.UUID) -> StoreResult[Profile]:
        async def work(db: AsyncSession) -> Profile:
            auth_service.verify_access(self._load())
            row = await auth_service.get_profile(subject_id, db)
            if row is None:
                raise StoreError("Profile not found", ErrorKind.NOT_FOUND)
            return Profile.model_validate(row)

        return await self._run("fetch_profile", work)

    # ── Stations ─────────────────────────────────────────────────────

    async def authenticate_station(
        self, station_id: str, station_secret: str,
    ) -> StoreResult[StationVerification]:
        return await self._run(
            "authenticate_station",
            lambda db: station_service.authenticate_station(station_id, station_secret, db),
        )

    async def insert_service_session(
        self,
        station_id: str,
        name: str,
        location: str,
        permissions: list[str],
        expires_at: datetime,
    ) -> StoreResult[ServiceSessionOut]:
        async def work(db: AsyncSession) -> ServiceSessionOut:
            row = await station_service.create_service_session(
                station_id, name, location, permissions, expires_at, db,
            )
            return ServiceSessionOut.model_validate(row)

        return await self._run("insert_service_session", work)

    async def update_service_session(
        self,
        session_id: uuid.UUID,
        *,
        expires_at: datetime | None = None,
        last_activity: datetime | None = None,
        active: bool | None = None,
    ) -> StoreResult[None]:
        return await self._run(
            "update_service_session",
            lambda db: station_service.update_service_session(
                session_id, db,
                expires_at=expires_at, last_activity=last_activity, active=active,
            ),
        )

    async def list_work_stations(self) -> StoreResult[list[WorkStationOut]]:
        async def work(db: AsyncSession) -> list[WorkStationOut]:
            rows = await station_service.list_work_stations(db)
            return [WorkStationOut.model_validate(r) for r in rows]

        return await self._run("list_work_stations", work)

    # ── Pieces ───────────────────────────────────────────────────────

    async def update_piece_status_atomic(
        self,
        barcode: str,
        new_status: str,
        station_id: str | None,
        actor_label: str,
        notes: str | None,
    ) -> StoreResult[PieceOut]:
        async def work(db: AsyncSession) -> PieceOut:
            piece = await piece_service.update_piece_status(
                barcode, new_status, station_id, actor_label, notes, db,
            )
            return PieceOut.model_validate(piece)

        return await self._run("update_piece_status", work)

    async def get_piece_with_order(self, barcode: str) -> StoreResult[PieceDetail]:
        async def work(db: AsyncSession) -> PieceDetail:
            piece = await piece_service.get_piece_with_order(barcode, db)
            return PieceDetail.model_validate(piece)

        return await self._run("get_piece_with_order", work)
