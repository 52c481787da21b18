"""
Backing store interface.

Everything the session core needs from the store, expressed as async
operations returning `StoreResult` values.  Expected failures come
back in `StoreResult.error`; implementations only raise for
programming errors.

Auth events are pushed to subscribers registered with
`on_auth_state_change`.  Listeners are coroutine functions; the store
may deliver events late, duplicated or out of order relative to the
operation that caused them.
"""

import enum
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Generic, Protocol, TypeVar

from glasstrace.core.errors import StoreError
from glasstrace.schemas import (
    PieceDetail,
    PieceOut,
    Profile,
    ServiceSessionOut,
    Session,
    StationVerification,
    WorkStationOut,
)

T = TypeVar("T")


@dataclass(frozen=True)
class StoreResult(Generic[T]):
    data: T | None = None
    error: StoreError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class AuthEvent(str, enum.Enum):
    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"


class SignOutScope(str, enum.Enum):
    LOCAL = "local"
    GLOBAL = "global"


AuthListener = Callable[[AuthEvent, Session | None], Awaitable[None]]
Unsubscribe = Callable[[], None]


class BackingStore(Protocol):
    # ── Session layer ────────────────────────────────────────────────
    async def get_session(self) -> StoreResult[Session]: ...

    async def refresh_session(self, forced: bool = False) -> StoreResult[Session]: ...

    async def sign_in_with_password(self, identity: str, secret: str) -> StoreResult[Session]: ...

    async def sign_up(self, identity: str, secret: str, display_name: str) -> StoreResult[Session]: ...

    async def sign_out(self, scope: SignOutScope = SignOutScope.GLOBAL) -> StoreResult[None]: ...

    def on_auth_state_change(self, listener: AuthListener) -> Unsubscribe: ...

    # ── Profiles ─────────────────────────────────────────────────────
    async def fetch_profile(self, subject_id: uuid.UUID) -> StoreResult[Profile]: ...

    # ── Stations ─────────────────────────────────────────────────────
    async def authenticate_station(
        self, station_id: str, station_secret: str,
    ) -> StoreResult[StationVerification]: ...

    async def insert_service_session(
        self,
        station_id: str,
        name: str,
        location: str,
        permissions: list[str],
        expires_at: datetime,
    ) -> StoreResult[ServiceSessionOut]: ...

    async def update_service_session(
        self,
        session_id: uuid.UUID,
        *,
        expires_at: datetime | None = None,
        last_activity: datetime | None = None,
        active: bool | None = None,
    ) -> StoreResult[None]: ...

    async def list_work_stations(self) -> StoreResult[list[WorkStationOut]]: ...

    # ── Pieces ───────────────────────────────────────────────────────
    async def update_piece_status_atomic(
        self,
        barcode: str,
        new_status: str,
        station_id: str | None,
        actor_label: str,
        notes: str | None,
    ) -> StoreResult[PieceOut]: ...

    async def get_piece_with_order(self, barcode: str) -> StoreResult[PieceDetail]: ...
