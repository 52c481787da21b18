"""
Integration Tests for the SQLAlchemy backing store
Tests for: session layer, token rotation, sign-out scopes, profiles,
station verification, atomic piece updates
"""
import time
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from glasstrace.core.errors import ErrorKind
from glasstrace.core.storage import ClientStorage
from glasstrace.models import Piece, ProcessingHistory, ServiceSession, UserSession
from glasstrace.models.profile import UserRole
from glasstrace.services.station_service import INVALID_STATION_CREDENTIALS
from glasstrace.station.credential_manager import StationCredentialManager, StationErrorKind
from glasstrace.store.base import AuthEvent, SignOutScope
from glasstrace.store.sql_store import SqlAlchemyStore
from tests.conftest import (
    BARCODE,
    OPERATOR_EMAIL,
    OPERATOR_PASSWORD,
    STATION_CODE,
    STATION_SECRET,
)
from tests.helpers.fakes import ManualScheduler


class _Unreachable:
    """Session factory whose connections always fail"""

    def __call__(self):
        return self

    async def __aenter__(self):
        raise OSError("connection refused")

    async def __aexit__(self, *exc):
        return False


async def _count(session_factory, model) -> int:
    async with session_factory() as s:
        return (await s.execute(select(func.count()).select_from(model))).scalar_one()


class TestSessionLayer:
    """Sign-in, recovery and renewal"""

    @pytest.mark.asyncio
    async def test_sign_in_persists_and_emits(self, sql_store, storage, operator_user):
        events = []

        async def listener(event, session):
            events.append((event, session))

        sql_store.on_auth_state_change(listener)

        result = await sql_store.sign_in_with_password(OPERATOR_EMAIL, OPERATOR_PASSWORD)
        await sql_store.flush_events()

        assert result.ok
        assert result.data.user.email == OPERATOR_EMAIL
        assert storage.get_item(storage.session_key)["access_token"] == result.data.access_token
        assert events == [(AuthEvent.SIGNED_IN, result.data)]

    @pytest.mark.asyncio
    async def test_wrong_password(self, sql_store, operator_user):
        result = await sql_store.sign_in_with_password(OPERATOR_EMAIL, "nope")

        assert result.error.kind is ErrorKind.INVALID_CREDENTIALS
        assert result.error.message == "Invalid login credentials"

    @pytest.mark.asyncio
    async def test_session_recovered_after_restart(self, sql_store, session_factory, storage, operator_user):
        signed_in = (await sql_store.sign_in_with_password(OPERATOR_EMAIL, OPERATOR_PASSWORD)).data

        restarted = SqlAlchemyStore(session_factory, storage)
        result = await restarted.get_session()

        assert result.data == signed_in

    @pytest.mark.asyncio
    async def test_expired_access_token_is_renewed(self, sql_store, session_factory, storage, operator_user):
        signed_in = (await sql_store.sign_in_with_password(OPERATOR_EMAIL, OPERATOR_PASSWORD)).data
        expired = signed_in.model_copy(update={"expires_at": datetime.now(timezone.utc) - timedelta(minutes=1)})
        storage.set_item(storage.session_key, expired.model_dump(mode="json"))

        restarted = SqlAlchemyStore(session_factory, storage)
        result = await restarted.get_session()

        assert result.ok
        assert result.data.expires_at.timestamp() > time.time()
        assert result.data.refresh_token != signed_in.refresh_token

    @pytest.mark.asyncio
    async def test_refresh_without_session(self, sql_store):
        result = await sql_store.refresh_session()

        assert result.error.is_invalid_refresh_token
        assert result.error.message == "Refresh token not found"

    @pytest.mark.asyncio
    async def test_refresh_rotates_token(self, sql_store, session_factory, storage, operator_user):
        original = (await sql_store.sign_in_with_password(OPERATOR_EMAIL, OPERATOR_PASSWORD)).data

        renewed = await sql_store.refresh_session()
        assert renewed.ok
        assert renewed.data.refresh_token != original.refresh_token
        async with session_factory() as s:
            row = (await s.execute(select(UserSession))).scalar_one()
        assert row.rotation_count == 1
        assert row.rotated_at is not None

        storage.set_item(storage.session_key, original.model_dump(mode="json"))
        replay = await SqlAlchemyStore(session_factory, storage).refresh_session()

        assert replay.error.is_invalid_refresh_token
        assert storage.get_item(storage.session_key) is None


class TestSignOutScopes:
    """local ends one session, global ends all of the user's sessions"""

    async def _two_terminals(self, session_factory, tmp_path):
        first = SqlAlchemyStore(session_factory, ClientStorage(tmp_path / "a"))
        second = SqlAlchemyStore(session_factory, ClientStorage(tmp_path / "b"))
        await first.sign_in_with_password(OPERATOR_EMAIL, OPERATOR_PASSWORD)
        await second.sign_in_with_password(OPERATOR_EMAIL, OPERATOR_PASSWORD)
        return first, second

    @pytest.mark.asyncio
    async def test_local_scope(self, session_factory, tmp_path, operator_user):
        first, second = await self._two_terminals(session_factory, tmp_path)

        assert (await first.sign_out(SignOutScope.LOCAL)).ok

        assert (await first.get_session()).data is None
        assert (await second.refresh_session()).ok

    @pytest.mark.asyncio
    async def test_global_scope(self, session_factory, tmp_path, operator_user):
        first, second = await self._two_terminals(session_factory, tmp_path)

        await first.sign_out(SignOutScope.GLOBAL)

        assert (await second.refresh_session()).error.is_invalid_refresh_token

    @pytest.mark.asyncio
    async def test_sign_out_without_session(self, sql_store):
        assert (await sql_store.sign_out()).ok


class TestSignUpAndProfiles:
    @pytest.mark.asyncio
    async def test_sign_up_creates_viewer(self, sql_store):
        result = await sql_store.sign_up("new@example.com", "password123", "New Person")

        profile = await sql_store.fetch_profile(result.data.user.id)
        assert profile.data.role is UserRole.VIEWER
        assert profile.data.name == "New Person"
        assert profile.data.active is True

    @pytest.mark.asyncio
    async def test_duplicate_sign_up(self, sql_store, operator_user):
        result = await sql_store.sign_up(OPERATOR_EMAIL, "password123", "Again")

        assert result.error.kind is ErrorKind.CONSTRAINT

    @pytest.mark.asyncio
    async def test_fetch_profile_requires_session(self, sql_store, operator_user):
        result = await sql_store.fetch_profile(operator_user.id)

        assert result.error.kind is ErrorKind.INVALID_JWT

    @pytest.mark.asyncio
    async def test_store_unreachable_is_transient(self, storage):
        store = SqlAlchemyStore(_Unreachable(), storage)

        result = await store.list_work_stations()

        assert result.error.kind is ErrorKind.TRANSIENT


class TestStations:
    """Station verification and service sessions"""

    @pytest.mark.asyncio
    async def test_correct_secret(self, sql_store, station):
        result = await sql_store.authenticate_station(STATION_CODE, STATION_SECRET)

        assert result.data.success is True
        assert result.data.station_name == "Cutting"
        assert result.data.permissions == ["scan", "update_status"]

    @pytest.mark.asyncio
    async def test_wrong_secret_creates_nothing(self, sql_store, session_factory, station):
        """Scenario C against the real store"""
        manager = StationCredentialManager(
            sql_store, STATION_CODE, "wrong-secret", scheduler=ManualScheduler(time.time()),
        )

        result = await manager.initialize()

        assert result.success is False
        assert result.error == INVALID_STATION_CREDENTIALS
        assert result.error_kind is StationErrorKind.INVALID_CREDENTIALS
        assert await _count(session_factory, ServiceSession) == 0

    @pytest.mark.asyncio
    async def test_unknown_and_inactive_look_the_same(self, sql_store, db_session, station):
        unknown = await sql_store.authenticate_station("STATION_NOPE_01", STATION_SECRET)
        station.active = False
        await db_session.commit()
        inactive = await sql_store.authenticate_station(STATION_CODE, STATION_SECRET)

        assert unknown.data == inactive.data
        assert inactive.data.error == INVALID_STATION_CREDENTIALS

    @pytest.mark.asyncio
    async def test_missing_service_session_update(self, sql_store):
        result = await sql_store.update_service_session(uuid.uuid4(), active=False)

        assert result.error.kind is ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_station_round_trip(self, sql_store, session_factory, station, piece):
        """initialize → update piece → cleanup over the real store"""
        manager = StationCredentialManager(
            sql_store, STATION_CODE, STATION_SECRET, scheduler=ManualScheduler(time.time()),
        )
        assert (await manager.initialize()).success

        result = await manager.update_piece_status(BARCODE, "tempering", "ok")
        assert result.success, result.error
        assert result.data.current_status == "tempering"

        await manager.cleanup()

        async with session_factory() as s:
            rows = (await s.execute(select(ServiceSession))).scalars().all()
            history = (await s.execute(select(ProcessingHistory))).scalars().all()
        assert [r.active for r in rows] == [False]
        assert len(history) == 1
        assert history[0].station_id == STATION_CODE
        assert history[0].employee == "Scanner: Cutting"
        assert history[0].observations == "ok"


class TestPieces:
    """Atomic status update and lookup"""

    @pytest.mark.asyncio
    async def test_lookup_joins_order(self, sql_store, piece):
        result = await sql_store.get_piece_with_order(BARCODE)

        assert result.data.order.client.name == "Vidrios Norte"
        assert result.data.order.glass_type.type_name == "Clear float"

    @pytest.mark.asyncio
    async def test_unknown_barcode(self, sql_store, piece):
        result = await sql_store.update_piece_status_atomic("GLS-NOPE", "cutting", None, "Ana", None)

        assert result.error.kind is ErrorKind.NOT_FOUND
        assert result.error.message == "Piece not found"

    @pytest.mark.asyncio
    async def test_invalid_status_applies_nothing(self, sql_store, session_factory, piece):
        result = await sql_store.update_piece_status_atomic(BARCODE, "shipped", None, "Ana", None)

        assert result.error.kind is ErrorKind.CONSTRAINT
        assert await _count(session_factory, ProcessingHistory) == 0
        async with session_factory() as s:
            row = (await s.execute(select(Piece).where(Piece.barcode == BARCODE))).scalar_one()
        assert row.current_status == "pending"

    @pytest.mark.asyncio
    async def test_work_stations_in_order(self, sql_store, station):
        result = await sql_store.list_work_stations()

        assert [s.code for s in result.data] == [STATION_CODE]
