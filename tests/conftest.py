"""
Glasstrace - Test Configuration and Fixtures
"""
import os
import uuid
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing-only")

from glasstrace.auth.recovery import EmergencyReset, RecordingNavigator
from glasstrace.auth.session_manager import UserSessionManager
from glasstrace.core.config import Settings
from glasstrace.core.security import hash_password
from glasstrace.core.storage import ClientStorage
from glasstrace.models import (
    AuthUser,
    Base,
    Client,
    GlassType,
    Order,
    Piece,
    Profile,
    UserRole,
    WorkStation,
)
from glasstrace.store.sql_store import SqlAlchemyStore
from glasstrace.terminal import Terminal, build_terminal
from tests.helpers.fakes import FakeStore, ManualScheduler

TEST_DATABASE_URL = "sqlite+aiosqlite://"
BARCODE = "GLS-20250101-000123-P001"
STATION_CODE = "STATION_CUTTING_01"
STATION_SECRET = "cutting-secret"
OPERATOR_EMAIL = "operator@example.com"
OPERATOR_PASSWORD = "operator-pass-123"
VIEWER_EMAIL = "viewer@example.com"
VIEWER_PASSWORD = "viewer-pass-123"


# ── Session core (fakes, virtual time) ───────────────────────────────

@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def storage(tmp_path) -> ClientStorage:
    return ClientStorage(tmp_path / "client-state", namespace="glasstrace")


@pytest.fixture
def navigator() -> RecordingNavigator:
    return RecordingNavigator()


@pytest.fixture
def manager(fake_store, storage, navigator, scheduler):
    """User session manager over the scripted store"""
    reset = EmergencyReset(storage, fake_store, navigator, "/auth/login")
    mgr = UserSessionManager(fake_store, reset, scheduler=scheduler)
    yield mgr
    mgr.close()


# ── Backing store (in-memory SQLite) ─────────────────────────────────

@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database per test; StaticPool keeps one connection"""
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def sql_store(session_factory, storage) -> SqlAlchemyStore:
    return SqlAlchemyStore(session_factory, storage)


async def _create_user(session: AsyncSession, email: str, password: str, role: UserRole, name: str) -> AuthUser:
    user_id = uuid.uuid4()
    user = AuthUser(id=user_id, email=email, password_hash=hash_password(password))
    session.add(user)
    await session.flush()
    session.add(Profile(id=user_id, email=email, name=name, role=role, active=True))
    await session.commit()
    return user


@pytest.fixture
async def operator_user(db_session) -> AuthUser:
    """Active operator with a known password"""
    return await _create_user(db_session, OPERATOR_EMAIL, OPERATOR_PASSWORD, UserRole.OPERATOR, "Ana Operator")


@pytest.fixture
async def viewer_user(db_session) -> AuthUser:
    return await _create_user(db_session, VIEWER_EMAIL, VIEWER_PASSWORD, UserRole.VIEWER, "Victor Viewer")


@pytest.fixture
async def station(db_session) -> WorkStation:
    """Cutting station with a known secret"""
    row = WorkStation(
        id=uuid.uuid4(),
        code=STATION_CODE,
        station_name="Cutting",
        location="Line 1 - Cutting table",
        station_secret_hash=hash_password(STATION_SECRET),
        permissions=["scan", "update_status"],
        active=True,
        order_sequence=1,
    )
    db_session.add(row)
    await db_session.commit()
    return row


@pytest.fixture
async def piece(db_session) -> Piece:
    """One pending piece on an order with client and glass type"""
    client = Client(id=uuid.uuid4(), name="Vidrios Norte")
    glass_type = GlassType(id=uuid.uuid4(), type_name="Clear float", color="clear", thickness=6)
    db_session.add_all([client, glass_type])
    await db_session.flush()
    order = Order(
        id=uuid.uuid4(),
        order_number="GLS-20250101-000123",
        client_id=client.id,
        glass_type_id=glass_type.id,
        priority="high",
        status="in_production",
    )
    db_session.add(order)
    await db_session.flush()
    row = Piece(
        id=uuid.uuid4(),
        order_number=order.order_number,
        piece_number=1,
        barcode=BARCODE,
        current_status="pending",
    )
    db_session.add(row)
    await db_session.commit()
    return row


# ── Terminal API ─────────────────────────────────────────────────────

def _settings(tmp_path, **overrides) -> Settings:
    return Settings(
        DATABASE_URL=TEST_DATABASE_URL,
        CLIENT_STATE_DIR=tmp_path / "terminal-state",
        **overrides,
    )


@pytest.fixture
def terminal_settings(tmp_path) -> Settings:
    return _settings(tmp_path, SCAN_MODE="manual")


@pytest.fixture
def terminal(engine, terminal_settings) -> Terminal:
    return build_terminal(terminal_settings, engine=engine)


@pytest.fixture
async def client(terminal) -> AsyncGenerator[AsyncClient, None]:
    """Test client bound to a started terminal"""
    from glasstrace.main import create_app

    app = create_app()
    app.state.terminal = terminal
    await terminal.start()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await terminal.stop()


@pytest.fixture
def service_settings(tmp_path) -> Settings:
    return _settings(
        tmp_path,
        SCAN_MODE="service",
        STATION_ID=STATION_CODE,
        STATION_SECRET=STATION_SECRET,
    )
