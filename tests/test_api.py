"""
API Tests for the terminal routes
Tests for: auth state projection, login/logout, sign-up, role guard,
scanner endpoints in manual and service mode
"""
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from glasstrace.models import ProcessingHistory
from glasstrace.terminal import build_terminal
from tests.conftest import (
    BARCODE,
    OPERATOR_EMAIL,
    OPERATOR_PASSWORD,
    STATION_CODE,
    VIEWER_EMAIL,
    VIEWER_PASSWORD,
)


async def _login(client: AsyncClient, email: str, password: str):
    return await client.post("/api/auth/login", json={"email": email, "password": password})


@pytest.fixture
async def service_client(engine, service_settings, station, piece) -> AsyncGenerator[AsyncClient, None]:
    """Terminal in service mode; station and piece exist before start"""
    from glasstrace.main import create_app

    terminal = build_terminal(service_settings, engine=engine)
    app = create_app()
    app.state.terminal = terminal
    await terminal.start()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await terminal.stop()


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestAuthState:
    """Session projection and transitions over HTTP"""

    @pytest.mark.asyncio
    async def test_initially_unauthenticated(self, client):
        response = await client.get("/api/auth/state")

        body = response.json()
        assert body["status"] == "unauthenticated"
        assert body["user"] is None
        assert body["guard"] == "redirect_sign_in"
        assert body["redirect_to"] == "/auth/login"

    @pytest.mark.asyncio
    async def test_login(self, client, operator_user):
        response = await _login(client, OPERATOR_EMAIL, OPERATOR_PASSWORD)

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "authenticated"
        assert body["profile"]["role"] == "operator"
        assert body["guard"] == "render"
        assert body["redirect_to"] is None

    @pytest.mark.asyncio
    async def test_login_wrong_password(self, client, operator_user):
        response = await _login(client, OPERATOR_EMAIL, "wrong-password")

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid login credentials"

    @pytest.mark.asyncio
    async def test_logout(self, client, operator_user):
        await _login(client, OPERATOR_EMAIL, OPERATOR_PASSWORD)

        response = await client.post("/api/auth/logout", params={"scope": "local"})
        state = (await client.get("/api/auth/state")).json()

        assert response.status_code == 200
        assert response.json()["detail"] == "Logged out successfully"
        assert state["status"] == "signed_out"
        assert state["user"] is None

    @pytest.mark.asyncio
    async def test_signup_then_duplicate(self, client):
        payload = {"email": "new@example.com", "password": "password123", "name": "New Person"}

        created = await client.post("/api/auth/signup", json=payload)
        duplicate = await client.post("/api/auth/signup", json=payload)

        assert created.status_code == 201
        assert created.json()["profile"]["role"] == "viewer"
        assert duplicate.status_code == 409

    @pytest.mark.asyncio
    async def test_signup_short_password(self, client):
        response = await client.post(
            "/api/auth/signup",
            json={"email": "x@example.com", "password": "short", "name": "X"},
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_refresh(self, client, operator_user):
        await _login(client, OPERATOR_EMAIL, OPERATOR_PASSWORD)

        response = await client.post("/api/auth/refresh")

        assert response.status_code == 200
        assert response.json()["status"] == "authenticated"

    @pytest.mark.asyncio
    async def test_refresh_without_session(self, client):
        response = await client.post("/api/auth/refresh")

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_activity(self, client, operator_user):
        await _login(client, OPERATOR_EMAIL, OPERATOR_PASSWORD)
        before = (await client.get("/api/auth/state")).json()["last_activity"]

        response = await client.post("/api/auth/activity", json={"event": "keypress"})

        assert response.status_code == 200
        assert response.json()["last_activity"] >= before

    @pytest.mark.asyncio
    async def test_emergency_reset(self, client, operator_user):
        await _login(client, OPERATOR_EMAIL, OPERATOR_PASSWORD)

        response = await client.post("/api/auth/emergency-reset")
        state = (await client.get("/api/auth/state")).json()

        assert response.status_code == 200
        assert state["user"] is None
        assert state["redirect_to"] == "/auth/login"


class TestManualScanner:
    """Manual mode: the signed-in operator is the actor"""

    @pytest.mark.asyncio
    async def test_statuses_are_public(self, client):
        response = await client.get("/api/scanner/statuses")

        values = [s["value"] for s in response.json()]
        assert values[0] == "pending"
        assert "quality_check" in values

    @pytest.mark.asyncio
    async def test_requires_sign_in(self, client, piece):
        response = await client.get(f"/api/scanner/pieces/{BARCODE}")

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_viewer_is_forbidden(self, client, viewer_user, piece):
        await _login(client, VIEWER_EMAIL, VIEWER_PASSWORD)

        response = await client.get(f"/api/scanner/pieces/{BARCODE}")

        assert response.status_code == 403
        assert response.json()["detail"] == "Insufficient permissions"

    @pytest.mark.asyncio
    async def test_operator_reads_piece(self, client, operator_user, piece):
        await _login(client, OPERATOR_EMAIL, OPERATOR_PASSWORD)

        response = await client.get(f"/api/scanner/pieces/{BARCODE}")

        assert response.status_code == 200
        assert response.json()["order"]["client"]["name"] == "Vidrios Norte"

    @pytest.mark.asyncio
    async def test_operator_updates_status(self, client, operator_user, piece, session_factory):
        await _login(client, OPERATOR_EMAIL, OPERATOR_PASSWORD)

        response = await client.post(
            f"/api/scanner/pieces/{BARCODE}/status", json={"status": "cutting"},
        )

        assert response.status_code == 200
        assert response.json()["current_status"] == "cutting"
        async with session_factory() as s:
            entry = (await s.execute(select(ProcessingHistory))).scalar_one()
        assert entry.employee == "Ana Operator"
        assert entry.station_id is None
        assert entry.observations == "Updated to cutting via scanner"

    @pytest.mark.asyncio
    async def test_invalid_status(self, client, operator_user, piece):
        await _login(client, OPERATOR_EMAIL, OPERATOR_PASSWORD)

        response = await client.post(
            f"/api/scanner/pieces/{BARCODE}/status", json={"status": "shipped"},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_barcode(self, client, operator_user, piece):
        await _login(client, OPERATOR_EMAIL, OPERATOR_PASSWORD)

        response = await client.post(
            "/api/scanner/pieces/GLS-NOPE/status", json={"status": "cutting"},
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_work_stations(self, client, operator_user, station):
        await _login(client, OPERATOR_EMAIL, OPERATOR_PASSWORD)

        response = await client.get("/api/scanner/stations")

        assert [s["code"] for s in response.json()] == [STATION_CODE]

    @pytest.mark.asyncio
    async def test_station_state_in_manual_mode(self, client):
        response = await client.get("/api/scanner/station")

        assert response.json() == {
            "mode": "manual",
            "is_authenticated": False,
            "loading": False,
            "error": None,
            "session": None,
        }


class TestServiceScanner:
    """Service mode: the station identity is the actor, no user sign-in"""

    @pytest.mark.asyncio
    async def test_station_authenticated_on_start(self, service_client):
        response = await service_client.get("/api/scanner/station")

        body = response.json()
        assert body["mode"] == "service"
        assert body["is_authenticated"] is True
        assert body["session"]["station_id"] == STATION_CODE

    @pytest.mark.asyncio
    async def test_update_without_user(self, service_client, session_factory):
        response = await service_client.post(
            f"/api/scanner/pieces/{BARCODE}/status",
            json={"status": "tempering", "notes": "batch 7"},
        )

        assert response.status_code == 200
        async with session_factory() as s:
            entry = (await s.execute(select(ProcessingHistory))).scalar_one()
        assert entry.employee == "Scanner: Cutting"
        assert entry.station_id == STATION_CODE
        assert entry.observations == "batch 7"
