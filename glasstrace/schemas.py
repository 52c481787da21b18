"""
Pydantic schemas for values that cross the store boundary and for the
terminal's request / response bodies.

Store-facing models are frozen: a renewal replaces the Session, it
never mutates it.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from glasstrace.core.clock import ensure_utc
from glasstrace.models.profile import UserRole


class _UTCModel(BaseModel):
    """Normalises every datetime field to timezone-aware UTC."""

    @field_validator("*", mode="after")
    @classmethod
    def _utc(cls, value):
        if isinstance(value, datetime):
            return ensure_utc(value)
        return value


# ── Auth ─────────────────────────────────────────────────────────────
class AuthUser(BaseModel):
    id: uuid.UUID
    email: str

    model_config = {"frozen": True, "from_attributes": True}


class Session(_UTCModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: AuthUser

    model_config = {"frozen": True}


class Profile(_UTCModel):
    id: uuid.UUID
    email: str
    name: str
    role: UserRole
    active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"frozen": True, "from_attributes": True}


# ── Stations ─────────────────────────────────────────────────────────
class StationVerification(BaseModel):
    """Payload of the store-side station credential check."""

    success: bool
    station_name: str | None = None
    location: str | None = None
    permissions: list[str] = []
    error: str | None = None


class ServiceSessionOut(_UTCModel):
    id: uuid.UUID
    station_id: str
    station_name: str
    location: str
    permissions: list[str]
    created_at: datetime
    expires_at: datetime
    last_activity: datetime
    active: bool

    model_config = {"frozen": True, "from_attributes": True}


class WorkStationOut(BaseModel):
    id: uuid.UUID
    code: str
    station_name: str
    location: str | None = None
    permissions: list[str] = []
    active: bool
    order_sequence: int

    model_config = {"from_attributes": True}


# ── Pieces ───────────────────────────────────────────────────────────
class ClientOut(BaseModel):
    id: uuid.UUID
    name: str

    model_config = {"from_attributes": True}


class GlassTypeOut(BaseModel):
    id: uuid.UUID
    type_name: str
    color: str | None = None
    thickness: Decimal | None = None

    model_config = {"from_attributes": True}


class OrderOut(BaseModel):
    id: uuid.UUID
    order_number: str
    priority: str
    status: str
    client: ClientOut
    glass_type: GlassTypeOut

    model_config = {"from_attributes": True}


class PieceOut(_UTCModel):
    id: uuid.UUID
    barcode: str
    order_number: str
    piece_number: int
    current_status: str
    location: str | None = None
    label: str | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class PieceDetail(PieceOut):
    order: OrderOut


class StatusOption(BaseModel):
    value: str
    label: str
    color: str


# ── Terminal API ─────────────────────────────────────────────────────
class LoginRequest(BaseModel):
    email: str
    password: str


class SignUpRequest(BaseModel):
    email: str
    password: str = Field(min_length=8)
    name: str


class ActivityRequest(BaseModel):
    event: str = "click"


class StatusUpdateRequest(BaseModel):
    status: str
    notes: str | None = None


class AuthStateOut(BaseModel):
    status: str
    user: AuthUser | None = None
    profile: Profile | None = None
    loading: bool
    is_refreshing: bool
    last_activity: float
    loop_detected: bool
    guard: str
    redirect_to: str | None = None


class StationStateOut(BaseModel):
    mode: str
    is_authenticated: bool
    loading: bool
    error: str | None = None
    session: ServiceSessionOut | None = None


# ── Generic ──────────────────────────────────────────────────────────
class MessageResponse(BaseModel):
    detail: str
