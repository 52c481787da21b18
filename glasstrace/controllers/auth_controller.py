"""
Auth controller: sign-in, sign-up, sign-out, renewal, activity and
the session state projection of the terminal.

All routes are PUBLIC: they operate on the terminal's own session.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from glasstrace.auth.guard import resolve_guard
from glasstrace.core.errors import ErrorKind
from glasstrace.rbac.dependencies import get_terminal
from glasstrace.schemas import (
    ActivityRequest,
    AuthStateOut,
    LoginRequest,
    MessageResponse,
    SignUpRequest,
)
from glasstrace.store.base import SignOutScope
from glasstrace.terminal import Terminal

router = APIRouter(prefix="/api/auth", tags=["Auth"])


def _state(terminal: Terminal) -> AuthStateOut:
    snapshot = terminal.session_manager.snapshot
    decision = resolve_guard(
        snapshot,
        now=terminal.scheduler.now(),
        sign_in_path=terminal.config.SIGN_IN_PATH,
        default_path=terminal.config.DEFAULT_PATH,
    )
    return AuthStateOut(
        status=snapshot.status.value,
        user=snapshot.user,
        profile=snapshot.profile,
        loading=snapshot.loading,
        is_refreshing=snapshot.is_refreshing,
        last_activity=snapshot.last_activity,
        loop_detected=snapshot.loop_detected,
        guard=decision.outcome.value,
        redirect_to=terminal.navigator.location or decision.redirect_to,
    )


@router.get("/state", response_model=AuthStateOut)
async def state(terminal: Terminal = Depends(get_terminal)):
    """Current session projection, including the guard outcome."""
    return _state(terminal)


@router.post("/login", response_model=AuthStateOut)
async def login(body: LoginRequest, terminal: Terminal = Depends(get_terminal)):
    result = await terminal.session_manager.sign_in(body.email, body.password)
    if result.error is not None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=result.error.message)
    await terminal.settle()
    terminal.navigator.consume()
    return _state(terminal)


@router.post("/signup", response_model=AuthStateOut, status_code=status.HTTP_201_CREATED)
async def signup(body: SignUpRequest, terminal: Terminal = Depends(get_terminal)):
    result = await terminal.session_manager.sign_up(body.email, body.password, body.name)
    if result.error is not None:
        code = (
            status.HTTP_409_CONFLICT
            if result.error.kind is ErrorKind.CONSTRAINT
            else status.HTTP_400_BAD_REQUEST
        )
        raise HTTPException(status_code=code, detail=result.error.message)
    await terminal.settle()
    return _state(terminal)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    scope: SignOutScope = SignOutScope.GLOBAL,
    terminal: Terminal = Depends(get_terminal),
):
    result = await terminal.session_manager.sign_out(scope)
    if result.error is not None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result.error.message)
    await terminal.settle()
    return MessageResponse(detail="Logged out successfully")


@router.post("/refresh", response_model=AuthStateOut)
async def refresh(terminal: Terminal = Depends(get_terminal)):
    """Renew the session now instead of waiting for the timer."""
    result = await terminal.session_manager.refresh_session()
    if result.error is not None:
        code = (
            status.HTTP_401_UNAUTHORIZED
            if result.error.is_invalid_refresh_token
            else status.HTTP_503_SERVICE_UNAVAILABLE
        )
        raise HTTPException(status_code=code, detail=result.error.message)
    await terminal.settle()
    return _state(terminal)


@router.post("/activity", response_model=AuthStateOut)
async def activity(body: ActivityRequest, terminal: Terminal = Depends(get_terminal)):
    terminal.session_manager.track_event(body.event)
    return _state(terminal)


@router.post("/emergency-reset", response_model=MessageResponse)
async def emergency_reset(terminal: Terminal = Depends(get_terminal)):
    """Wipe local auth state and send the terminal back to sign-in."""
    await terminal.session_manager.emergency_reset()
    await terminal.settle()
    return MessageResponse(detail=f"Auth state cleared, continue at {terminal.config.SIGN_IN_PATH}")
