"""
Guard dependencies for the terminal routes.

`require_role` is a *dependency factory*: call it with the minimum role
and it returns a FastAPI dependency that resolves the route guard
against the current session snapshot and:

- 503 with Retry-After while the session is still loading / renewing,
- 401 when nobody (or nobody with an active profile) is signed in,
- 403 when the profile's role ranks below the required one,
- otherwise returns the snapshot.

Usage in a route:
    @router.get("/me")
    async def me(snapshot: AuthSnapshot = Depends(require_role(UserRole.OPERATOR))): ...
"""

import logging

from fastapi import Depends, HTTPException, Request, status

from glasstrace.auth.guard import GuardOutcome, resolve_guard
from glasstrace.auth.state import AuthSnapshot
from glasstrace.models.profile import UserRole
from glasstrace.station.scanning import PieceStatusUpdater, ScanMode
from glasstrace.terminal import Terminal

logger = logging.getLogger("rbac")

RETRY_AFTER_SECONDS = "1"


def get_terminal(request: Request) -> Terminal:
    return request.app.state.terminal


class require_role:
    """
    Dependency factory.

    Can be used as:
        Depends(require_role())                  # any active profile
        Depends(require_role(UserRole.ADMIN))
    """

    def __init__(self, role: UserRole | None = None):
        self.role = role

    def check(self, terminal: Terminal) -> AuthSnapshot:
        snapshot = terminal.session_manager.snapshot
        decision = resolve_guard(
            snapshot,
            self.role,
            now=terminal.scheduler.now(),
            sign_in_path=terminal.config.SIGN_IN_PATH,
            default_path=terminal.config.DEFAULT_PATH,
        )
        if decision.allowed:
            return snapshot

        if decision.pending:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Session not ready ({decision.outcome.value})",
                headers={"Retry-After": RETRY_AFTER_SECONDS},
            )
        if decision.outcome is GuardOutcome.REDIRECT_SIGN_IN:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Sign-in required",
            )

        logger.warning(
            "Role check failed for %s: required %s",
            snapshot.user.id if snapshot.user else None,
            self.role.value if self.role else None,
        )
        # do not reveal which role would have been enough
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions",
        )

    async def __call__(self, terminal: Terminal = Depends(get_terminal)) -> AuthSnapshot:
        return self.check(terminal)


_operator = require_role(UserRole.OPERATOR)


async def get_scanner(terminal: Terminal = Depends(get_terminal)) -> PieceStatusUpdater:
    """The configured scanner; manual mode additionally needs an operator."""
    if terminal.mode is ScanMode.MANUAL:
        _operator.check(terminal)
    return terminal.scanner
