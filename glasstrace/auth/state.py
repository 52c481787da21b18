"""
Read-only projection of the user session.

Consumers receive `AuthSnapshot` values; they never get a handle on
the manager's mutable state.
"""

import enum
from dataclasses import dataclass

from glasstrace.schemas import AuthUser, Profile, Session


class AuthStatus(str, enum.Enum):
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"
    REFRESHING = "refreshing"
    SIGNED_OUT = "signed_out"
    LOOP_DETECTED = "loop_detected"


LOADING_STATES = frozenset({AuthStatus.LOADING})


@dataclass(frozen=True)
class AuthSnapshot:
    status: AuthStatus
    user: AuthUser | None
    profile: Profile | None
    session: Session | None
    is_refreshing: bool
    last_activity: float
    # set while loading/refreshing, cleared the moment that state is left
    pending_since: float | None = None
    loop_detected: bool = False

    @property
    def loading(self) -> bool:
        return self.status in LOADING_STATES
