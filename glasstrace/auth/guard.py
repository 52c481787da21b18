"""
Route guard.

Derives what a protected screen should do purely from an
`AuthSnapshot` and an optional required role:

- still resolving → loading, escalating to retry / emergency reset
  the longer it lasts
- no user, or no active profile → back to sign-in
- role rank below the required one → the default authorized page
- otherwise render
"""

import enum
from dataclasses import dataclass

from glasstrace.auth.recovery import Escalation, escalation_for
from glasstrace.auth.state import AuthSnapshot
from glasstrace.models.profile import UserRole


class GuardOutcome(str, enum.Enum):
    RENDER = "render"
    REDIRECT_SIGN_IN = "redirect_sign_in"
    REDIRECT_DEFAULT = "redirect_default"
    LOADING = "loading"
    RETRY = "retry"
    EMERGENCY = "emergency"


PENDING_OUTCOMES = frozenset({GuardOutcome.LOADING, GuardOutcome.RETRY, GuardOutcome.EMERGENCY})

_ESCALATED = {
    Escalation.RETRY: GuardOutcome.RETRY,
    Escalation.EMERGENCY: GuardOutcome.EMERGENCY,
}


@dataclass(frozen=True)
class GuardDecision:
    outcome: GuardOutcome
    redirect_to: str | None = None

    @property
    def allowed(self) -> bool:
        return self.outcome is GuardOutcome.RENDER

    @property
    def pending(self) -> bool:
        return self.outcome in PENDING_OUTCOMES


def resolve_guard(
    snapshot: AuthSnapshot,
    required_role: UserRole | str | None = None,
    *,
    now: float | None = None,
    sign_in_path: str = "/auth/login",
    default_path: str = "/dashboard",
) -> GuardDecision:
    escalation = Escalation.NONE
    if snapshot.pending_since is not None and now is not None:
        escalation = escalation_for(now - snapshot.pending_since)

    if snapshot.loading:
        return GuardDecision(_ESCALATED.get(escalation, GuardOutcome.LOADING))
    # a background renewal keeps the screen unless it drags on
    if snapshot.is_refreshing and escalation is not Escalation.NONE:
        return GuardDecision(_ESCALATED[escalation])

    if snapshot.user is None:
        return GuardDecision(GuardOutcome.REDIRECT_SIGN_IN, sign_in_path)

    profile = snapshot.profile
    if profile is None or not profile.active:
        return GuardDecision(GuardOutcome.REDIRECT_SIGN_IN, sign_in_path)

    if required_role is not None:
        if profile.role.rank < UserRole(required_role).rank:
            return GuardDecision(GuardOutcome.REDIRECT_DEFAULT, default_path)

    return GuardDecision(GuardOutcome.RENDER)
