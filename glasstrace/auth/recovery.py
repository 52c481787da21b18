"""
Loop detection & emergency reset.

A session that sits in `loading` for longer than LOOP_THRESHOLD_SECONDS
is treated as an authentication loop: the client-side state is wiped,
the store session is signed out locally and the terminal is sent back
to the sign-in entry point.

The same reset is offered to the operator as a manual control once
loading/refreshing has lasted EMERGENCY_AFTER_SECONDS (a plain retry is
offered from RETRY_AFTER_SECONDS).
"""

import enum
import logging
from typing import Any, Callable, Protocol

from glasstrace.auth.timers import TimerLine
from glasstrace.core.clock import Scheduler
from glasstrace.core.storage import ClientStorage
from glasstrace.store.base import BackingStore, SignOutScope

logger = logging.getLogger(__name__)

LOOP_THRESHOLD_SECONDS = 10.0
RETRY_AFTER_SECONDS = 15.0
EMERGENCY_AFTER_SECONDS = 30.0


class Escalation(str, enum.Enum):
    NONE = "none"
    RETRY = "retry"
    EMERGENCY = "emergency"


def escalation_for(pending_for: float) -> Escalation:
    if pending_for >= EMERGENCY_AFTER_SECONDS:
        return Escalation.EMERGENCY
    if pending_for >= RETRY_AFTER_SECONDS:
        return Escalation.RETRY
    return Escalation.NONE


class Navigator(Protocol):
    def redirect(self, path: str) -> None: ...


class RecordingNavigator:
    """Keeps the last hard redirect so the terminal UI can follow it."""

    def __init__(self) -> None:
        self.location: str | None = None
        self.history: list[str] = []

    def redirect(self, path: str) -> None:
        logger.info("Redirecting to %s", path)
        self.location = path
        self.history.append(path)

    def consume(self) -> str | None:
        location, self.location = self.location, None
        return location


class EmergencyReset:
    def __init__(
        self,
        storage: ClientStorage,
        store: BackingStore,
        navigator: Navigator,
        sign_in_path: str = "/auth/login",
    ):
        self._storage = storage
        self._store = store
        self._navigator = navigator
        self.sign_in_path = sign_in_path

    async def run(self) -> None:
        logger.warning("Emergency auth reset: clearing client state")
        self._storage.clear_all()
        result = await self._store.sign_out(SignOutScope.LOCAL)
        if result.error is not None:
            logger.warning("Local sign-out during reset failed: %s", result.error.message)
        self._navigator.redirect(self.sign_in_path)


class LoopDetector:
    def __init__(
        self,
        scheduler: Scheduler,
        on_loop: Callable[[], Any],
        threshold: float = LOOP_THRESHOLD_SECONDS,
    ):
        self.threshold = threshold
        self._on_loop = on_loop
        self.timer = TimerLine(scheduler, "loop-detector")

    @property
    def running(self) -> bool:
        return self.timer.armed

    def start(self) -> None:
        # the clock starts on entry into loading, re-entry does not restart it
        if not self.timer.armed:
            self.timer.arm(self.threshold, self._on_loop)

    def stop(self) -> None:
        self.timer.cancel()
