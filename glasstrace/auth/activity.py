"""
Activity tracking.

Interaction events move the "last activity" timestamp at most once per
throttle window; authentication transitions move it unconditionally.
Each move re-arms the inactivity timer with the callback the caller
hands in, which the session manager uses for a proactive renewal.
"""

import logging
from typing import Any, Callable

from glasstrace.auth.timers import TimerLine
from glasstrace.core.clock import Scheduler

logger = logging.getLogger(__name__)

TRACKED_EVENTS = frozenset({
    "mousedown",
    "mousemove",
    "keypress",
    "scroll",
    "touchstart",
    "click",
})
ACTIVITY_THROTTLE_SECONDS = 60.0
INACTIVITY_TIMEOUT_SECONDS = 30 * 60.0


class ActivityTracker:
    def __init__(
        self,
        scheduler: Scheduler,
        *,
        throttle: float = ACTIVITY_THROTTLE_SECONDS,
        inactivity_timeout: float = INACTIVITY_TIMEOUT_SECONDS,
    ):
        self._scheduler = scheduler
        self.throttle = throttle
        self.inactivity_timeout = inactivity_timeout
        self.timer = TimerLine(scheduler, "inactivity")
        self.last_activity: float = scheduler.now()
        self._last_tracked: float | None = None

    def track(self, event: str, on_inactive: Callable[[], Any]) -> bool:
        """Record an interaction event; False when ignored or throttled."""
        if event not in TRACKED_EVENTS:
            return False
        now = self._scheduler.now()
        if self._last_tracked is not None and now - self._last_tracked < self.throttle:
            return False
        self._last_tracked = now
        self.touch(on_inactive)
        return True

    def touch(self, on_inactive: Callable[[], Any]) -> None:
        self.last_activity = self._scheduler.now()
        self.timer.arm(self.inactivity_timeout, on_inactive)

    def stop(self) -> None:
        self.timer.cancel()
