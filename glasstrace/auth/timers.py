"""
Timer lines.

A line holds at most one armed timer: arming always cancels whatever
was pending on the same line.
"""

import logging
from typing import Any, Callable

from glasstrace.core.clock import Scheduler, TimerHandle

logger = logging.getLogger(__name__)


class TimerLine:
    def __init__(self, scheduler: Scheduler, name: str):
        self._scheduler = scheduler
        self.name = name
        self._handle: TimerHandle | None = None
        self._token: object | None = None
        self.due_at: float | None = None

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def arm(self, delay: float, callback: Callable[[], Any]) -> None:
        self.cancel()
        token = object()

        def fire() -> Any:
            if self._token is not token:
                return None
            self._handle = None
            self._token = None
            self.due_at = None
            return callback()

        self._token = token
        self.due_at = self._scheduler.now() + delay
        self._handle = self._scheduler.call_later(delay, fire)
        logger.debug("%s timer armed for %.1fs", self.name, delay)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._token = None
        self.due_at = None
