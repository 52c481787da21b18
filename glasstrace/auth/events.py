"""
Auth-event de-duplication.

Store-pushed events are fingerprinted by (kind, subject, expiry); the
last few fingerprints are remembered so an exact repeat is dropped.
The window is bounded so a terminal left running for weeks does not
grow it without limit.
"""

from collections import deque
from datetime import datetime
from typing import NamedTuple

from glasstrace.schemas import Session
from glasstrace.store.base import AuthEvent

RECENT_EVENT_CAPACITY = 10


class Fingerprint(NamedTuple):
    kind: str
    subject: str | None
    expires_at: datetime | None


def fingerprint(event: AuthEvent, session: Session | None) -> Fingerprint:
    if session is None:
        return Fingerprint(event.value, None, None)
    return Fingerprint(event.value, str(session.user.id), session.expires_at)


class RecentFingerprints:
    def __init__(self, capacity: int = RECENT_EVENT_CAPACITY):
        self._ring: deque[Fingerprint] = deque(maxlen=capacity)

    def __len__(self) -> int:
        return len(self._ring)

    def __contains__(self, fp: Fingerprint) -> bool:
        return fp in self._ring

    def seen(self, fp: Fingerprint) -> bool:
        """Record `fp`; return True if it was already in the window."""
        if fp in self._ring:
            return True
        self._ring.append(fp)
        return False

    def clear(self) -> None:
        self._ring.clear()
