"""
User session manager.

Owns one interactively-authenticated session for the lifetime of a
terminal process:

    loading → {authenticated, unauthenticated}
    authenticated ⇄ refreshing
    → signed_out | loop_detected

Two timer lines hang off a manager: the renewal line (expiry-driven
renewal and backoff retries) and the inactivity line (proactive renewal
after 30 idle minutes).  Every timer callback carries the generation it
was armed in; sign-in of a new subject and every sign-out bump the
generation, so a timer or an in-flight renewal from an earlier session
never applies its result to the current one.

Consumers read `snapshot` (or subscribe to it) and drive the manager
through `sign_in`, `sign_up`, `sign_out`, `refresh_session`,
`update_activity` and `track_event`.
"""

import asyncio
import logging
import uuid
from typing import Any, Callable

from glasstrace.auth.activity import ActivityTracker
from glasstrace.auth.backoff import Backoff
from glasstrace.auth.events import RecentFingerprints, fingerprint
from glasstrace.auth.recovery import LOOP_THRESHOLD_SECONDS, EmergencyReset, LoopDetector
from glasstrace.auth.state import LOADING_STATES, AuthSnapshot, AuthStatus
from glasstrace.auth.timers import TimerLine
from glasstrace.core.clock import AsyncioScheduler, Scheduler
from glasstrace.core.errors import ErrorKind, StoreError
from glasstrace.schemas import AuthUser, Profile, Session
from glasstrace.store.base import AuthEvent, BackingStore, SignOutScope, StoreResult

logger = logging.getLogger(__name__)

RENEWAL_LEAD_SECONDS = 5 * 60.0
MIN_RENEWAL_DELAY_SECONDS = 60.0
SHORT_RENEWAL_MARGIN_SECONDS = 10.0
SHORT_RENEWAL_FLOOR_SECONDS = 5.0
PROFILE_FETCH_RETRIES = 2

SnapshotListener = Callable[[AuthSnapshot], None]


class UserSessionManager:
    def __init__(
        self,
        store: BackingStore,
        reset: EmergencyReset,
        *,
        scheduler: Scheduler | None = None,
        backoff: Backoff | None = None,
        loop_threshold: float = LOOP_THRESHOLD_SECONDS,
        **activity_options: float,
    ):
        self._store = store
        self._reset = reset
        self._scheduler = scheduler or AsyncioScheduler()
        self._backoff = backoff or Backoff()

        self._status = AuthStatus.LOADING
        self._session: Session | None = None
        self._user: AuthUser | None = None
        self._profile: Profile | None = None
        self._refreshing = False
        self._renewal_seq = 0
        self._pending_since: float | None = self._scheduler.now()
        self._loop_detected = False
        self._generation = 0

        self._recent = RecentFingerprints()
        self._event_lock = asyncio.Lock()
        self._listeners: list[SnapshotListener] = []
        self._unsubscribe: Callable[[], None] | None = None

        self.renewal_timer = TimerLine(self._scheduler, "renewal")
        self.activity = ActivityTracker(self._scheduler, **activity_options)
        self.loop_detector = LoopDetector(self._scheduler, self._on_loop_detected, loop_threshold)

    # ── Read side ────────────────────────────────────────────────────

    @property
    def snapshot(self) -> AuthSnapshot:
        return AuthSnapshot(
            status=self._status,
            user=self._user,
            profile=self._profile,
            session=self._session,
            is_refreshing=self._refreshing,
            last_activity=self.activity.last_activity,
            pending_since=self._pending_since,
            loop_detected=self._loop_detected,
        )

    @property
    def status(self) -> AuthStatus:
        return self._status

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def retry_count(self) -> int:
        return self._backoff.attempt

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot
        for listener in list(self._listeners):
            listener(snapshot)

    # ── State helpers ────────────────────────────────────────────────

    def _set_status(self, status: AuthStatus) -> None:
        self._status = status
        pending = status in LOADING_STATES or self._refreshing
        if pending and self._pending_since is None:
            self._pending_since = self._scheduler.now()
        elif not pending:
            self._pending_since = None

        if status is AuthStatus.LOADING:
            self.loop_detector.start()
        elif status not in LOADING_STATES:
            self.loop_detector.stop()
        self._notify()

    def _begin_refresh(self) -> None:
        self._refreshing = True
        if self._status is AuthStatus.AUTHENTICATED:
            self._set_status(AuthStatus.REFRESHING)
        else:
            self._set_status(self._status)

    def _end_refresh(self) -> None:
        self._refreshing = False
        if self._status is AuthStatus.REFRESHING:
            self._set_status(AuthStatus.AUTHENTICATED)
        else:
            self._set_status(self._status)

    def _clear_local(self, status: AuthStatus) -> None:
        """Drop session, profile and both timer lines."""
        self._generation += 1
        self.renewal_timer.cancel()
        self.activity.stop()
        self._session = None
        self._user = None
        self._profile = None
        self._refreshing = False
        self._recent.clear()
        self._set_status(status)

    def _guarded(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Callable[[], Any]:
        generation = self._generation

        def fire() -> Any:
            if generation != self._generation:
                logger.debug("Dropping timer armed in stale generation %d", generation)
                return None
            return fn(*args, **kwargs)

        return fire

    # ── Initialization ───────────────────────────────────────────────

    async def initialize(self) -> AuthSnapshot:
        """Recover a persisted session from the store, if there is one."""
        if self._unsubscribe is None:
            self._unsubscribe = self._store.on_auth_state_change(self._handle_auth_event)

        generation = self._generation
        self._set_status(AuthStatus.LOADING)
        result = await self._store.get_session()

        if generation != self._generation or self._status is not AuthStatus.LOADING:
            # an auth event or a sign-out settled the state meanwhile
            return self.snapshot

        if result.error is not None:
            if result.error.is_invalid_refresh_token:
                logger.info("No valid refresh token found, starting without a session")
            else:
                logger.error("Error getting session: %s", result.error.message)
            self._clear_local(AuthStatus.UNAUTHENTICATED)
            return self.snapshot

        if result.data is None:
            self._clear_local(AuthStatus.UNAUTHENTICATED)
            return self.snapshot

        await self._establish(result.data)
        return self.snapshot

    async def _establish(self, session: Session) -> None:
        generation = self._generation
        self._session = session
        self._user = session.user
        self._schedule_renewal(session)

        profile = await self._fetch_profile(session.user.id)
        if generation != self._generation:
            return

        self._profile = profile
        if profile is None:
            logger.warning("Session for %s has no profile, treating it as incomplete", session.user.id)
            self._set_status(AuthStatus.UNAUTHENTICATED)
        else:
            self._set_status(AuthStatus.AUTHENTICATED)

    async def _fetch_profile(self, subject_id: uuid.UUID) -> Profile | None:
        for attempt in range(PROFILE_FETCH_RETRIES + 1):
            result = await self._store.fetch_profile(subject_id)
            if result.error is None:
                return result.data

            logger.error("Error fetching profile: %s", result.error.message)
            if result.error.kind is not ErrorKind.INVALID_JWT or attempt == PROFILE_FETCH_RETRIES:
                return None

            logger.info("Session issue detected, renewing before retrying profile fetch")
            renewed = await self.refresh_session(force=True)
            if renewed.data is None:
                return None
        return None

    # ── Renewal ──────────────────────────────────────────────────────

    def _schedule_renewal(self, session: Session) -> None:
        now = self._scheduler.now()
        expires_at = session.expires_at.timestamp()
        until_deadline = expires_at - RENEWAL_LEAD_SECONDS - now

        if until_deadline > MIN_RENEWAL_DELAY_SECONDS:
            delay = until_deadline
        elif expires_at > now:
            delay = max(expires_at - now - SHORT_RENEWAL_MARGIN_SECONDS, SHORT_RENEWAL_FLOOR_SECONDS)
        else:
            self.renewal_timer.cancel()
            logger.info("Session already expired, waiting for the next renewal attempt")
            return

        logger.debug("Session will be renewed in %.0f minutes", delay / 60)
        self.renewal_timer.arm(delay, self._guarded(self.refresh_session))

    async def refresh_session(self, force: bool = False) -> StoreResult[Session]:
        """
        Renew the session.  A second call while one is in flight is a
        no-op unless forced.
        """
        if self._refreshing and not force:
            logger.debug("Session refresh already in progress")
            return StoreResult()

        generation = self._generation
        self._renewal_seq += 1
        ticket = self._renewal_seq
        logger.info("Refreshing session (retry count %d)", self._backoff.attempt)
        self._begin_refresh()
        result = await self._store.refresh_session(force)

        if generation != self._generation:
            logger.info("Session changed while renewal was in flight, discarding its result")
            if ticket == self._renewal_seq and self._refreshing:
                self._end_refresh()
            return result

        if result.error is None and result.data is not None:
            self._backoff.reset()
            self._session = result.data
            self._user = result.data.user
            self._schedule_renewal(result.data)
            self._end_refresh()
            logger.info("Session refreshed successfully")
            return result

        error = result.error or StoreError("Renewal returned no session")
        if error.is_invalid_refresh_token:
            logger.info("Refresh token not found, user needs to sign in again")
            self._backoff.reset()
            self._clear_local(AuthStatus.UNAUTHENTICATED)
            return StoreResult(error=error)

        delay = self._backoff.record_failure()
        self._end_refresh()
        if delay is not None:
            logger.warning("Session refresh failed (%s), retrying in %.0fs", error.message, delay)
            self.renewal_timer.arm(delay, self._guarded(self.refresh_session, force=True))
        else:
            logger.error("Max refresh retries reached, signing out")
            self._backoff.reset()
            await self.sign_out()
        return StoreResult(error=error)

    # ── Activity ─────────────────────────────────────────────────────

    def update_activity(self) -> None:
        self.activity.touch(self._guarded(self._renew_after_idle))
        self._notify()

    def track_event(self, event: str) -> bool:
        updated = self.activity.track(event, self._guarded(self._renew_after_idle))
        if updated:
            self._notify()
        return updated

    def _renew_after_idle(self) -> Any:
        if self._session is None:
            return None
        logger.info("Extended inactivity detected, renewing session")
        return self.refresh_session()

    # ── Auth events ──────────────────────────────────────────────────

    async def _handle_auth_event(self, event: AuthEvent, session: Session | None) -> None:
        async with self._event_lock:
            await self._reconcile(event, session)

    async def _reconcile(self, event: AuthEvent, session: Session | None) -> None:
        if self._recent.seen(fingerprint(event, session)):
            logger.debug("Ignoring duplicate auth event %s", event.value)
            return

        logger.info("Auth state changed: %s %s", event.value, session.user.id if session else None)

        if event is AuthEvent.SIGNED_OUT or session is None:
            already_clear = self._session is None and self._status in (
                AuthStatus.SIGNED_OUT, AuthStatus.UNAUTHENTICATED, AuthStatus.LOOP_DETECTED,
            )
            if not already_clear:
                self._clear_local(AuthStatus.UNAUTHENTICATED)
            return

        same_subject = self._user is not None and self._user.id == session.user.id
        if not same_subject:
            self._generation += 1
        self.update_activity()

        if (
            same_subject
            and self._profile is not None
            and event in (AuthEvent.SIGNED_IN, AuthEvent.TOKEN_REFRESHED)
        ):
            self._session = session
            self._user = session.user
            self._schedule_renewal(session)
            self._notify()
            return

        self._set_status(AuthStatus.LOADING)
        await self._establish(session)

    # ── Loop detection ───────────────────────────────────────────────

    async def _on_loop_detected(self) -> None:
        if self._status is not AuthStatus.LOADING:
            return
        logger.error(
            "Authentication loop detected: still loading after %.0fs",
            self.loop_detector.threshold,
        )
        self._loop_detected = True
        self._clear_local(AuthStatus.LOOP_DETECTED)
        await self._reset.run()

    # ── Commands ─────────────────────────────────────────────────────

    async def sign_in(self, identity: str, secret: str) -> StoreResult[Session]:
        """Password sign-in; the profile arrives through the SIGNED_IN event."""
        result = await self._store.sign_in_with_password(identity, secret)
        if result.error is None:
            self.update_activity()
            logger.info("Signed in %s", identity)
        else:
            logger.warning("Sign-in failed for %s: %s", identity, result.error.message)
        return result

    async def sign_up(self, identity: str, secret: str, display_name: str) -> StoreResult[Session]:
        return await self._store.sign_up(identity, secret, display_name)

    async def sign_out(self, scope: SignOutScope = SignOutScope.GLOBAL) -> StoreResult[None]:
        """Sign out; wins over any renewal still in flight."""
        self._generation += 1
        self.renewal_timer.cancel()
        self.activity.stop()
        self.loop_detector.stop()

        result = await self._store.sign_out(scope)
        if result.error is not None:
            logger.error("Sign-out failed: %s", result.error.message)
            if self._status in LOADING_STATES:
                self._set_status(AuthStatus.UNAUTHENTICATED)
            elif self._session is not None:
                # still signed in; timers were cancelled above
                self._schedule_renewal(self._session)
            return result

        self._session = None
        self._user = None
        self._profile = None
        self._refreshing = False
        self._backoff.reset()
        self._recent.clear()
        self.activity.last_activity = self._scheduler.now()
        self._set_status(AuthStatus.SIGNED_OUT)
        logger.info("Signed out")
        return result

    async def emergency_reset(self) -> None:
        """Operator-triggered wipe of all client-side auth state."""
        self._clear_local(AuthStatus.SIGNED_OUT)
        await self._reset.run()

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.renewal_timer.cancel()
        self.activity.stop()
        self.loop_detector.stop()
