"""Session lifecycle management.

Provides ``SessionManager``, the single entry point the host's command,
event and display adapters call.  It starts and ends sessions, enforces the
cooldown window, sweeps expired sessions on a timer, hands deferred restores
back on reconnect, and persists everything at shutdown.

The manager never touches live user state.  Operations that change a
user's holdings or mode return ``Effect`` lists for the host to apply; the
reconciliation sweep pushes its effects through an ``EffectSink``.

Classes
-------
- SessionOutcome   — result categories of lifecycle operations
- SessionResult    — outcome plus session and effects
- ReconcileReport  — what one sweep did
- LoadReport       — what a startup restore did
- SessionManager   — lifecycle facade over a ``SessionStore``
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Collection
from dataclasses import dataclass, field
from enum import Enum

from buildmode.config import Settings, SettingsError
from buildmode.host import Clock, EffectSink, PresenceCheck, never_connected, system_clock
from buildmode.policy.actions import ActionGuard, ActionRequest, Verdict
from buildmode.policy.engine import PolicyEngine
from buildmode.session.effects import (
    Effect,
    NoticeKind,
    Notify,
    SetMode,
    elevation_effects,
    restore_effects,
)
from buildmode.session.reconciler import ReconciliationLoop
from buildmode.session.repository import PersistenceIOError, SnapshotRepository
from buildmode.session.serializer import SnapshotDocument
from buildmode.session.state import (
    Duration,
    Holdings,
    OperatingMode,
    PendingRestore,
    Session,
    TimedDuration,
    UnlimitedDuration,
)
from buildmode.session.store import SessionStore

logger = logging.getLogger(__name__)

# Reported by ``remaining_seconds`` for sessions without an end.
UNLIMITED_SECONDS = -1


class SessionOutcome(str, Enum):
    OK = "ok"
    ALREADY_ACTIVE = "already_active"
    ON_COOLDOWN = "on_cooldown"
    NOT_ACTIVE = "not_active"
    INVALID_DURATION = "invalid_duration"


@dataclass(frozen=True)
class SessionResult:
    """Outcome of ``start``, ``end`` or ``extend``.

    Parameters
    ----------
    outcome:
        What happened.  Only ``OK`` changed any state.
    session:
        The session that was created, ended or extended; for
        ``ALREADY_ACTIVE`` the existing, untouched session.
    effects:
        Ordered effects the caller must apply to the live user.
    cooldown_remaining_seconds:
        Seconds until a new session may start (``ON_COOLDOWN`` only).
    """

    outcome: SessionOutcome
    session: Session | None = None
    effects: tuple[Effect, ...] = ()
    cooldown_remaining_seconds: int = 0

    @property
    def ok(self) -> bool:
        return self.outcome is SessionOutcome.OK


@dataclass
class ReconcileReport:
    """Users handled by one reconciliation sweep.

    ``ended`` were restored live, ``deferred`` were queued for reconnect,
    ``failed`` maps user id to the error that stopped their expiry.
    """

    ended: list[str] = field(default_factory=list)
    deferred: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def expired_count(self) -> int:
        return len(self.ended) + len(self.deferred)


@dataclass
class LoadReport:
    """Result of ``SessionManager.restore_from_storage``."""

    restored: list[str] = field(default_factory=list)
    discarded: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    cooldowns: int = 0
    pending: int = 0
    failed: bool = False


class SessionManager:
    """Start, end, query, expire, persist and reload build sessions.

    All mutating operations run under one re-entrant lock, so a command, a
    reconnect and a reconciliation tick never interleave on the same user.

    Parameters
    ----------
    settings:
        Durations, modes, tool item and policy lists.  Defaults to
        ``Settings()``.
    store:
        Session and cooldown maps.  A fresh one is created if omitted.
    repository:
        Where ``persist`` and ``restore_from_storage`` read and write.
        Persistence is disabled when omitted.
    clock:
        Epoch-millisecond time source.
    presence:
        Tells the reconciliation sweep whether a user is connected.
    sink:
        Receives effects for users the sweep expires while connected.
        Without a sink every expiry is deferred to reconnect.
    settings_loader:
        Called by ``reload()`` to re-read settings from their source.
    catalog:
        Known item types; policy entries outside it are rejected.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        store: SessionStore | None = None,
        repository: SnapshotRepository | None = None,
        clock: Clock = system_clock,
        presence: PresenceCheck = never_connected,
        sink: EffectSink | None = None,
        settings_loader: Callable[[], Settings] | None = None,
        catalog: Collection[str] | None = None,
    ) -> None:
        self._lock = threading.RLock()
        self._settings = settings or Settings()
        self._store = store if store is not None else SessionStore()
        self._repository = repository
        self._clock = clock
        self._presence = presence
        self._sink = sink
        self._settings_loader = settings_loader
        self._catalog = catalog
        self._pending: dict[str, PendingRestore] = {}
        self._policy = PolicyEngine.from_settings(self._settings, catalog=catalog)
        self._guard = ActionGuard(self._policy)
        self._loop: ReconciliationLoop | None = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def settings(self) -> Settings:
        with self._lock:
            return self._settings

    @property
    def policy(self) -> PolicyEngine:
        with self._lock:
            return self._policy

    @property
    def store(self) -> SessionStore:
        return self._store

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(
        self,
        user_id: str,
        current_mode: OperatingMode,
        current_holdings: Holdings,
        is_privileged: bool = False,
    ) -> SessionResult:
        """Begin a build session for ``user_id``.

        The user's mode and holdings are captured for restore.  If a restore
        from an earlier offline expiry is still pending, that state is
        captured instead, since the live state is still the previous
        session's clean slate.

        Returns
        -------
        SessionResult
            ``ALREADY_ACTIVE``, ``ON_COOLDOWN`` (with the remaining seconds)
            or ``OK`` with the new session and the elevation effects.
        """
        with self._lock:
            now = self._clock()
            existing = self._store.get(user_id)
            if existing is not None:
                logger.debug("start(%r): session already active", user_id)
                return SessionResult(SessionOutcome.ALREADY_ACTIVE, session=existing)

            cooldown_ms = self._cooldown_remaining_ms(user_id, now)
            if cooldown_ms > 0:
                logger.debug("start(%r): on cooldown for %d ms", user_id, cooldown_ms)
                return SessionResult(
                    SessionOutcome.ON_COOLDOWN,
                    cooldown_remaining_seconds=_ceil_seconds(cooldown_ms),
                )

            pending = self._pending.pop(user_id, None)
            if pending is not None:
                logger.info("start(%r): capturing pending restore instead of live state", user_id)
                current_mode = pending.prior_mode
                current_holdings = pending.saved_state

            settings = self._settings
            duration: Duration
            if is_privileged:
                duration = UnlimitedDuration()
                label = "unlimited"
            else:
                duration = TimedDuration(minutes=settings.build_duration_minutes)
                label = f"{settings.build_duration_minutes} min"

            session = Session.open(user_id, now, duration, current_mode, current_holdings)
            self._store.put(user_id, session)
            effects = elevation_effects(settings.elevated_mode, settings.tool_item)

        logger.info(
            "Build session started for %r (%s, %d item(s) saved)",
            user_id,
            label,
            session.saved_state.item_count(),
        )
        return SessionResult(SessionOutcome.OK, session=session, effects=tuple(effects))

    def end(self, user_id: str) -> SessionResult:
        """End the session for ``user_id`` and return the restore effects.

        The cooldown record is written in the same step that removes the
        session.
        """
        with self._lock:
            now = self._clock()
            session = self._store.remove(user_id, now)
            if session is None:
                logger.debug("end(%r): no active session", user_id)
                return SessionResult(SessionOutcome.NOT_ACTIVE)
            effects = self._restore_effects(session.saved_state, session.prior_mode)

        logger.info("Build session ended for %r", user_id)
        return SessionResult(SessionOutcome.OK, session=session, effects=tuple(effects))

    def extend(self, user_id: str, minutes: int) -> SessionResult:
        """Push the end of a timed session ``minutes`` later.

        Unlimited sessions are returned unchanged with ``OK``.  A
        non-positive ``minutes`` yields ``INVALID_DURATION`` and changes
        nothing.
        """
        if minutes <= 0:
            logger.debug("extend(%r): rejected non-positive extension %r", user_id, minutes)
            return SessionResult(SessionOutcome.INVALID_DURATION)
        with self._lock:
            session = self._store.get(user_id)
            if session is None:
                return SessionResult(SessionOutcome.NOT_ACTIVE)
            extended = session.extended(minutes)
            if extended is not session:
                self._store.replace(user_id, extended)
        logger.info("Build session for %r extended by %d min", user_id, minutes)
        return SessionResult(SessionOutcome.OK, session=extended)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_session(self, user_id: str) -> Session | None:
        return self._store.get(user_id)

    def is_active(self, user_id: str) -> bool:
        """True while ``user_id`` has a session whose window has not elapsed."""
        session = self._store.get(user_id)
        return session is not None and not session.expired(self._clock())

    def remaining_seconds(self, user_id: str) -> int:
        """Whole seconds left in the session.

        Returns 0 when the user has no session (or it has elapsed) and
        ``UNLIMITED_SECONDS`` for unlimited sessions.
        """
        session = self._store.get(user_id)
        if session is None:
            return 0
        remaining = session.remaining_ms(self._clock())
        if remaining is None:
            return UNLIMITED_SECONDS
        return remaining // 1000

    def is_on_cooldown(self, user_id: str) -> bool:
        return self._cooldown_remaining_ms(user_id, self._clock()) > 0

    def cooldown_remaining_seconds(self, user_id: str) -> int:
        return _ceil_seconds(self._cooldown_remaining_ms(user_id, self._clock()))

    def has_pending_restore(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._pending

    def list_active(self) -> list[tuple[str, Session]]:
        """Return ``(user_id, session)`` for every unexpired session."""
        now = self._clock()
        return [
            (user_id, session)
            for user_id, session in self._store.snapshot_all()
            if not session.expired(now)
        ]

    def list_remaining(self) -> list[tuple[str, int]]:
        """Return ``(user_id, remaining_seconds)`` for display collaborators."""
        now = self._clock()
        listing: list[tuple[str, int]] = []
        for user_id, session in self._store.snapshot_all():
            remaining = session.remaining_ms(now)
            if remaining is None:
                listing.append((user_id, UNLIMITED_SECONDS))
            elif remaining > 0:
                listing.append((user_id, remaining // 1000))
        return listing

    # ------------------------------------------------------------------
    # Action policy
    # ------------------------------------------------------------------

    def evaluate_action(self, user_id: str, request: ActionRequest) -> Verdict:
        """Decide whether ``user_id`` may perform ``request``.

        Users without a session are always allowed.  A session that has
        elapsed but not yet been swept still restricts its user, since their
        holdings have not been restored yet.
        """
        if not self._store.has(user_id):
            return Verdict.allow()
        with self._lock:
            guard = self._guard
        verdict = guard.evaluate(request)
        if not verdict.allowed:
            logger.debug("Denied %s for %r: %s", request.kind.value, user_id, verdict.reason)
        return verdict

    # ------------------------------------------------------------------
    # Expiry and reconnect
    # ------------------------------------------------------------------

    def reconcile(self) -> ReconcileReport:
        """End every session whose window has elapsed.

        Connected users get their restore (plus a ``SESSION_EXPIRED``
        notice) pushed through the sink.  For unreachable users, or if the
        sink fails, the restore is queued and applied by
        ``handle_connect``.  A failure for one user is logged and recorded
        without stopping the sweep.
        """
        now = self._clock()
        report = ReconcileReport()
        for user_id, session in self._store.snapshot_all():
            if not session.expired(now):
                continue
            try:
                self._expire(user_id, now, report)
            except Exception as exc:  # noqa: BLE001
                logger.exception("Failed to expire build session for %r", user_id)
                report.failed[user_id] = str(exc)
        if report.expired_count or report.failed:
            logger.info(
                "Reconciliation: %d restored, %d deferred, %d failed",
                len(report.ended),
                len(report.deferred),
                len(report.failed),
            )
        return report

    def _expire(self, user_id: str, now: int, report: ReconcileReport) -> None:
        with self._lock:
            session = self._store.get(user_id)
            if session is None or not session.expired(now):
                return
            # Presence is checked first so a failing lookup leaves the session
            # in place for the next sweep.
            online = self._sink is not None and self._presence(user_id)
            self._store.remove(user_id, now)
            effects = self._restore_effects(session.saved_state, session.prior_mode)

            if self._sink is None or not online:
                self._pending[user_id] = PendingRestore.from_session(session)
                report.deferred.append(user_id)
                logger.info("Build session for offline %r expired; restore deferred", user_id)
                return

            try:
                self._sink.apply(user_id, [*effects, Notify(NoticeKind.SESSION_EXPIRED)])
            except Exception:  # noqa: BLE001
                logger.exception("Could not restore %r live; deferring to reconnect", user_id)
                self._pending[user_id] = PendingRestore.from_session(session)
                report.deferred.append(user_id)
                return
            report.ended.append(user_id)
            logger.info("Build session for %r expired", user_id)

    def handle_connect(self, user_id: str) -> list[Effect]:
        """Return the effects to apply when ``user_id`` (re)connects.

        In order of precedence: a deferred restore, the expiry of a session
        that elapsed while the user was away, or re-entering the elevated
        mode for a session that is still running.
        """
        with self._lock:
            pending = self._pending.pop(user_id, None)
            if pending is not None:
                logger.info("Applying deferred restore for %r", user_id)
                return [
                    *self._restore_effects(pending.saved_state, pending.prior_mode),
                    Notify(NoticeKind.EXPIRED_WHILE_OFFLINE),
                ]

            session = self._store.get(user_id)
            if session is None:
                return []

            now = self._clock()
            if session.expired(now):
                self._store.remove(user_id, now)
                logger.info("Build session for %r expired while offline", user_id)
                return [
                    *self._restore_effects(session.saved_state, session.prior_mode),
                    Notify(NoticeKind.EXPIRED_WHILE_OFFLINE),
                ]

            return [SetMode(self._settings.elevated_mode), Notify(NoticeKind.SESSION_RESUMED)]

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def reload(self, settings: Settings | None = None) -> bool:
        """Swap in new settings and policy, then restart a running sweep timer.

        When ``settings`` is omitted they are re-read through the
        ``settings_loader``; a loader failure is logged and the current
        settings stay in force.  Active sessions and their windows are
        never changed.

        Returns
        -------
        bool
            True if new settings were applied.
        """
        if settings is None:
            if self._settings_loader is None:
                settings = self.settings
            else:
                try:
                    settings = self._settings_loader()
                except SettingsError:
                    logger.exception("Reload failed; keeping current settings")
                    return False

        policy = PolicyEngine.from_settings(settings, catalog=self._catalog)
        with self._lock:
            self._settings = settings
            self._policy = policy
            self._guard = ActionGuard(policy)
            loop = self._loop

        # A stopped timer stays stopped; shutdown may already have persisted.
        if loop is not None and loop.running:
            loop.restart(settings.check_interval_seconds)
        logger.info("Build-mode configuration reloaded (mode=%s)", policy.config.mode.value)
        return True

    # ------------------------------------------------------------------
    # Background timer
    # ------------------------------------------------------------------

    def start_background(self) -> None:
        """Start the periodic reconciliation sweep."""
        with self._lock:
            if self._loop is None:
                self._loop = ReconciliationLoop(
                    self.reconcile, self._settings.check_interval_seconds
                )
            loop = self._loop
        loop.start()

    def stop_background(self) -> None:
        with self._lock:
            loop = self._loop
        if loop is not None:
            loop.stop()

    @property
    def background_running(self) -> bool:
        with self._lock:
            loop = self._loop
        return loop is not None and loop.running

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def snapshot(self) -> SnapshotDocument:
        """Return everything that ``persist`` would write."""
        with self._lock:
            return SnapshotDocument(
                sessions=dict(self._store.snapshot_all()),
                cooldowns=self._store.cooldowns(),
                pending=dict(self._pending),
            )

    def persist(self) -> bool:
        """Write all sessions, cooldowns and pending restores to storage.

        A failed write is logged and reported as False; it never raises.
        """
        if self._repository is None:
            logger.debug("No snapshot repository configured; nothing persisted")
            return False
        document = self.snapshot()
        try:
            self._repository.save(document)
        except PersistenceIOError:
            logger.exception("Could not persist build sessions")
            return False
        return True

    def restore_from_storage(self) -> LoadReport:
        """Load persisted state into memory.

        Sessions whose window already elapsed are discarded without a
        restore.  A load failure is logged and leaves in-memory state as it
        was.
        """
        report = LoadReport()
        if self._repository is None:
            return report
        try:
            document = self._repository.load()
        except PersistenceIOError:
            logger.exception("Could not load persisted build sessions")
            report.failed = True
            return report

        now = self._clock()
        live: dict[str, Session] = {}
        for user_id, session in document.sessions.items():
            if session.expired(now):
                logger.info("Discarding persisted session for %r: already expired", user_id)
                report.discarded.append(user_id)
            else:
                live[user_id] = session

        with self._lock:
            self._store.restore(live, document.cooldowns)
            for user_id, pending in document.pending.items():
                if not self._store.has(user_id):
                    self._pending.setdefault(user_id, pending)

        report.restored = sorted(live)
        report.skipped = list(document.skipped)
        report.cooldowns = len(document.cooldowns)
        report.pending = len(document.pending)
        return report

    def shutdown(self) -> bool:
        """Stop the sweep timer and persist state.  Never raises."""
        self.stop_background()
        return self.persist()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _restore_effects(self, saved_state: Holdings, prior_mode: OperatingMode) -> list[Effect]:
        settings = self._settings
        return restore_effects(
            saved_state, prior_mode, settings.elevated_mode, settings.baseline_mode
        )

    def _cooldown_remaining_ms(self, user_id: str, now: int) -> int:
        last_end = self._store.last_end(user_id)
        if last_end is None:
            return 0
        window = self._settings.cooldown_ms
        elapsed = now - last_end
        return max(0, min(window, window - elapsed))

    def __repr__(self) -> str:
        return f"SessionManager(active={len(self._store)}, pending={len(self._pending)})"


def _ceil_seconds(milliseconds: int) -> int:
    return -(-milliseconds // 1000)
