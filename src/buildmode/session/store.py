"""In-memory bookkeeping of active sessions and cooldowns.

``SessionStore`` is the only object that holds ``Session`` instances.  It
keeps two maps: user id to active session, and user id to the time that
user's last session ended.  Removing a session and writing its cooldown
record happen inside the same critical section.

Classes
-------
- AlreadyActiveError  — raised when storing a second session for a user
- SessionStore        — thread-safe session and cooldown maps
"""
from __future__ import annotations

import threading

from buildmode.session.state import Session


class AlreadyActiveError(KeyError):
    """Raised by ``SessionStore.put`` when the user already has a session."""

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(f"User {user_id!r} already has an active session.")


class SessionStore:
    """Thread-safe map of user id to active session, plus cooldown records.

    Sessions are immutable, so handing them out from ``get`` and
    ``snapshot_all`` does not give callers a way to mutate stored state.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._sessions: dict[str, Session] = {}
        self._last_end: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def has(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._sessions

    def get(self, user_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(user_id)

    def put(self, user_id: str, session: Session) -> None:
        """Store ``session`` for ``user_id``.

        Raises
        ------
        AlreadyActiveError
            If ``user_id`` already has a session.
        """
        with self._lock:
            if user_id in self._sessions:
                raise AlreadyActiveError(user_id)
            self._sessions[user_id] = session

    def replace(self, user_id: str, session: Session) -> None:
        """Swap the stored session for ``user_id``.

        Raises
        ------
        KeyError
            If ``user_id`` has no session to replace.
        """
        with self._lock:
            if user_id not in self._sessions:
                raise KeyError(f"User {user_id!r} has no active session.")
            self._sessions[user_id] = session

    def remove(self, user_id: str, now: int) -> Session | None:
        """Remove and return the session for ``user_id``.

        A cooldown record stamped ``now`` is written whenever a session is
        actually removed.  Returns ``None`` and records nothing if the user
        had no session.
        """
        with self._lock:
            session = self._sessions.pop(user_id, None)
            if session is not None:
                self._last_end[user_id] = now
            return session

    def snapshot_all(self) -> list[tuple[str, Session]]:
        """Return ``(user_id, session)`` pairs in insertion order."""
        with self._lock:
            return list(self._sessions.items())

    # ------------------------------------------------------------------
    # Cooldowns
    # ------------------------------------------------------------------

    def last_end(self, user_id: str) -> int | None:
        with self._lock:
            return self._last_end.get(user_id)

    def cooldowns(self) -> dict[str, int]:
        with self._lock:
            return dict(self._last_end)

    # ------------------------------------------------------------------
    # Bulk load
    # ------------------------------------------------------------------

    def restore(self, sessions: dict[str, Session], cooldowns: dict[str, int]) -> None:
        """Merge persisted sessions and cooldowns into the store.

        Sessions already present in memory win over persisted ones.
        Cooldown records keep whichever end time is later.
        """
        with self._lock:
            for user_id, session in sessions.items():
                self._sessions.setdefault(user_id, session)
            for user_id, ended_at in cooldowns.items():
                current = self._last_end.get(user_id)
                if current is None or ended_at > current:
                    self._last_end[user_id] = ended_at

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __repr__(self) -> str:
        return f"SessionStore(active={len(self)}, cooldowns={len(self._last_end)})"
