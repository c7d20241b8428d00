"""Durable storage of session snapshots.

``SnapshotRepository`` writes the whole snapshot document under a single
key of a ``StorageBackend`` at shutdown and reads it back at startup.  It is
never used on the hot path.

Classes
-------
- PersistenceIOError  — the snapshot could not be read or written
- SnapshotRepository  — save/load a ``SnapshotDocument`` via a backend
"""
from __future__ import annotations

import json
import logging
import sqlite3

import yaml

from buildmode.session.serializer import SnapshotDocument, SnapshotSerializer
from buildmode.storage.base import StorageBackend

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOT_KEY = "buildmode-sessions"


class PersistenceIOError(RuntimeError):
    """Raised when a snapshot cannot be saved or loaded.

    Only the save or load attempt fails; in-memory state is unaffected.
    """

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(f"Snapshot {operation} failed: {reason}")


class SnapshotRepository:
    """Persist and reload snapshot documents.

    Parameters
    ----------
    backend:
        Where the serialised document lives.
    serializer:
        Document codec.  Defaults to YAML.
    key:
        Storage key for the document.
    """

    def __init__(
        self,
        backend: StorageBackend,
        serializer: SnapshotSerializer | None = None,
        key: str = DEFAULT_SNAPSHOT_KEY,
    ) -> None:
        self._backend = backend
        self._serializer = serializer or SnapshotSerializer()
        self._key = key

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    def save(self, document: SnapshotDocument) -> None:
        """Write ``document`` wholesale, replacing any previous snapshot.

        Raises
        ------
        PersistenceIOError
            If encoding or the backend write fails.
        """
        try:
            payload = self._serializer.dumps(document)
            self._backend.save(self._key, payload)
        except (OSError, sqlite3.Error, yaml.YAMLError, TypeError, ValueError) as exc:
            raise PersistenceIOError("save", str(exc)) from exc
        logger.info(
            "Saved snapshot: %d session(s), %d cooldown(s), %d pending restore(s)",
            len(document.sessions),
            len(document.cooldowns),
            len(document.pending),
        )

    def load(self) -> SnapshotDocument:
        """Read the stored document; an absent snapshot yields an empty one.

        Malformed per-user records are skipped by the serializer.

        Raises
        ------
        PersistenceIOError
            If the backend cannot be read or the document as a whole is
            unreadable (bad syntax, unsupported schema version).
        """
        try:
            if not self._backend.exists(self._key):
                logger.debug("No snapshot stored under %r", self._key)
                return SnapshotDocument()
            raw = self._backend.load(self._key)
            document = self._serializer.loads(raw)
        except (OSError, sqlite3.Error, KeyError) as exc:
            raise PersistenceIOError("load", str(exc)) from exc
        except (yaml.YAMLError, json.JSONDecodeError, ValueError) as exc:
            raise PersistenceIOError("load", f"unreadable snapshot ({exc})") from exc
        logger.info(
            "Loaded snapshot: %d session(s), %d cooldown(s), %d pending restore(s), %d skipped",
            len(document.sessions),
            len(document.cooldowns),
            len(document.pending),
            len(document.skipped),
        )
        return document

    def __repr__(self) -> str:
        return f"SnapshotRepository(backend={self._backend!r}, key={self._key!r})"
