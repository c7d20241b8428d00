"""In-memory storage backend.

Keeps payloads in a plain Python dict.  Everything is lost when the process
exits, so this backend is mostly useful for tests and dry runs.

Classes
-------
- InMemoryBackend  — dict-backed ephemeral storage
"""
from __future__ import annotations

from buildmode.storage.base import StorageBackend


class InMemoryBackend(StorageBackend):
    """Ephemeral, in-process storage backend backed by a Python dict.

    Parameters
    ----------
    initial_data:
        Optional pre-populated mapping of keys to raw payloads.  A shallow
        copy is taken so the caller's dict is not mutated.
    """

    def __init__(self, initial_data: dict[str, str] | None = None) -> None:
        self._store: dict[str, str] = dict(initial_data or {})

    def save(self, key: str, payload: str) -> None:
        self._store[key] = payload

    def load(self, key: str) -> str:
        try:
            return self._store[key]
        except KeyError:
            raise KeyError(f"Key {key!r} not found in InMemoryBackend.") from None

    def list(self) -> list[str]:
        """Return all stored keys in insertion order."""
        return list(self._store)

    def delete(self, key: str) -> None:
        try:
            del self._store[key]
        except KeyError:
            raise KeyError(f"Key {key!r} not found in InMemoryBackend.") from None

    def exists(self, key: str) -> bool:
        return key in self._store

    def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)

    def __repr__(self) -> str:
        return f"InMemoryBackend(keys={len(self._store)})"
