"""Abstract base class for snapshot storage backends.

All concrete backends implement the five operations defined here.  The raw
payload exchanged with the backend is always a UTF-8 string (a JSON or YAML
encoded snapshot document).

Classes
-------
- StorageBackend  — abstract base for all backends
"""
from __future__ import annotations

from abc import ABC, abstractmethod


class StorageBackend(ABC):
    """Protocol for reading and writing raw payloads by key.

    Backends are only touched at startup and shutdown, from one thread at a
    time.  Thread-safety is the responsibility of the caller.
    """

    @abstractmethod
    def save(self, key: str, payload: str) -> None:
        """Persist ``payload`` under ``key``, overwriting any previous value."""

    @abstractmethod
    def load(self, key: str) -> str:
        """Return the raw payload stored under ``key``.

        Raises
        ------
        KeyError
            If no entry exists for ``key``.
        """

    @abstractmethod
    def list(self) -> list[str]:
        """Return all stored keys.  Order is implementation-defined."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove the entry for ``key``.

        Raises
        ------
        KeyError
            If no entry exists for ``key``.
        """

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Return True if an entry for ``key`` exists."""
