"""Storage backend subpackage.

All backends implement the ``StorageBackend`` ABC and exchange raw string
payloads keyed by name.

Public surface
--------------
- StorageBackend    — abstract base class
- FilesystemBackend — one file per key
- SQLiteBackend     — rows in a local SQLite database
- InMemoryBackend   — in-process dict (useful for testing)
"""
from __future__ import annotations

from buildmode.storage.base import StorageBackend
from buildmode.storage.filesystem import FilesystemBackend
from buildmode.storage.memory import InMemoryBackend
from buildmode.storage.sqlite import SQLiteBackend

__all__ = [
    "FilesystemBackend",
    "InMemoryBackend",
    "SQLiteBackend",
    "StorageBackend",
]
