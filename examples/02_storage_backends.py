#!/usr/bin/env python3
"""Example: Storage Backends

Persists active sessions with the in-memory, filesystem and SQLite
backends, then restores them into a fresh manager as after a restart.

Usage:
    python examples/02_storage_backends.py

Requirements:
    pip install buildmode
"""
from __future__ import annotations

import tempfile
from pathlib import Path

import buildmode
from buildmode import (
    FilesystemBackend,
    Holdings,
    InMemoryBackend,
    ItemStack,
    OperatingMode,
    SessionManager,
    SnapshotRepository,
    SQLiteBackend,
    StorageBackend,
)


def demo_backend(label: str, backend: StorageBackend) -> None:
    repository = SnapshotRepository(backend)
    before = SessionManager(repository=repository)
    before.start("alex", OperatingMode.SURVIVAL, Holdings(offhand=ItemStack(type="shield")))
    before.start("op", OperatingMode.CREATIVE, Holdings(), is_privileged=True)
    before.shutdown()

    after = SessionManager(repository=repository)
    report = after.restore_from_storage()
    print(f"  [{label}] restored {report.restored}, discarded {report.discarded}")


def main() -> None:
    print(f"buildmode version: {buildmode.__version__}")

    print("\nIn-memory backend:")
    demo_backend("memory", InMemoryBackend())

    with tempfile.TemporaryDirectory() as tmp:
        print("\nFilesystem backend:")
        demo_backend("filesystem", FilesystemBackend(storage_dir=Path(tmp) / "files"))

        print("\nSQLite backend:")
        demo_backend("sqlite", SQLiteBackend(db_path=Path(tmp) / "snapshots.db"))


if __name__ == "__main__":
    main()
