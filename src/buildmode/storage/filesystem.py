"""Filesystem storage backend.

Persists each key as an individual file under a configurable directory.
Defaults to ``~/.buildmode/``.

Classes
-------
- FilesystemBackend  — file-per-key storage
"""
from __future__ import annotations

import os
from pathlib import Path

from buildmode.storage.base import StorageBackend

_DEFAULT_STORAGE_DIR: Path = Path.home() / ".buildmode"
_DEFAULT_EXTENSION = ".yml"


class FilesystemBackend(StorageBackend):
    """Stores payloads as individual files.

    Each key is stored as ``<storage_dir>/<key><extension>``.  Writes go to a
    temporary sibling first and are moved into place, so a crash mid-write
    leaves the previous snapshot intact.

    Parameters
    ----------
    storage_dir:
        Root directory for snapshot files.  Defaults to ``~/.buildmode/``.
        Created on first write if absent.
    extension:
        File suffix including the dot.  Defaults to ``".yml"``.
    """

    def __init__(
        self,
        storage_dir: str | Path | None = None,
        extension: str = _DEFAULT_EXTENSION,
    ) -> None:
        self._storage_dir: Path = (
            Path(storage_dir) if storage_dir is not None else _DEFAULT_STORAGE_DIR
        )
        self._extension = extension if extension.startswith(".") else f".{extension}"

    @property
    def storage_dir(self) -> Path:
        return self._storage_dir

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_dir(self) -> None:
        self._storage_dir.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        # Guard against path traversal.
        safe_name = os.path.basename(key)
        return self._storage_dir / f"{safe_name}{self._extension}"

    # ------------------------------------------------------------------
    # StorageBackend interface
    # ------------------------------------------------------------------

    def save(self, key: str, payload: str) -> None:
        """Write ``payload`` to ``<storage_dir>/<key><extension>``."""
        self._ensure_dir()
        path = self._path_for(key)
        tmp_path = path.with_name(path.name + ".tmp")
        tmp_path.write_text(payload, encoding="utf-8")
        os.replace(tmp_path, path)

    def load(self, key: str) -> str:
        """Read and return the payload for ``key``.

        Raises
        ------
        KeyError
            If the file does not exist.
        """
        path = self._path_for(key)
        if not path.exists():
            raise KeyError(f"Key {key!r} not found at {path}")
        return path.read_text(encoding="utf-8")

    def list(self) -> list[str]:
        """Return keys derived from file stems; empty if the directory is absent."""
        if not self._storage_dir.exists():
            return []
        return [
            path.stem
            for path in self._storage_dir.glob(f"*{self._extension}")
            if path.is_file()
        ]

    def delete(self, key: str) -> None:
        path = self._path_for(key)
        if not path.exists():
            raise KeyError(f"Key {key!r} not found at {path}")
        path.unlink()

    def exists(self, key: str) -> bool:
        return self._path_for(key).exists()

    def __repr__(self) -> str:
        return (
            f"FilesystemBackend(storage_dir={str(self._storage_dir)!r}, "
            f"extension={self._extension!r})"
        )
