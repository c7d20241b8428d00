"""Settings for the build-mode core.

Settings are read from a YAML file whose keys use the kebab-case names of
the host plugin configuration (``build-duration-minutes``,
``restriction-mode``, ...).  Unknown keys are ignored so that the same file
can also carry host-only options such as boss-bar toggles.

Item-type lists are kept as raw strings here; validating them is the
policy engine's job, so that one bad entry never rejects the whole file.

Classes
-------
- SettingsError  — the settings file is missing or malformed
- Settings       — validated configuration values

Functions
---------
- load_settings  — read ``Settings`` from a YAML file
- make_backend   — build the storage backend named by ``Settings``
"""
from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from buildmode.session.state import OperatingMode
from buildmode.storage.base import StorageBackend


class SettingsError(ValueError):
    """Raised when a settings file cannot be read or validated."""

    def __init__(self, path: str | Path, reason: str) -> None:
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Invalid settings file {self.path!r}: {reason}")


class Settings(BaseModel):
    """Validated build-mode configuration.

    Parameters
    ----------
    build_duration_minutes:
        Length of a normal session.
    cooldown_minutes:
        Minimum gap between the end of one session and the start of the
        next for the same user.  Zero disables the cooldown.
    restriction_mode:
        ``"blacklist"`` or ``"whitelist"``.  Any other value is treated as
        blacklist by the policy engine, with a warning.
    blacklist, whitelist:
        Raw item-type identifiers.
    check_interval_seconds:
        Period of the reconciliation sweep.
    elevated_mode:
        Operating mode granted for the session.
    baseline_mode:
        Operating mode restored to users who were already elevated.
    tool_item:
        Item granted at session start.
    storage, storage_path, storage_format:
        Where and how snapshots are persisted at shutdown.
    """

    build_duration_minutes: int = Field(default=60, gt=0, alias="build-duration-minutes")
    cooldown_minutes: int = Field(default=1, ge=0, alias="cooldown-minutes")
    restriction_mode: str = Field(default="blacklist", alias="restriction-mode")
    blacklist: list[str] = Field(default_factory=list)
    whitelist: list[str] = Field(default_factory=list)
    check_interval_seconds: float = Field(default=30.0, gt=0, alias="check-interval-seconds")
    elevated_mode: OperatingMode = Field(default=OperatingMode.CREATIVE, alias="elevated-mode")
    baseline_mode: OperatingMode = Field(default=OperatingMode.SURVIVAL, alias="baseline-mode")
    tool_item: str = Field(default="wooden_axe", alias="tool-item")
    storage: Literal["filesystem", "sqlite", "memory"] = "filesystem"
    storage_path: str | None = Field(default=None, alias="storage-path")
    storage_format: Literal["yaml", "json"] = Field(default="yaml", alias="storage-format")

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    @property
    def cooldown_ms(self) -> int:
        return self.cooldown_minutes * 60_000

    @classmethod
    def from_mapping(cls, data: dict[str, object]) -> Settings:
        return cls.model_validate(data)


def load_settings(path: str | Path) -> Settings:
    """Read and validate settings from the YAML file at ``path``.

    An empty file yields the defaults.

    Raises
    ------
    SettingsError
        If the file is missing, is not valid YAML, is not a mapping, or
        holds values of the wrong type.
    """
    settings_path = Path(path)
    try:
        raw = settings_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SettingsError(settings_path, str(exc)) from exc
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise SettingsError(settings_path, f"not valid YAML ({exc})") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise SettingsError(settings_path, "top level must be a mapping")
    try:
        return Settings.from_mapping(data)
    except ValidationError as exc:
        raise SettingsError(settings_path, str(exc)) from exc


def make_backend(settings: Settings) -> StorageBackend:
    """Instantiate the storage backend selected by ``settings``."""
    from buildmode.storage.filesystem import FilesystemBackend
    from buildmode.storage.memory import InMemoryBackend
    from buildmode.storage.sqlite import SQLiteBackend

    if settings.storage == "memory":
        return InMemoryBackend()
    if settings.storage == "sqlite":
        return SQLiteBackend(db_path=settings.storage_path)
    extension = ".json" if settings.storage_format == "json" else ".yml"
    return FilesystemBackend(storage_dir=settings.storage_path, extension=extension)
