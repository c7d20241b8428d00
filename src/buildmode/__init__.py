"""buildmode — time-boxed, revocable build sessions with state snapshots.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import buildmode
>>> buildmode.__version__
'0.1.0'
"""
from __future__ import annotations

# Configuration
from buildmode.config import Settings, SettingsError, load_settings, make_backend

# Host interfaces
from buildmode.host import Clock, EffectSink, PresenceCheck, system_clock

# Session core
from buildmode.session.effects import (
    ClearHoldings,
    Effect,
    GrantItem,
    NoticeKind,
    Notify,
    RestoreHoldings,
    SetMode,
)
from buildmode.session.state import (
    Holdings,
    ItemStack,
    OperatingMode,
    PendingRestore,
    Session,
    TimedDuration,
    UnlimitedDuration,
)
from buildmode.session.store import AlreadyActiveError, SessionStore
from buildmode.session.serializer import SchemaVersionError, SnapshotDocument, SnapshotSerializer
from buildmode.session.repository import PersistenceIOError, SnapshotRepository
from buildmode.session.reconciler import ReconciliationLoop
from buildmode.session.manager import (
    UNLIMITED_SECONDS,
    LoadReport,
    ReconcileReport,
    SessionManager,
    SessionOutcome,
    SessionResult,
)

# Policy
from buildmode.policy.engine import ConfigParseError, PolicyConfiguration, PolicyEngine, PolicyMode
from buildmode.policy.actions import (
    ActionGuard,
    ActionKind,
    ActionRequest,
    DenyReason,
    InventoryKind,
    Verdict,
)

# Storage backends
from buildmode.storage.base import StorageBackend
from buildmode.storage.memory import InMemoryBackend
from buildmode.storage.filesystem import FilesystemBackend
from buildmode.storage.sqlite import SQLiteBackend

__version__: str = "0.1.0"

__all__ = [
    "__version__",
    # Configuration
    "Settings",
    "SettingsError",
    "load_settings",
    "make_backend",
    # Host interfaces
    "Clock",
    "EffectSink",
    "PresenceCheck",
    "system_clock",
    # Session core
    "AlreadyActiveError",
    "ClearHoldings",
    "Effect",
    "GrantItem",
    "Holdings",
    "ItemStack",
    "LoadReport",
    "NoticeKind",
    "Notify",
    "OperatingMode",
    "PendingRestore",
    "PersistenceIOError",
    "ReconcileReport",
    "ReconciliationLoop",
    "RestoreHoldings",
    "SchemaVersionError",
    "Session",
    "SessionManager",
    "SessionOutcome",
    "SessionResult",
    "SessionStore",
    "SetMode",
    "SnapshotDocument",
    "SnapshotRepository",
    "SnapshotSerializer",
    "TimedDuration",
    "UNLIMITED_SECONDS",
    "UnlimitedDuration",
    # Policy
    "ActionGuard",
    "ActionKind",
    "ActionRequest",
    "ConfigParseError",
    "DenyReason",
    "InventoryKind",
    "PolicyConfiguration",
    "PolicyEngine",
    "PolicyMode",
    "Verdict",
    # Storage
    "FilesystemBackend",
    "InMemoryBackend",
    "SQLiteBackend",
    "StorageBackend",
]
