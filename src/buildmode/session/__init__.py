"""Session subpackage: domain models, effects and in-memory bookkeeping.

The manager, repository and serializer live in their own modules and are
imported from there (or from the top-level ``buildmode`` package).
"""
from __future__ import annotations

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

__all__ = [
    "AlreadyActiveError",
    "ClearHoldings",
    "Effect",
    "GrantItem",
    "Holdings",
    "ItemStack",
    "NoticeKind",
    "Notify",
    "OperatingMode",
    "PendingRestore",
    "RestoreHoldings",
    "Session",
    "SessionStore",
    "SetMode",
    "TimedDuration",
    "UnlimitedDuration",
]
