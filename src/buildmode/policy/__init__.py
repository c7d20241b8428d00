"""Item and action policy for build sessions."""
from __future__ import annotations

from buildmode.policy.actions import (
    ActionGuard,
    ActionKind,
    ActionRequest,
    DenyReason,
    InventoryKind,
    Verdict,
)
from buildmode.policy.engine import (
    ConfigParseError,
    PolicyConfiguration,
    PolicyEngine,
    PolicyMode,
    normalize_item_type,
)

__all__ = [
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
    "normalize_item_type",
]
