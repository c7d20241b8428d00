"""Uniform evaluation of user actions during a build session.

Every host event adapter (block place, inventory click, drag, pickup, drop,
container open, hopper transfer, ...) reduces its event to an
``ActionRequest`` and asks ``ActionGuard.evaluate`` for a verdict, instead
of repeating the checks per event type.

Classes
-------
- ActionKind     — category of the attempted action
- InventoryKind  — inventory an action reads from or writes to
- DenyReason     — why an action was refused
- ActionRequest  — one attempted action
- Verdict        — allow/deny answer
- ActionGuard    — applies the policy to an ``ActionRequest``
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from buildmode.policy.engine import PolicyEngine
from buildmode.session.state import ItemStack


class ActionKind(str, Enum):
    USE = "use"
    PLACE = "place"
    CREATIVE_PICK = "creative_pick"
    PICKUP = "pickup"
    MOVE = "move"
    OPEN_CONTAINER = "open_container"
    DROP = "drop"
    AUTOMATED_TRANSFER = "automated_transfer"


class InventoryKind(str, Enum):
    PLAYER = "player"
    CREATIVE = "creative"
    CHEST = "chest"
    BARREL = "barrel"
    HOPPER = "hopper"
    SHULKER_BOX = "shulker_box"
    OTHER = "other"


class DenyReason(str, Enum):
    ILLEGAL_ITEM = "illegal_item"
    CONTAINER = "container"
    DROP = "drop"
    AUTOMATED_TRANSFER = "automated_transfer"


STORAGE_CONTAINERS: frozenset[InventoryKind] = frozenset(
    {
        InventoryKind.CHEST,
        InventoryKind.BARREL,
        InventoryKind.HOPPER,
        InventoryKind.SHULKER_BOX,
    }
)
_OWN_INVENTORIES: frozenset[InventoryKind] = frozenset(
    {InventoryKind.PLAYER, InventoryKind.CREATIVE}
)
_ITEM_ACTIONS: frozenset[ActionKind] = frozenset(
    {ActionKind.USE, ActionKind.PLACE, ActionKind.CREATIVE_PICK, ActionKind.PICKUP}
)


@dataclass(frozen=True)
class ActionRequest:
    """One attempted action by a user in a build session.

    Parameters
    ----------
    kind:
        What the user is trying to do.
    item:
        The item being used, placed, picked or moved, if any.
    source:
        Inventory the item comes from, or the inventory being opened.
    destination:
        Inventory the item is moved into (``MOVE`` only).
    """

    kind: ActionKind
    item: ItemStack | None = None
    source: InventoryKind | None = None
    destination: InventoryKind | None = None


@dataclass(frozen=True)
class Verdict:
    allowed: bool
    reason: DenyReason | None = None

    @classmethod
    def allow(cls) -> Verdict:
        return cls(True)

    @classmethod
    def deny(cls, reason: DenyReason) -> Verdict:
        return cls(False, reason)


class ActionGuard:
    """Decides whether an action is allowed while a session is active.

    The guard assumes the acting user is in a session; callers check that
    first (``SessionManager.evaluate_action`` does).
    """

    def __init__(self, policy: PolicyEngine) -> None:
        self._policy = policy

    @property
    def policy(self) -> PolicyEngine:
        return self._policy

    def evaluate(self, request: ActionRequest) -> Verdict:
        kind = request.kind

        if kind is ActionKind.DROP:
            return Verdict.deny(DenyReason.DROP)
        if kind is ActionKind.AUTOMATED_TRANSFER:
            return Verdict.deny(DenyReason.AUTOMATED_TRANSFER)
        if kind is ActionKind.OPEN_CONTAINER:
            if request.source in STORAGE_CONTAINERS:
                return Verdict.deny(DenyReason.CONTAINER)
            return Verdict.allow()
        if kind in _ITEM_ACTIONS:
            if not self._policy.is_legal(request.item):
                return Verdict.deny(DenyReason.ILLEGAL_ITEM)
            return Verdict.allow()
        if kind is ActionKind.MOVE:
            return self._evaluate_move(request)
        return Verdict.allow()

    def _evaluate_move(self, request: ActionRequest) -> Verdict:
        # Illegal items may be shuffled around the player's own inventory
        # but must not leave it.
        if not self._policy.is_legal(request.item):
            if request.destination is not None and request.destination not in _OWN_INVENTORIES:
                return Verdict.deny(DenyReason.ILLEGAL_ITEM)
        if request.source in STORAGE_CONTAINERS or request.destination in STORAGE_CONTAINERS:
            return Verdict.deny(DenyReason.CONTAINER)
        return Verdict.allow()
