"""Effects returned by the session manager for the host to apply.

The core never mutates live user state itself.  Each lifecycle operation
returns an ordered list of small command objects; the host adapter applies
them in order against the real user.

Classes
-------
- NoticeKind       — notification categories the host may surface
- ClearHoldings    — empty every holding slot
- SetMode          — switch the operating mode
- RestoreHoldings  — put a saved snapshot back into the holding slots
- GrantItem        — give the user a number of items of one type
- Notify           — tell the user something happened
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from buildmode.session.state import Holdings, OperatingMode


class NoticeKind(str, Enum):
    SESSION_EXPIRED = "session_expired"
    EXPIRED_WHILE_OFFLINE = "expired_while_offline"
    SESSION_RESUMED = "session_resumed"


@dataclass(frozen=True)
class ClearHoldings:
    pass


@dataclass(frozen=True)
class SetMode:
    mode: OperatingMode


@dataclass(frozen=True)
class RestoreHoldings:
    holdings: Holdings


@dataclass(frozen=True)
class GrantItem:
    item_type: str
    count: int = 1


@dataclass(frozen=True)
class Notify:
    notice: NoticeKind


Effect = Union[ClearHoldings, SetMode, RestoreHoldings, GrantItem, Notify]


def elevation_effects(elevated_mode: OperatingMode, tool_item: str) -> list[Effect]:
    """Effects that put a user into a fresh build-mode slate."""
    return [ClearHoldings(), SetMode(elevated_mode), GrantItem(tool_item, 1)]


def restore_effects(
    saved_state: Holdings,
    prior_mode: OperatingMode,
    elevated_mode: OperatingMode,
    baseline_mode: OperatingMode,
) -> list[Effect]:
    """Effects that hand a user back their pre-session state.

    A user who was already in the elevated mode before the session is
    returned to the baseline mode instead.
    """
    restore_mode = baseline_mode if prior_mode == elevated_mode else prior_mode
    return [ClearHoldings(), RestoreHoldings(saved_state), SetMode(restore_mode)]
