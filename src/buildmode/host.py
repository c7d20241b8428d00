"""Interfaces consumed from the host environment.

The host owns live user state.  The core only needs to know whether a user
is reachable, where to send effects produced outside a direct call (the
reconciliation sweep), and what time it is.

Classes
-------
- EffectSink  — abstract receiver of effects for a given user

Type aliases
------------
- Clock          — zero-argument callable returning epoch milliseconds
- PresenceCheck  — ``user_id -> bool``, True when the user is connected
"""
from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from buildmode.session.effects import Effect

Clock = Callable[[], int]
PresenceCheck = Callable[[str], bool]


def system_clock() -> int:
    """Return the current wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


def never_connected(user_id: str) -> bool:
    """Presence check used when the host supplies none."""
    return False


class EffectSink(ABC):
    """Applies effects to a live user.

    Implementations are expected to apply the whole sequence in order, and
    to raise if the user's state cannot be modified so that the caller can
    keep the restore for later.
    """

    @abstractmethod
    def apply(self, user_id: str, effects: Sequence[Effect]) -> None:
        """Apply ``effects`` to the live state of ``user_id``."""
