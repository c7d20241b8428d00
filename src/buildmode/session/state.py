"""Session state domain models.

All types are Pydantic BaseModel subclasses so that snapshots validate on
load and serialise to plain JSON/YAML without custom encoders.

Classes
-------
- OperatingMode      — the host's game-mode equivalent
- ItemStack          — one item descriptor held in a slot
- Holdings           — a user's primary, armor and off-hand slots
- TimedDuration      — a session window of a fixed number of minutes
- UnlimitedDuration  — a session window that never expires
- Session            — one user's active build-mode window
- PendingRestore     — a restore deferred until the user reconnects
"""
from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, model_validator

_MS_PER_MINUTE = 60_000


class OperatingMode(str, Enum):
    """Operating modes a user can be placed in."""

    SURVIVAL = "survival"
    CREATIVE = "creative"
    ADVENTURE = "adventure"
    SPECTATOR = "spectator"


class ItemStack(BaseModel):
    """A single item descriptor occupying one holding slot.

    Parameters
    ----------
    type:
        Normalised item-type identifier (e.g. ``"oak_planks"``).
    amount:
        Stack size, at least 1.
    enchantments:
        Enchantment name to level.
    display_name:
        Custom display name, if the item was renamed.
    lore:
        Lore / annotation lines attached to the item.
    extra:
        Opaque host data carried through snapshot and restore untouched.
    """

    type: str
    amount: int = Field(default=1, ge=1)
    enchantments: dict[str, int] = Field(default_factory=dict)
    display_name: str | None = None
    lore: list[str] = Field(default_factory=list)
    extra: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @property
    def is_decorated(self) -> bool:
        """True when the item carries enchantments, a custom name or lore."""
        return bool(self.enchantments) or bool(self.display_name) or bool(self.lore)


class Holdings(BaseModel):
    """Snapshot of everything a user holds.

    Empty slots are ``None`` and keep their position so that a restore puts
    every item back exactly where it was.
    """

    primary: tuple[ItemStack | None, ...] = ()
    armor: tuple[ItemStack | None, ...] = ()
    offhand: ItemStack | None = None

    model_config = {"frozen": True}

    def is_empty(self) -> bool:
        return self.offhand is None and all(
            slot is None for slot in (*self.primary, *self.armor)
        )

    def item_count(self) -> int:
        """Return the number of occupied slots."""
        slots = (*self.primary, *self.armor, self.offhand)
        return sum(1 for slot in slots if slot is not None)


class TimedDuration(BaseModel):
    """A session window lasting ``minutes`` minutes."""

    kind: Literal["timed"] = "timed"
    minutes: int = Field(gt=0)

    model_config = {"frozen": True}


class UnlimitedDuration(BaseModel):
    """A session window with no end; granted to privileged users."""

    kind: Literal["unlimited"] = "unlimited"

    model_config = {"frozen": True}


Duration = Annotated[Union[TimedDuration, UnlimitedDuration], Field(discriminator="kind")]
_DURATION_ADAPTER: TypeAdapter[Duration] = TypeAdapter(Duration)


class Session(BaseModel):
    """One user's active build-mode window.

    Instances are immutable; the store swaps in a new copy whenever the
    window changes.

    Parameters
    ----------
    user_id:
        Opaque, stable identifier of the owning user.
    start_time:
        Epoch milliseconds at which the session began.
    end_time:
        Epoch milliseconds at which the session expires, or ``None`` for an
        unlimited session.
    prior_mode:
        Operating mode the user had immediately before the session.
    saved_state:
        Holdings captured at session start, restored on end.
    """

    user_id: str
    start_time: int
    end_time: int | None = None
    prior_mode: OperatingMode
    saved_state: Holdings = Field(default_factory=Holdings)

    model_config = {"frozen": True}

    @classmethod
    def open(
        cls,
        user_id: str,
        now: int,
        duration: Duration | dict[str, Any],
        prior_mode: OperatingMode,
        holdings: Holdings,
    ) -> Session:
        """Create a session starting at ``now`` for the given duration.

        ``duration`` may also be given in its plain form, e.g.
        ``{"kind": "timed", "minutes": 30}``.
        """
        duration = _DURATION_ADAPTER.validate_python(duration)
        end_time: int | None = None
        if isinstance(duration, TimedDuration):
            end_time = now + duration.minutes * _MS_PER_MINUTE
        return cls(
            user_id=user_id,
            start_time=now,
            end_time=end_time,
            prior_mode=prior_mode,
            saved_state=holdings.model_copy(deep=True),
        )

    @property
    def unlimited(self) -> bool:
        return self.end_time is None

    @property
    def duration(self) -> Duration:
        """The session's window expressed as a tagged duration."""
        if self.end_time is None:
            return UnlimitedDuration()
        minutes = max(1, -(-(self.end_time - self.start_time) // _MS_PER_MINUTE))
        return TimedDuration(minutes=minutes)

    def expired(self, now: int) -> bool:
        """Return True once ``now`` has reached the end of a timed window."""
        if self.end_time is None:
            return False
        return now >= self.end_time

    def remaining_ms(self, now: int) -> int | None:
        """Milliseconds left, clamped at zero; ``None`` for unlimited sessions."""
        if self.end_time is None:
            return None
        return max(0, self.end_time - now)

    def extended(self, minutes: int) -> Session:
        """Return a copy whose window ends ``minutes`` later.

        Unlimited sessions are returned unchanged.
        """
        if minutes <= 0:
            raise ValueError(f"Extension must be positive, got {minutes!r} minutes.")
        if self.end_time is None:
            return self
        return self.model_copy(update={"end_time": self.end_time + minutes * _MS_PER_MINUTE})

    @model_validator(mode="after")
    def _check_window(self) -> "Session":
        if self.end_time is not None and self.end_time <= self.start_time:
            raise ValueError(
                f"Session for {self.user_id!r} ends at {self.end_time} "
                f"which is not after its start {self.start_time}"
            )
        return self


class PendingRestore(BaseModel):
    """State to hand back to a user whose session expired while offline."""

    user_id: str
    prior_mode: OperatingMode
    saved_state: Holdings = Field(default_factory=Holdings)

    model_config = {"frozen": True}

    @classmethod
    def from_session(cls, session: Session) -> PendingRestore:
        return cls(
            user_id=session.user_id,
            prior_mode=session.prior_mode,
            saved_state=session.saved_state,
        )
