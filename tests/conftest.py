"""Shared fixtures: a manually advanced clock, a recording effect sink, and a
presence map standing in for the host's connected-user list."""
from __future__ import annotations

from collections.abc import Sequence

import pytest

from buildmode.config import Settings
from buildmode.host import EffectSink
from buildmode.session.effects import Effect
from buildmode.session.manager import SessionManager
from buildmode.session.repository import SnapshotRepository
from buildmode.session.state import Holdings, ItemStack
from buildmode.storage.memory import InMemoryBackend

T0 = 1_700_000_000_000


class ManualClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, start: int = T0) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, *, minutes: float = 0, seconds: float = 0, ms: int = 0) -> int:
        self.now += int(minutes * 60_000) + int(seconds * 1000) + ms
        return self.now


class RecordingSink(EffectSink):
    def __init__(self) -> None:
        self.applied: list[tuple[str, list[Effect]]] = []
        self.fail_for: set[str] = set()

    def apply(self, user_id: str, effects: Sequence[Effect]) -> None:
        if user_id in self.fail_for:
            raise RuntimeError(f"cannot reach {user_id}")
        self.applied.append((user_id, list(effects)))


class Presence:
    def __init__(self) -> None:
        self.online: set[str] = set()

    def __call__(self, user_id: str) -> bool:
        return user_id in self.online


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def presence() -> Presence:
    return Presence()


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        build_duration_minutes=60,
        cooldown_minutes=5,
        restriction_mode="blacklist",
        blacklist=["tnt", "bedrock", "command_block"],
    )


@pytest.fixture()
def storage() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture()
def manager(
    settings: Settings,
    clock: ManualClock,
    presence: Presence,
    sink: RecordingSink,
    storage: InMemoryBackend,
) -> SessionManager:
    return SessionManager(
        settings,
        repository=SnapshotRepository(storage),
        clock=clock,
        presence=presence,
        sink=sink,
    )


@pytest.fixture()
def holdings() -> Holdings:
    return Holdings(
        primary=(
            ItemStack(type="diamond_sword", enchantments={"sharpness": 5}),
            None,
            ItemStack(type="oak_log", amount=64),
        ),
        armor=(None, None, ItemStack(type="iron_chestplate"), None),
        offhand=ItemStack(type="shield", display_name="Aegis", lore=["old"]),
    )


@pytest.fixture()
def full_holdings() -> Holdings:
    types = ["stone", "dirt", "torch", "bread", "oak_planks", "glass", "cobblestone"]
    primary = []
    for index in range(36):
        if index % 5 == 4:
            primary.append(None)
            continue
        primary.append(
            ItemStack(
                type=types[index % len(types)],
                amount=(index % 64) + 1,
                enchantments={"unbreaking": 3} if index % 7 == 0 else {},
                display_name=f"Item {index}" if index % 9 == 0 else None,
                lore=[f"line {index}"] if index % 11 == 0 else [],
                extra={"slot": index},
            )
        )
    return Holdings(
        primary=tuple(primary),
        armor=(
            ItemStack(type="diamond_boots"),
            ItemStack(type="diamond_leggings"),
            ItemStack(type="diamond_chestplate", enchantments={"protection": 4}),
            ItemStack(type="diamond_helmet"),
        ),
        offhand=ItemStack(type="totem_of_undying"),
    )
