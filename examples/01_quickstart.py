#!/usr/bin/env python3
"""Example: Quickstart — buildmode

Minimal working example: start a build session, check a few actions
against the item policy, let the session expire and restore the user.

Usage:
    python examples/01_quickstart.py

Requirements:
    pip install buildmode
"""
from __future__ import annotations

from collections.abc import Sequence

import buildmode
from buildmode import (
    ActionKind,
    ActionRequest,
    Effect,
    EffectSink,
    Holdings,
    ItemStack,
    OperatingMode,
    SessionManager,
    Settings,
)


class PrintingSink(EffectSink):
    """Stands in for the host: prints effects instead of applying them."""

    def apply(self, user_id: str, effects: Sequence[Effect]) -> None:
        for effect in effects:
            print(f"  -> {user_id}: {effect}")


class FakeClock:
    def __init__(self) -> None:
        self.now = 1_700_000_000_000

    def __call__(self) -> int:
        return self.now


def main() -> None:
    print(f"buildmode version: {buildmode.__version__}")

    clock = FakeClock()
    settings = Settings(build_duration_minutes=10, blacklist=["tnt", "bedrock"])
    manager = SessionManager(
        settings,
        clock=clock,
        presence=lambda user_id: True,
        sink=PrintingSink(),
    )

    # Step 1: start a session; the caller applies the returned effects
    holdings = Holdings(
        primary=(ItemStack(type="iron_pickaxe"), ItemStack(type="bread", amount=12)),
    )
    result = manager.start("steve", OperatingMode.SURVIVAL, holdings)
    print(f"\nstart: {result.outcome.value}, {manager.remaining_seconds('steve')}s left")
    for effect in result.effects:
        print(f"  -> steve: {effect}")

    # Step 2: ask the guard about some actions
    for request in (
        ActionRequest(ActionKind.PLACE, item=ItemStack(type="oak_planks")),
        ActionRequest(ActionKind.PLACE, item=ItemStack(type="tnt")),
        ActionRequest(ActionKind.DROP, item=ItemStack(type="oak_planks")),
    ):
        verdict = manager.evaluate_action("steve", request)
        print(f"{request.kind.value:>6} {request.item.type if request.item else '-':<12} {verdict}")

    # Step 3: let the window elapse; the sweep restores through the sink
    clock.now += 10 * 60_000
    print("\nreconcile:")
    report = manager.reconcile()
    print(f"ended={report.ended} deferred={report.deferred}")
    print(f"on cooldown: {manager.is_on_cooldown('steve')}")


if __name__ == "__main__":
    main()
