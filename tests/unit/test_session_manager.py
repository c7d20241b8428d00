"""Unit tests for buildmode.session.manager.SessionManager.

All tests drive time through a manual clock and capture host effects with a
recording sink, so nothing sleeps and no host is needed.
"""
from __future__ import annotations

import pytest

from buildmode.config import Settings, SettingsError
from buildmode.policy.actions import ActionKind, ActionRequest, DenyReason
from buildmode.session.effects import (
    ClearHoldings,
    GrantItem,
    NoticeKind,
    Notify,
    RestoreHoldings,
    SetMode,
)
from buildmode.session.manager import UNLIMITED_SECONDS, SessionManager, SessionOutcome
from buildmode.session.repository import SnapshotRepository
from buildmode.session.state import Holdings, ItemStack, OperatingMode
from buildmode.session.store import SessionStore
from buildmode.storage.memory import InMemoryBackend


def _restored_holdings(effects: list[object]) -> Holdings:
    restores = [effect for effect in effects if isinstance(effect, RestoreHoldings)]
    assert len(restores) == 1
    return restores[0].holdings


# ---------------------------------------------------------------------------
# start
# ---------------------------------------------------------------------------


class TestStart:
    def test_start_ok(self, manager: SessionManager, holdings: Holdings, clock) -> None:
        result = manager.start("u1", OperatingMode.SURVIVAL, holdings)
        assert result.ok
        assert result.session is not None
        assert result.session.start_time == clock.now
        assert result.session.end_time == clock.now + 60 * 60_000
        assert result.session.saved_state == holdings

    def test_start_effects(self, manager: SessionManager, holdings: Holdings) -> None:
        result = manager.start("u1", OperatingMode.SURVIVAL, holdings)
        assert list(result.effects) == [
            ClearHoldings(),
            SetMode(OperatingMode.CREATIVE),
            GrantItem("wooden_axe", 1),
        ]

    def test_start_marks_active(self, manager: SessionManager) -> None:
        manager.start("u1", OperatingMode.SURVIVAL, Holdings())
        assert manager.is_active("u1") is True
        assert manager.is_active("u2") is False

    def test_already_active_leaves_session_untouched(
        self, manager: SessionManager, holdings: Holdings, clock
    ) -> None:
        first = manager.start("u1", OperatingMode.SURVIVAL, holdings)
        clock.advance(minutes=3)
        second = manager.start("u1", OperatingMode.ADVENTURE, Holdings())
        assert second.outcome is SessionOutcome.ALREADY_ACTIVE
        assert second.effects == ()
        stored = manager.get_session("u1")
        assert stored == first.session
        assert stored is not None and stored.saved_state == holdings

    def test_privileged_session_is_unlimited(self, manager: SessionManager, clock) -> None:
        result = manager.start("admin", OperatingMode.SURVIVAL, Holdings(), is_privileged=True)
        assert result.ok
        assert result.session is not None and result.session.unlimited
        clock.advance(minutes=10**6)
        assert manager.is_active("admin") is True
        assert manager.remaining_seconds("admin") == UNLIMITED_SECONDS

    def test_uses_injected_empty_store(self, clock) -> None:
        store = SessionStore()
        manager = SessionManager(Settings(), store=store, clock=clock)
        manager.start("u1", OperatingMode.SURVIVAL, Holdings())
        assert store.has("u1")

    def test_custom_tool_and_mode(self, clock) -> None:
        settings = Settings(tool_item="golden_shovel", elevated_mode=OperatingMode.ADVENTURE)
        manager = SessionManager(settings, clock=clock)
        result = manager.start("u1", OperatingMode.SURVIVAL, Holdings())
        assert GrantItem("golden_shovel", 1) in result.effects
        assert SetMode(OperatingMode.ADVENTURE) in result.effects


# ---------------------------------------------------------------------------
# remaining time
# ---------------------------------------------------------------------------


class TestRemainingSeconds:
    @pytest.mark.parametrize("elapsed_seconds", [0, 1, 59, 600, 3599])
    def test_counts_down(self, manager: SessionManager, clock, elapsed_seconds: int) -> None:
        manager.start("u1", OperatingMode.SURVIVAL, Holdings())
        clock.advance(seconds=elapsed_seconds)
        assert manager.remaining_seconds("u1") == 3600 - elapsed_seconds

    def test_zero_and_inactive_at_end(self, manager: SessionManager, clock) -> None:
        manager.start("u1", OperatingMode.SURVIVAL, Holdings())
        clock.advance(minutes=60)
        assert manager.remaining_seconds("u1") == 0
        assert manager.is_active("u1") is False

    def test_zero_without_session(self, manager: SessionManager) -> None:
        assert manager.remaining_seconds("nobody") == 0


# ---------------------------------------------------------------------------
# end
# ---------------------------------------------------------------------------


class TestEnd:
    def test_not_active(self, manager: SessionManager) -> None:
        result = manager.end("u1")
        assert result.outcome is SessionOutcome.NOT_ACTIVE
        assert result.effects == ()

    def test_end_effects(self, manager: SessionManager, holdings: Holdings) -> None:
        manager.start("u1", OperatingMode.ADVENTURE, holdings)
        result = manager.end("u1")
        assert result.ok
        assert list(result.effects) == [
            ClearHoldings(),
            RestoreHoldings(holdings),
            SetMode(OperatingMode.ADVENTURE),
        ]
        assert manager.is_active("u1") is False

    def test_prior_elevated_mode_restores_baseline(self, manager: SessionManager) -> None:
        manager.start("u1", OperatingMode.CREATIVE, Holdings())
        result = manager.end("u1")
        assert result.effects[-1] == SetMode(OperatingMode.SURVIVAL)

    def test_end_writes_cooldown(self, manager: SessionManager, clock) -> None:
        manager.start("u1", OperatingMode.SURVIVAL, Holdings())
        clock.advance(minutes=2)
        manager.end("u1")
        assert manager.store.last_end("u1") == clock.now

    @pytest.mark.parametrize("fixture_name", ["holdings", "full_holdings"])
    def test_round_trip(
        self, manager: SessionManager, request: pytest.FixtureRequest, fixture_name: str
    ) -> None:
        original: Holdings = request.getfixturevalue(fixture_name)
        manager.start("u1", OperatingMode.SURVIVAL, original)
        result = manager.end("u1")
        assert _restored_holdings(list(result.effects)) == original

    def test_full_holdings_fixture_has_forty_plus_slots(self, full_holdings: Holdings) -> None:
        assert len(full_holdings.primary) + len(full_holdings.armor) + 1 >= 41

    def test_round_trip_empty(self, manager: SessionManager) -> None:
        manager.start("u1", OperatingMode.SURVIVAL, Holdings())
        result = manager.end("u1")
        assert _restored_holdings(list(result.effects)).is_empty()


# ---------------------------------------------------------------------------
# cooldown
# ---------------------------------------------------------------------------


class TestCooldown:
    def test_restart_within_window_refused(self, manager: SessionManager, clock) -> None:
        manager.start("u1", OperatingMode.SURVIVAL, Holdings())
        manager.end("u1")
        clock.advance(minutes=2)
        result = manager.start("u1", OperatingMode.SURVIVAL, Holdings())
        assert result.outcome is SessionOutcome.ON_COOLDOWN
        assert result.cooldown_remaining_seconds == 180
        assert manager.is_on_cooldown("u1") is True
        assert manager.is_active("u1") is False

    def test_restart_after_window(self, manager: SessionManager, clock) -> None:
        manager.start("u1", OperatingMode.SURVIVAL, Holdings())
        manager.end("u1")
        clock.advance(minutes=5)
        assert manager.is_on_cooldown("u1") is False
        assert manager.start("u1", OperatingMode.SURVIVAL, Holdings()).ok

    def test_no_record_no_cooldown(self, manager: SessionManager) -> None:
        assert manager.is_on_cooldown("fresh") is False
        assert manager.cooldown_remaining_seconds("fresh") == 0

    def test_remaining_rounds_up(self, manager: SessionManager, clock) -> None:
        manager.start("u1", OperatingMode.SURVIVAL, Holdings())
        manager.end("u1")
        clock.advance(ms=500)
        assert manager.cooldown_remaining_seconds("u1") == 300

    def test_zero_cooldown_allows_immediate_restart(self, clock) -> None:
        manager = SessionManager(Settings(cooldown_minutes=0), clock=clock)
        manager.start("u1", OperatingMode.SURVIVAL, Holdings())
        manager.end("u1")
        assert manager.start("u1", OperatingMode.SURVIVAL, Holdings()).ok


# ---------------------------------------------------------------------------
# extend / listing
# ---------------------------------------------------------------------------


class TestExtend:
    def test_extend_pushes_end(self, manager: SessionManager, clock) -> None:
        manager.start("u1", OperatingMode.SURVIVAL, Holdings())
        result = manager.extend("u1", 30)
        assert result.ok
        assert manager.remaining_seconds("u1") == 90 * 60

    def test_extend_without_session(self, manager: SessionManager) -> None:
        assert manager.extend("u1", 5).outcome is SessionOutcome.NOT_ACTIVE

    @pytest.mark.parametrize("minutes", [0, -5])
    def test_non_positive_extension_rejected(
        self, manager: SessionManager, minutes: int
    ) -> None:
        manager.start("u1", OperatingMode.SURVIVAL, Holdings())
        before = manager.get_session("u1")
        result = manager.extend("u1", minutes)
        assert result.outcome is SessionOutcome.INVALID_DURATION
        assert not result.ok
        assert manager.get_session("u1") == before

    def test_extend_keeps_snapshot(self, manager: SessionManager, holdings: Holdings) -> None:
        manager.start("u1", OperatingMode.SURVIVAL, holdings)
        manager.extend("u1", 5)
        session = manager.get_session("u1")
        assert session is not None and session.saved_state == holdings


class TestListing:
    def test_list_active_in_start_order(self, manager: SessionManager) -> None:
        for user_id in ("b", "a", "c"):
            manager.start(user_id, OperatingMode.SURVIVAL, Holdings())
        assert [user_id for user_id, _ in manager.list_active()] == ["b", "a", "c"]

    def test_list_remaining(self, manager: SessionManager, clock) -> None:
        manager.start("u1", OperatingMode.SURVIVAL, Holdings())
        clock.advance(minutes=10)
        manager.start("u2", OperatingMode.SURVIVAL, Holdings(), is_privileged=True)
        assert manager.list_remaining() == [("u1", 50 * 60), ("u2", UNLIMITED_SECONDS)]

    def test_expired_sessions_not_listed(self, manager: SessionManager, clock) -> None:
        manager.start("u1", OperatingMode.SURVIVAL, Holdings())
        clock.advance(minutes=61)
        assert manager.list_active() == []
        assert manager.list_remaining() == []


# ---------------------------------------------------------------------------
# evaluate_action
# ---------------------------------------------------------------------------


class TestEvaluateAction:
    def test_no_session_always_allowed(self, manager: SessionManager) -> None:
        verdict = manager.evaluate_action("u1", ActionRequest(ActionKind.DROP))
        assert verdict.allowed

    def test_blacklisted_item_denied_in_session(self, manager: SessionManager) -> None:
        manager.start("u1", OperatingMode.SURVIVAL, Holdings())
        verdict = manager.evaluate_action(
            "u1", ActionRequest(ActionKind.PLACE, item=ItemStack(type="tnt"))
        )
        assert not verdict.allowed
        assert verdict.reason is DenyReason.ILLEGAL_ITEM

    def test_plain_item_allowed_in_session(self, manager: SessionManager) -> None:
        manager.start("u1", OperatingMode.SURVIVAL, Holdings())
        verdict = manager.evaluate_action(
            "u1", ActionRequest(ActionKind.PLACE, item=ItemStack(type="stone"))
        )
        assert verdict.allowed

    def test_elapsed_but_unswept_session_still_restricted(
        self, manager: SessionManager, clock
    ) -> None:
        manager.start("u1", OperatingMode.SURVIVAL, Holdings())
        clock.advance(minutes=61)
        verdict = manager.evaluate_action("u1", ActionRequest(ActionKind.DROP))
        assert not verdict.allowed


# ---------------------------------------------------------------------------
# reconcile
# ---------------------------------------------------------------------------


class TestReconcile:
    def test_ends_exactly_the_expired(self, manager: SessionManager, clock, presence) -> None:
        for user_id in ("a", "b", "c"):
            manager.start(user_id, OperatingMode.SURVIVAL, Holdings())
        clock.advance(minutes=30)
        for user_id in ("d", "e"):
            manager.start(user_id, OperatingMode.SURVIVAL, Holdings())
        clock.advance(minutes=30)
        presence.online.update({"a", "b", "c", "d", "e"})

        report = manager.reconcile()

        assert sorted(report.ended) == ["a", "b", "c"]
        assert report.deferred == []
        assert [user_id for user_id, _ in manager.list_active()] == ["d", "e"]
        cooldowns = manager.store.cooldowns()
        assert cooldowns == {"a": clock.now, "b": clock.now, "c": clock.now}

    def test_untouched_sessions_keep_end_time(self, manager: SessionManager, clock) -> None:
        manager.start("a", OperatingMode.SURVIVAL, Holdings())
        before = manager.get_session("a")
        clock.advance(minutes=10)
        manager.reconcile()
        assert manager.get_session("a") == before

    def test_online_user_restored_through_sink(
        self, manager: SessionManager, clock, presence, sink, holdings: Holdings
    ) -> None:
        manager.start("u1", OperatingMode.ADVENTURE, holdings)
        presence.online.add("u1")
        clock.advance(minutes=60)
        manager.reconcile()
        assert sink.applied == [
            (
                "u1",
                [
                    ClearHoldings(),
                    RestoreHoldings(holdings),
                    SetMode(OperatingMode.ADVENTURE),
                    Notify(NoticeKind.SESSION_EXPIRED),
                ],
            )
        ]
        assert manager.has_pending_restore("u1") is False

    def test_offline_user_deferred(
        self, manager: SessionManager, clock, sink, holdings: Holdings
    ) -> None:
        manager.start("u1", OperatingMode.SURVIVAL, holdings)
        clock.advance(minutes=60)
        report = manager.reconcile()
        assert report.deferred == ["u1"]
        assert sink.applied == []
        assert manager.has_pending_restore("u1")
        assert manager.store.last_end("u1") == clock.now

    def test_sink_failure_defers(
        self, manager: SessionManager, clock, presence, sink
    ) -> None:
        manager.start("u1", OperatingMode.SURVIVAL, Holdings())
        presence.online.add("u1")
        sink.fail_for.add("u1")
        clock.advance(minutes=60)
        report = manager.reconcile()
        assert report.deferred == ["u1"]
        assert manager.has_pending_restore("u1")

    def test_failure_for_one_user_does_not_stop_sweep(self, settings, clock, sink) -> None:
        def presence(user_id: str) -> bool:
            if user_id == "broken":
                raise RuntimeError("presence lookup failed")
            return True

        manager = SessionManager(settings, clock=clock, presence=presence, sink=sink)
        for user_id in ("first", "broken", "last"):
            manager.start(user_id, OperatingMode.SURVIVAL, Holdings())
        clock.advance(minutes=60)

        report = manager.reconcile()

        assert sorted(report.ended) == ["first", "last"]
        assert "broken" in report.failed

    def test_without_sink_everything_deferred(self, settings, clock, presence) -> None:
        manager = SessionManager(settings, clock=clock, presence=presence)
        presence.online.add("u1")
        manager.start("u1", OperatingMode.SURVIVAL, Holdings())
        clock.advance(minutes=60)
        assert manager.reconcile().deferred == ["u1"]

    def test_unlimited_never_swept(self, manager: SessionManager, clock) -> None:
        manager.start("admin", OperatingMode.SURVIVAL, Holdings(), is_privileged=True)
        clock.advance(minutes=10**5)
        report = manager.reconcile()
        assert report.expired_count == 0
        assert manager.is_active("admin")


# ---------------------------------------------------------------------------
# handle_connect
# ---------------------------------------------------------------------------


class TestHandleConnect:
    def test_applies_pending_restore_once(
        self, manager: SessionManager, clock, holdings: Holdings
    ) -> None:
        manager.start("u1", OperatingMode.ADVENTURE, holdings)
        clock.advance(minutes=60)
        manager.reconcile()

        effects = manager.handle_connect("u1")

        assert effects == [
            ClearHoldings(),
            RestoreHoldings(holdings),
            SetMode(OperatingMode.ADVENTURE),
            Notify(NoticeKind.EXPIRED_WHILE_OFFLINE),
        ]
        assert manager.handle_connect("u1") == []

    def test_expires_elapsed_session(
        self, manager: SessionManager, clock, holdings: Holdings
    ) -> None:
        manager.start("u1", OperatingMode.SURVIVAL, holdings)
        clock.advance(minutes=61)
        effects = manager.handle_connect("u1")
        assert RestoreHoldings(holdings) in effects
        assert effects[-1] == Notify(NoticeKind.EXPIRED_WHILE_OFFLINE)
        assert manager.get_session("u1") is None
        assert manager.store.last_end("u1") == clock.now

    def test_resumes_live_session(self, manager: SessionManager, clock) -> None:
        manager.start("u1", OperatingMode.SURVIVAL, Holdings())
        clock.advance(minutes=5)
        assert manager.handle_connect("u1") == [
            SetMode(OperatingMode.CREATIVE),
            Notify(NoticeKind.SESSION_RESUMED),
        ]
        assert manager.is_active("u1")

    def test_unknown_user(self, manager: SessionManager) -> None:
        assert manager.handle_connect("stranger") == []

    def test_start_consumes_pending_restore(self, clock, holdings: Holdings) -> None:
        manager = SessionManager(Settings(cooldown_minutes=0), clock=clock)
        manager.start("u1", OperatingMode.ADVENTURE, holdings)
        clock.advance(minutes=60)
        manager.reconcile()

        result = manager.start("u1", OperatingMode.CREATIVE, Holdings())

        assert result.ok
        assert result.session is not None
        assert result.session.saved_state == holdings
        assert result.session.prior_mode is OperatingMode.ADVENTURE
        assert manager.has_pending_restore("u1") is False


# ---------------------------------------------------------------------------
# reload
# ---------------------------------------------------------------------------


class TestReload:
    def test_reload_changes_policy_not_timing(self, manager: SessionManager, clock) -> None:
        manager.start("u1", OperatingMode.SURVIVAL, Holdings())
        before = manager.get_session("u1")
        place_stone = ActionRequest(ActionKind.PLACE, item=ItemStack(type="stone"))
        assert manager.evaluate_action("u1", place_stone).allowed

        manager.reload(Settings(restriction_mode="whitelist", whitelist=["oak_planks"]))

        assert not manager.evaluate_action("u1", place_stone).allowed
        assert manager.get_session("u1") == before
        assert manager.remaining_seconds("u1") == 3600

    def test_reload_uses_loader(self, clock) -> None:
        calls: list[int] = []

        def loader() -> Settings:
            calls.append(1)
            return Settings(blacklist=["stone"])

        manager = SessionManager(Settings(), clock=clock, settings_loader=loader)
        assert manager.reload() is True
        assert calls == [1]
        assert manager.policy.is_legal(ItemStack(type="stone")) is False

    def test_reload_failure_keeps_settings(self, clock) -> None:
        def loader() -> Settings:
            raise SettingsError("config.yml", "broken")

        original = Settings(blacklist=["tnt"])
        manager = SessionManager(original, clock=clock, settings_loader=loader)
        assert manager.reload() is False
        assert manager.settings == original

    def test_reload_after_shutdown_keeps_timer_stopped(
        self, manager: SessionManager, clock
    ) -> None:
        manager.start("u1", OperatingMode.SURVIVAL, Holdings())
        manager.start_background()
        assert manager.shutdown() is True

        clock.advance(minutes=61)
        assert manager.reload(Settings(check_interval_seconds=0.01)) is True

        assert manager.background_running is False
        assert manager.get_session("u1") is not None
        assert manager.has_pending_restore("u1") is False

    def test_reload_without_timer_does_not_start_one(self, manager: SessionManager) -> None:
        manager.reload(Settings(check_interval_seconds=5))
        assert manager.background_running is False

    def test_reload_restarts_timer_with_new_interval(self, manager: SessionManager) -> None:
        manager.start_background()
        try:
            manager.reload(Settings(check_interval_seconds=7))
            assert manager.background_running
            assert manager._loop is not None
            assert manager._loop.interval_seconds == 7
        finally:
            manager.stop_background()
        assert manager.background_running is False


# ---------------------------------------------------------------------------
# persistence
# ---------------------------------------------------------------------------


class _BrokenBackend(InMemoryBackend):
    def save(self, key: str, payload: str) -> None:
        raise OSError("disk full")

    def exists(self, key: str) -> bool:
        raise OSError("disk gone")


class TestPersistence:
    def _restart(self, settings, clock, storage) -> SessionManager:
        manager = SessionManager(
            settings, repository=SnapshotRepository(storage), clock=clock
        )
        manager.restore_from_storage()
        return manager

    def test_unexpired_sessions_survive_restart(
        self, manager: SessionManager, settings, clock, storage, holdings: Holdings
    ) -> None:
        manager.start("u1", OperatingMode.ADVENTURE, holdings)
        clock.advance(minutes=10)
        manager.start("u2", OperatingMode.SURVIVAL, Holdings())
        assert manager.shutdown() is True

        clock.advance(minutes=5)
        revived = self._restart(settings, clock, storage)

        assert revived.remaining_seconds("u1") == 45 * 60
        assert revived.remaining_seconds("u2") == 55 * 60
        session = revived.get_session("u1")
        assert session is not None
        assert session.saved_state == holdings
        assert session.prior_mode is OperatingMode.ADVENTURE

    def test_expired_sessions_discarded(
        self, manager: SessionManager, settings, clock, storage
    ) -> None:
        manager.start("old", OperatingMode.SURVIVAL, Holdings())
        clock.advance(minutes=30)
        manager.start("new", OperatingMode.SURVIVAL, Holdings())
        manager.persist()

        clock.advance(minutes=40)
        revived = SessionManager(settings, repository=SnapshotRepository(storage), clock=clock)
        report = revived.restore_from_storage()

        assert report.discarded == ["old"]
        assert report.restored == ["new"]
        assert revived.get_session("old") is None
        assert revived.handle_connect("old") == []

    def test_cooldowns_and_pending_survive_restart(
        self, manager: SessionManager, settings, clock, storage, holdings: Holdings
    ) -> None:
        manager.start("cool", OperatingMode.SURVIVAL, Holdings())
        manager.end("cool")
        manager.start("away", OperatingMode.SURVIVAL, holdings)
        clock.advance(minutes=60)
        manager.reconcile()
        manager.persist()

        revived = self._restart(settings, clock, storage)

        assert revived.store.last_end("cool") is not None
        assert revived.has_pending_restore("away")
        assert RestoreHoldings(holdings) in revived.handle_connect("away")

    def test_unlimited_session_survives_restart(
        self, manager: SessionManager, settings, clock, storage
    ) -> None:
        manager.start("admin", OperatingMode.SURVIVAL, Holdings(), is_privileged=True)
        manager.persist()
        clock.advance(minutes=10**4)
        revived = self._restart(settings, clock, storage)
        assert revived.remaining_seconds("admin") == UNLIMITED_SECONDS

    def test_failed_save_is_reported_not_raised(self, settings, clock) -> None:
        manager = SessionManager(
            settings, repository=SnapshotRepository(_BrokenBackend()), clock=clock
        )
        manager.start("u1", OperatingMode.SURVIVAL, Holdings())
        assert manager.shutdown() is False
        assert manager.is_active("u1")

    def test_failed_load_keeps_memory_state(self, settings, clock) -> None:
        manager = SessionManager(
            settings, repository=SnapshotRepository(_BrokenBackend()), clock=clock
        )
        manager.start("u1", OperatingMode.SURVIVAL, Holdings())
        report = manager.restore_from_storage()
        assert report.failed is True
        assert manager.is_active("u1")

    def test_no_repository(self, settings, clock) -> None:
        manager = SessionManager(settings, clock=clock)
        assert manager.persist() is False
        assert manager.restore_from_storage().restored == []
