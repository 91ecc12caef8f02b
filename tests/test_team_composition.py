"""Tests for lcu_core.team_composition -- derived state and smart-apply checkpoints."""

import pytest
from hypothesis import given, settings as hypothesis_settings, strategies as st

from lcu_core.models import parse_session
from lcu_core.signals import SignalEmitter
from lcu_core.team_composition import (
    TeamCompositionTracker,
    checkpoint_tier,
    clamp_trigger_ms,
    compute_composition,
)
from tests.conftest import Recorder, action, make_session, member

LINEUP = [266, 103, 84, 12, 32]


def _session(time_left, *, lineup=LINEUP, timer_phase="FINALIZATION", actions=None):
    team = [member(i, lineup[i] if i < len(lineup) else 0) for i in range(5)]
    return parse_session(make_session(
        my_team=team,
        actions=actions,
        timer_phase=timer_phase,
        time_left=time_left,
    ))


def _tracker(trigger_time_ms=15_000, settings=None):
    gameflow = SignalEmitter()
    tracker = TeamCompositionTracker(gameflow, settings, trigger_time_ms=trigger_time_ms)
    tracker.start()
    return gameflow, tracker


# ---------------------------------------------------------------------------
# compute_composition
# ---------------------------------------------------------------------------


class TestComputeComposition:

    def test_full_team_in_finalization(self):
        comp = compute_composition(_session(12_000))
        assert comp.champion_ids == LINEUP
        assert comp.all_locked is True
        assert comp.in_finalization is True
        assert comp.time_left_ms == 12_000

    def test_unpicked_members_are_excluded(self):
        comp = compute_composition(_session(30_000, lineup=[266, 0, 84], timer_phase="BAN_PICK"))
        assert comp.champion_ids == [266, 84]
        assert comp.all_locked is False
        assert comp.in_finalization is False

    def test_finalization_inferred_from_completed_actions(self):
        actions = [[action(i, i, "pick", LINEUP[i], completed=True) for i in range(5)]]
        comp = compute_composition(_session(8_000, timer_phase="", actions=actions))
        assert comp.in_finalization is True

    def test_no_timer(self):
        raw = make_session(my_team=[member(0, 1)])
        raw["timer"] = None
        comp = compute_composition(parse_session(raw))
        assert comp.time_left_ms == 0


class TestCheckpointHelpers:

    @pytest.mark.parametrize("time_left, tier", [
        (25_000, 20_000),
        (20_000, 20_000),
        (16_000, 15_000),
        (14_000, 10_000),
        (9_000, 5_000),
        (5_000, 5_000),
        (4_999, None),
        (0, None),
    ])
    def test_checkpoint_tier(self, time_left, tier):
        assert checkpoint_tier(time_left) == tier

    @pytest.mark.parametrize("value, expected", [
        (1_000, 5_000),
        (15_000, 15_000),
        (99_000, 30_000),
        ("soon", 15_000),
        (None, 15_000),
        (True, 15_000),
    ])
    def test_clamp_trigger(self, value, expected):
        assert clamp_trigger_ms(value) == expected

    def test_trigger_from_settings_in_seconds(self, settings):
        _, tracker = _tracker(trigger_time_ms=None, settings=settings)
        assert tracker.trigger_time_ms == 15_000
        settings.set("autoApplyTriggerTime", 20)
        assert tracker.trigger_time_ms == 20_000
        settings.set("autoApplyTriggerTime", 2)
        assert tracker.trigger_time_ms == 5_000
        settings.set("autoApplyTriggerTime", 60)
        assert tracker.trigger_time_ms == 30_000


# ---------------------------------------------------------------------------
# team-composition-updated
# ---------------------------------------------------------------------------


class TestCompositionUpdated:

    def test_identical_snapshots_emit_once(self):
        gameflow, tracker = _tracker()
        updates = Recorder(tracker, "team-composition-updated")
        gameflow.emit("session-updated", _session(25_000))
        gameflow.emit("session-updated", _session(25_000))
        assert len(updates) == 1

    def test_timer_tick_is_a_new_composition(self):
        gameflow, tracker = _tracker()
        updates = Recorder(tracker, "team-composition-updated")
        gameflow.emit("session-updated", _session(25_000))
        gameflow.emit("session-updated", _session(24_000))
        assert len(updates) == 2

    def test_stopped_tracker_ignores_sessions(self):
        gameflow, tracker = _tracker()
        tracker.stop()
        updates = Recorder(tracker, "team-composition-updated")
        gameflow.emit("session-updated", _session(25_000))
        assert len(updates) == 0
        assert tracker.current_composition() is None


# ---------------------------------------------------------------------------
# ready-for-smart-apply
# ---------------------------------------------------------------------------


class TestReadyForSmartApply:

    def test_checkpoint_sequence_fires_twice(self):
        gameflow, tracker = _tracker(trigger_time_ms=15_000)
        ready = Recorder(tracker, "ready-for-smart-apply")
        for time_left in (21_000, 16_000, 14_000, 9_000, 4_000):
            gameflow.emit("session-updated", _session(time_left))
        assert [c[0].time_left_ms for c in ready.calls] == [14_000, 9_000]

    def test_same_tier_does_not_fire_again(self):
        gameflow, tracker = _tracker(trigger_time_ms=15_000)
        ready = Recorder(tracker, "ready-for-smart-apply")
        for time_left in (14_000, 13_000, 12_000, 11_000, 10_000):
            gameflow.emit("session-updated", _session(time_left))
        assert len(ready) == 1

    def test_lineup_change_resets_checkpoints(self):
        gameflow, tracker = _tracker(trigger_time_ms=15_000)
        ready = Recorder(tracker, "ready-for-smart-apply")
        gameflow.emit("session-updated", _session(14_000))
        swapped = [103, 266, 84, 12, 32]
        gameflow.emit("session-updated", _session(13_000, lineup=swapped))
        assert len(ready) == 2
        assert ready.calls[1][0].champion_ids == swapped

    def test_nothing_fires_above_trigger_time(self):
        gameflow, tracker = _tracker(trigger_time_ms=10_000)
        ready = Recorder(tracker, "ready-for-smart-apply")
        gameflow.emit("session-updated", _session(14_000))
        assert len(ready) == 0
        gameflow.emit("session-updated", _session(9_000))
        assert len(ready) == 1

    def test_no_champions_never_fires(self):
        gameflow, tracker = _tracker()
        ready = Recorder(tracker, "ready-for-smart-apply")
        team = [member(i, 0) for i in range(5)]
        raw = make_session(
            my_team=team,
            actions=[[action(1, 0, "pick", 0, in_progress=True)]],
            timer_phase="BAN_PICK",
            time_left=10_000,
        )
        gameflow.emit("session-updated", parse_session(raw))
        assert len(ready) == 0

    def test_small_lobby_fires(self):
        gameflow, tracker = _tracker()
        ready = Recorder(tracker, "ready-for-smart-apply")
        raw = make_session(
            my_team=[member(0, 266), member(1, 103)],
            actions=[[action(1, 0, "pick", 266, in_progress=True)]],
            timer_phase="BAN_PICK",
            time_left=10_000,
        )
        gameflow.emit("session-updated", parse_session(raw))
        assert len(ready) == 1

    def test_zero_time_left_never_fires(self):
        gameflow, tracker = _tracker()
        ready = Recorder(tracker, "ready-for-smart-apply")
        gameflow.emit("session-updated", _session(0))
        assert len(ready) == 0

    def test_is_ready_for_smart_apply(self):
        gameflow, tracker = _tracker()
        assert tracker.is_ready_for_smart_apply() is False
        gameflow.emit("session-updated", _session(10_000))
        assert tracker.is_ready_for_smart_apply() is True

    @hypothesis_settings(max_examples=200)
    @given(st.lists(st.integers(min_value=-1_000, max_value=35_000), max_size=40))
    def test_at_most_one_fire_per_tier(self, times):
        gameflow, tracker = _tracker(trigger_time_ms=30_000)
        ready = Recorder(tracker, "ready-for-smart-apply")
        for time_left in times:
            gameflow.emit("session-updated", _session(time_left))
        tiers = [checkpoint_tier(c[0].time_left_ms) for c in ready.calls]
        assert len(tiers) == len(set(tiers))
        # Every fire after the first moves strictly down a tier
        later = tiers[1:]
        assert all(t is not None for t in later)
        assert later == sorted(later, reverse=True)


# ---------------------------------------------------------------------------
# team-reset
# ---------------------------------------------------------------------------


class TestTeamReset:

    def test_leaving_champ_select_resets(self):
        gameflow, tracker = _tracker()
        resets = Recorder(tracker, "team-reset")
        ready = Recorder(tracker, "ready-for-smart-apply")
        gameflow.emit("phase-changed", "ChampSelect", "ReadyCheck")
        gameflow.emit("session-updated", _session(14_000))
        gameflow.emit("phase-changed", "InProgress", "ChampSelect")

        assert resets.calls == [("InProgress",)]
        assert tracker.current_composition() is None
        assert tracker.checkpoint_state.has_fired_for_phase is False

        # A fresh champ select fires again for the same lineup
        gameflow.emit("phase-changed", "ChampSelect", "InProgress")
        gameflow.emit("session-updated", _session(14_000))
        assert len(ready) == 2

    def test_unrelated_phase_changes_do_not_reset(self):
        gameflow, tracker = _tracker()
        resets = Recorder(tracker, "team-reset")
        gameflow.emit("phase-changed", "Lobby", "None")
        gameflow.emit("phase-changed", "Matchmaking", "Lobby")
        assert len(resets) == 0
