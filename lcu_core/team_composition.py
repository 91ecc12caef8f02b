"""Team Composition Tracker: derived team state and the smart-apply trigger.

Fed only by the gameflow tracker's ``session-updated`` and ``phase-changed``
signals. Two kinds of memory are kept per champion-select phase:

* the last emitted composition (full-value comparison suppresses duplicate
  ``team-composition-updated`` emissions), and
* checkpoint state for ``ready-for-smart-apply``, keyed on the champion
  lineup so that timer ticks alone never reset it.

Checkpoint tiers: the remaining time falls into the tier of the highest
checkpoint it is still at or above (20s, 15s, 10s, 5s); below 5s there is no
tier. The first fire for a lineup only needs the gating conditions; every
later fire must land in a strictly lower tier than the previous one, so a
lineup fires at most once per tier.
"""

import logging
from dataclasses import dataclass
from typing import Any

from .lcu_constants import (
    PHASE_CHAMP_SELECT,
    SETTING_AUTO_APPLY_TRIGGER_TIME,
    SIG_PHASE_CHANGED,
    SIG_READY_FOR_SMART_APPLY,
    SIG_SESSION_UPDATED,
    SIG_TEAM_COMPOSITION_UPDATED,
    SIG_TEAM_RESET,
    TIMER_PHASE_FINALIZATION,
)
from .models import ChampSelectSession, TeamComposition
from .signals import SignalEmitter

logger = logging.getLogger(__name__)

CHECKPOINTS_MS = (20_000, 15_000, 10_000, 5_000)
TEAM_SIZE = 5
MIN_TRIGGER_MS = 5_000
MAX_TRIGGER_MS = 30_000
DEFAULT_TRIGGER_MS = 15_000


def compute_composition(session: ChampSelectSession) -> TeamComposition:
    champion_ids = [m.champion_id for m in session.my_team if m.champion_id > 0]
    all_locked = len(champion_ids) == TEAM_SIZE
    timer = session.timer
    timer_finalizing = timer is not None and timer.phase == TIMER_PHASE_FINALIZATION
    # The timer phase is sometimes stale or missing in custom lobbies
    finalizing = timer_finalizing or (all_locked and session.all_actions_completed())
    return TeamComposition(
        champion_ids=champion_ids,
        all_locked=all_locked,
        in_finalization=finalizing,
        time_left_ms=timer.adjusted_time_left_in_phase if timer is not None else 0,
    )


def checkpoint_tier(time_left_ms: int) -> int | None:
    for checkpoint in CHECKPOINTS_MS:
        if time_left_ms >= checkpoint:
            return checkpoint
    return None


def clamp_trigger_ms(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_TRIGGER_MS
    return int(min(max(value, MIN_TRIGGER_MS), MAX_TRIGGER_MS))


@dataclass
class CheckpointState:
    has_fired_for_phase: bool = False
    last_fired_checkpoint_ms: int = 0

    def reset(self) -> None:
        self.has_fired_for_phase = False
        self.last_fired_checkpoint_ms = 0


class TeamCompositionTracker(SignalEmitter):
    def __init__(self, gameflow: SignalEmitter, settings: Any = None, *, trigger_time_ms: int | None = None):
        super().__init__()
        self.gameflow = gameflow
        self.settings = settings
        self._trigger_override = trigger_time_ms
        self._monitoring = False
        self._session: ChampSelectSession | None = None
        self._last_emitted: TeamComposition | None = None
        self._lineup: tuple[int, ...] | None = None
        self._checkpoint = CheckpointState()

        gameflow.on(SIG_SESSION_UPDATED, self._on_session)
        gameflow.on(SIG_PHASE_CHANGED, self._on_phase_changed)

    @property
    def trigger_time_ms(self) -> int:
        if self._trigger_override is not None:
            return clamp_trigger_ms(self._trigger_override)
        seconds = self.settings.get(SETTING_AUTO_APPLY_TRIGGER_TIME) if self.settings is not None else None
        if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
            return DEFAULT_TRIGGER_MS
        return clamp_trigger_ms(seconds * 1000)

    @property
    def checkpoint_state(self) -> CheckpointState:
        return self._checkpoint

    def start(self) -> None:
        self._monitoring = True

    def stop(self) -> None:
        self._monitoring = False
        self._reset()

    def _reset(self) -> None:
        self._session = None
        self._last_emitted = None
        self._lineup = None
        self._checkpoint.reset()

    def _on_phase_changed(self, phase: str, previous: str | None = None) -> None:
        if phase == PHASE_CHAMP_SELECT:
            return
        if previous == PHASE_CHAMP_SELECT or self._session is not None:
            self._reset()
            self.emit(SIG_TEAM_RESET, phase)

    def _on_session(self, session: ChampSelectSession) -> None:
        if self._monitoring:
            self.handle_session(session)

    def handle_session(self, session: ChampSelectSession) -> None:
        self._session = session
        composition = compute_composition(session)
        if composition == self._last_emitted:
            return

        lineup = tuple(composition.champion_ids)
        if lineup != self._lineup:
            if self._lineup is not None:
                logger.debug("Team lineup changed, resetting checkpoints")
            self._lineup = lineup
            self._checkpoint.reset()

        self._last_emitted = composition
        self.emit(SIG_TEAM_COMPOSITION_UPDATED, composition)
        self._maybe_fire(composition, session)

    def _maybe_fire(self, composition: TeamComposition, session: ChampSelectSession) -> None:
        if not composition.champion_ids:
            return
        time_left = composition.time_left_ms
        trigger = self.trigger_time_ms
        if time_left <= 0 or time_left > trigger:
            return

        small_lobby = len(composition.champion_ids) < TEAM_SIZE
        if not (
            composition.in_finalization
            or composition.all_locked
            or session.all_actions_completed()
            or small_lobby
        ):
            return

        tier = checkpoint_tier(time_left)
        state = self._checkpoint
        if state.has_fired_for_phase:
            if tier is None or tier >= state.last_fired_checkpoint_ms:
                return

        state.has_fired_for_phase = True
        state.last_fired_checkpoint_ms = tier or 0
        logger.info(
            "Ready for smart apply: %d champion(s), %dms left",
            len(composition.champion_ids), time_left,
        )
        self.emit(SIG_READY_FOR_SMART_APPLY, composition)

    def current_composition(self) -> TeamComposition | None:
        if self._session is None:
            return None
        return compute_composition(self._session)

    def is_ready_for_smart_apply(self) -> bool:
        composition = self.current_composition()
        return bool(composition and composition.in_finalization and composition.champion_ids)
