"""Gameflow Tracker: current phase, champion lock detection, ready-check accept.

Phase and session updates arrive as connector signals; a 1s poll of the
champion-select session runs alongside the push events for as long as the
phase is ChampSelect, because the client does not deliver every event.
Every parsed snapshot is re-published as ``session-updated`` for the team
composition tracker.
"""

import asyncio
import logging
from typing import Any

from .connector import ConnectionManager
from .lcu_constants import (
    EVENT_CHAMP_SELECT_SESSION,
    EVENT_GAMEFLOW_PHASE,
    EVENT_LOBBY,
    PHASE_CHAMP_SELECT,
    PHASE_NONE,
    PHASE_READY_CHECK,
    READY_CHECK_GRACE,
    SESSION_POLL_INTERVAL,
    SETTING_AUTO_ACCEPT_ENABLED,
    SIG_CHAMP_SELECT_SESSION,
    SIG_CHAMPION_SELECTED,
    SIG_CONNECTED,
    SIG_DISCONNECTED,
    SIG_GAMEFLOW_PHASE,
    SIG_LOBBY_SESSION,
    SIG_PHASE_CHANGED,
    SIG_QUEUE_ID_DETECTED,
    SIG_READY_CHECK_ACCEPTED,
    SIG_SESSION_UPDATED,
)
from .models import ChampSelectSession, parse_session
from .signals import SignalEmitter, log_task_failure

logger = logging.getLogger(__name__)


def locked_champion_id(session: ChampSelectSession) -> int | None:
    """Champion the local player has actually locked in, or None.

    A non-zero championId on the team entry is not enough (hovering sets it
    too); a completed pick action by the local player for that champion is
    required.
    """
    me = session.local_player()
    if me is None or me.champion_id <= 0:
        return None
    for action in session.iter_actions():
        if (
            action.is_pick
            and action.actor_cell_id == session.local_player_cell_id
            and action.champion_id == me.champion_id
            and action.completed
        ):
            return me.champion_id
    return None


def lobby_queue_id(lobby: Any) -> int | None:
    if not isinstance(lobby, dict):
        return None
    config = lobby.get("gameConfig")
    if not isinstance(config, dict):
        return None
    queue_id = config.get("queueId")
    if isinstance(queue_id, int) and queue_id > 0:
        return queue_id
    return None


class GameflowTracker(SignalEmitter):
    def __init__(
        self,
        connector: ConnectionManager,
        settings: Any = None,
        *,
        session_poll_interval: float = SESSION_POLL_INTERVAL,
        ready_check_grace: float = READY_CHECK_GRACE,
    ):
        super().__init__()
        self.connector = connector
        self.settings = settings
        self.session_poll_interval = session_poll_interval
        self.ready_check_grace = ready_check_grace

        self._phase = PHASE_NONE
        self._last_locked_champion_id: int | None = None
        self._queue_id: int | None = None
        self._monitoring = False
        self._tasks: set[asyncio.Task] = set()
        self._session_poll_task: asyncio.Task | None = None
        self._ready_check_task: asyncio.Task | None = None

        connector.on(SIG_GAMEFLOW_PHASE, self._on_phase_event)
        connector.on(SIG_CHAMP_SELECT_SESSION, self.handle_session)
        connector.on(SIG_LOBBY_SESSION, self.handle_lobby)
        connector.on(SIG_CONNECTED, self._on_connected)
        connector.on(SIG_DISCONNECTED, self._on_disconnected)

    @property
    def current_phase(self) -> str:
        return self._phase

    @property
    def queue_id(self) -> int | None:
        return self._queue_id

    @property
    def monitoring(self) -> bool:
        return self._monitoring

    def is_in_champ_select(self) -> bool:
        return self._phase == PHASE_CHAMP_SELECT

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(log_task_failure)
        return task

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        self._monitoring = True
        if self.connector.is_connected():
            self._spawn(self.resume())

    async def resume(self) -> None:
        """(Re-)subscribe and poll current state; run after every connect."""
        await self.connector.subscribe(EVENT_GAMEFLOW_PHASE)
        await self.connector.subscribe(EVENT_LOBBY)
        phase = await self.connector.get_gameflow_phase()
        self.handle_phase_change(phase)
        lobby = await self.connector.get_lobby_session()
        if lobby:
            self.handle_lobby(lobby)

    def stop(self) -> None:
        self._monitoring = False
        self._cancel_tasks()
        if self.connector.is_connected():
            for event_name in (EVENT_GAMEFLOW_PHASE, EVENT_LOBBY, EVENT_CHAMP_SELECT_SESSION):
                self._spawn(self.connector.unsubscribe(event_name))
        self._phase = PHASE_NONE
        self._last_locked_champion_id = None
        self._queue_id = None

    def _cancel_tasks(self) -> None:
        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()
        self._session_poll_task = None
        self._ready_check_task = None

    def _on_connected(self, _credentials: Any = None) -> None:
        if self._monitoring:
            self._spawn(self.resume())

    def _on_disconnected(self) -> None:
        self._cancel_tasks()
        self._last_locked_champion_id = None
        self._queue_id = None
        self.handle_phase_change(PHASE_NONE)

    # ------------------------------------------------------------------
    # Phase handling
    # ------------------------------------------------------------------

    def _on_phase_event(self, phase: Any) -> None:
        if isinstance(phase, str) and phase:
            self.handle_phase_change(phase)

    def handle_phase_change(self, phase: str) -> None:
        previous = self._phase
        if phase == previous:
            return
        self._phase = phase
        logger.info("Gameflow phase %s -> %s", previous, phase)

        if previous == PHASE_CHAMP_SELECT:
            self._stop_champ_select_monitoring()
        if previous == PHASE_READY_CHECK and self._ready_check_task is not None:
            self._ready_check_task.cancel()
            self._ready_check_task = None

        self.emit(SIG_PHASE_CHANGED, phase, previous)

        if phase == PHASE_CHAMP_SELECT:
            self._session_poll_task = self._spawn(self._champ_select_monitoring())
        elif phase == PHASE_READY_CHECK and self._auto_accept_enabled():
            self._ready_check_task = self._spawn(self._accept_ready_check_after_grace())

    def _auto_accept_enabled(self) -> bool:
        return bool(self.settings is not None and self.settings.get(SETTING_AUTO_ACCEPT_ENABLED))

    async def _accept_ready_check_after_grace(self) -> None:
        await asyncio.sleep(self.ready_check_grace)
        # The check may have been answered or cancelled during the grace period
        if self._phase != PHASE_READY_CHECK:
            return
        if await self.connector.get_gameflow_phase() != PHASE_READY_CHECK:
            logger.info("Ready check no longer pending, not accepting")
            return
        try:
            await self.connector.accept_ready_check()
        except Exception as exc:
            logger.warning("Failed to accept ready check: %s", exc)
            return
        self._ready_check_task = None
        logger.info("Ready check accepted")
        self.emit(SIG_READY_CHECK_ACCEPTED)

    # ------------------------------------------------------------------
    # Champion select
    # ------------------------------------------------------------------

    async def _champ_select_monitoring(self) -> None:
        await self.connector.subscribe(EVENT_CHAMP_SELECT_SESSION)
        while self._phase == PHASE_CHAMP_SELECT:
            raw = await self.connector.get_champ_select_session()
            if raw and self._phase == PHASE_CHAMP_SELECT:
                self.handle_session(raw)
            await asyncio.sleep(self.session_poll_interval)

    def _stop_champ_select_monitoring(self) -> None:
        if self._session_poll_task is not None:
            self._session_poll_task.cancel()
            self._session_poll_task = None
        if self.connector.is_connected():
            self._spawn(self.connector.unsubscribe(EVENT_CHAMP_SELECT_SESSION))
        self._last_locked_champion_id = None

    def handle_session(self, raw: Any) -> None:
        if self._phase != PHASE_CHAMP_SELECT:
            return
        session = parse_session(raw)
        if session is None:
            return
        self.emit(SIG_SESSION_UPDATED, session)

        champion_id = locked_champion_id(session)
        if champion_id is None or champion_id == self._last_locked_champion_id:
            return
        self._last_locked_champion_id = champion_id
        logger.info("Champion %d locked in", champion_id)
        self.emit(SIG_CHAMPION_SELECTED, {
            "championId": champion_id,
            "isLocked": True,
            "session": session,
            "queueId": self._queue_id,
        })

    # ------------------------------------------------------------------
    # Lobby
    # ------------------------------------------------------------------

    def handle_lobby(self, lobby: Any) -> None:
        queue_id = lobby_queue_id(lobby)
        if queue_id is None or queue_id == self._queue_id:
            return
        self._queue_id = queue_id
        logger.info("Queue %d detected in lobby", queue_id)
        self.emit(SIG_QUEUE_ID_DETECTED, {"queueId": queue_id})
