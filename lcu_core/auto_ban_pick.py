"""Pick/Ban Decision Engine: automated champion picks and bans.

Polls the champion-select session on its own fast cadence, independently
of the gameflow tracker. A rejected candidate is logged and the next
eligible one is tried in the same tick; if every candidate fails, the
cadence retries the action on the next tick.
"""

import asyncio
import logging
from typing import Any, Iterator

from .connector import ConnectionManager
from .errors import LcuError, LcuRequestError
from .lcu_constants import (
    AUTO_BAN_PICK_INTERVAL,
    PATH_CHAMP_SELECT_SESSION,
    SETTING_AUTO_BAN_CHAMPIONS,
    SETTING_AUTO_BAN_ENABLED,
    SETTING_AUTO_BAN_FORCE,
    SETTING_AUTO_PICK_CHAMPIONS,
    SETTING_AUTO_PICK_ENABLED,
    SETTING_AUTO_PICK_FORCE,
    SIG_ACTION_PERFORMED,
)
from .models import ChampSelectAction, ChampSelectSession, parse_session
from .signals import SignalEmitter, log_task_failure

logger = logging.getLogger(__name__)


def _champion_list(value: Any) -> list[int]:
    if not isinstance(value, (list, tuple)):
        return []
    out = []
    for item in value:
        try:
            champion_id = int(item)
        except (TypeError, ValueError):
            continue
        if champion_id > 0:
            out.append(champion_id)
    return out


def pending_local_actions(session: ChampSelectSession) -> list[ChampSelectAction]:
    """Local player's open actions, picks before bans."""
    actions = [a for a in session.local_actions() if a.is_in_progress and not a.completed]
    # sorted() is stable, so the client's order is kept within each kind
    return sorted(actions, key=lambda a: 0 if a.is_pick else 1)


def pick_candidates(session: ChampSelectSession, priorities: list[int], force: bool) -> Iterator[int]:
    """Eligible pick candidates in priority order."""
    picked = session.picked_champion_ids(exclude_cell_id=session.local_player_cell_id)
    banned = session.banned_champion_ids()
    for champion_id in priorities:
        if champion_id in banned:
            logger.debug("Champion %d is banned, skipping", champion_id)
            continue
        if champion_id in picked:
            if not force:
                logger.debug("Champion %d already picked, skipping", champion_id)
                continue
            logger.debug("Champion %d already picked, but forcing", champion_id)
        yield champion_id


def ban_candidates(session: ChampSelectSession, priorities: list[int], force: bool) -> Iterator[int]:
    """Eligible ban candidates in priority order."""
    banned = session.banned_champion_ids()
    intents = session.teammate_intents()
    for champion_id in priorities:
        if champion_id in banned:
            continue
        if champion_id in intents:
            if not force:
                logger.debug("Teammate wants champion %d, skipping ban", champion_id)
                continue
            logger.debug("Teammate wants champion %d, but forcing ban", champion_id)
        yield champion_id


def choose_pick(session: ChampSelectSession, priorities: list[int], force: bool) -> int | None:
    return next(pick_candidates(session, priorities, force), None)


def choose_ban(session: ChampSelectSession, priorities: list[int], force: bool) -> int | None:
    return next(ban_candidates(session, priorities, force), None)


class AutoBanPickService(SignalEmitter):
    def __init__(self, connector: ConnectionManager, settings: Any, *, interval: float = AUTO_BAN_PICK_INTERVAL):
        super().__init__()
        self.connector = connector
        self.settings = settings
        self.interval = interval
        self._task: asyncio.Task | None = None

    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running():
            return
        logger.info("Auto pick/ban started")
        self._task = asyncio.ensure_future(self._loop())
        self._task.add_done_callback(log_task_failure)

    def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        self._task = None
        logger.info("Auto pick/ban stopped")

    async def _loop(self) -> None:
        while True:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Auto pick/ban tick failed")
            await asyncio.sleep(self.interval)

    # -- settings -------------------------------------------------------

    @property
    def pick_champions(self) -> list[int]:
        return _champion_list(self.settings.get(SETTING_AUTO_PICK_CHAMPIONS))

    @property
    def ban_champions(self) -> list[int]:
        return _champion_list(self.settings.get(SETTING_AUTO_BAN_CHAMPIONS))

    @property
    def pick_force(self) -> bool:
        return bool(self.settings.get(SETTING_AUTO_PICK_FORCE))

    @property
    def ban_force(self) -> bool:
        return bool(self.settings.get(SETTING_AUTO_BAN_FORCE))

    async def set_pick_champions(self, champion_ids: list[int]) -> None:
        await self.settings.aset(SETTING_AUTO_PICK_CHAMPIONS, _champion_list(champion_ids))

    async def set_ban_champions(self, champion_ids: list[int]) -> None:
        await self.settings.aset(SETTING_AUTO_BAN_CHAMPIONS, _champion_list(champion_ids))

    async def set_pick_force(self, force: bool) -> None:
        await self.settings.aset(SETTING_AUTO_PICK_FORCE, bool(force))

    async def set_ban_force(self, force: bool) -> None:
        await self.settings.aset(SETTING_AUTO_BAN_FORCE, bool(force))

    # -- decision loop --------------------------------------------------

    async def tick(self) -> None:
        if not self.connector.is_connected():
            return
        try:
            raw = await self.connector.request("GET", PATH_CHAMP_SELECT_SESSION)
        except LcuRequestError as exc:
            if not exc.is_not_found:
                logger.warning("Error checking champ select: %s", exc)
            return
        except LcuError as exc:
            logger.warning("Error checking champ select: %s", exc)
            return

        session = parse_session(raw)
        if session is not None:
            await self.handle_session(session)

    async def handle_session(self, session: ChampSelectSession) -> None:
        pick_enabled = bool(self.settings.get(SETTING_AUTO_PICK_ENABLED))
        ban_enabled = bool(self.settings.get(SETTING_AUTO_BAN_ENABLED))
        if not pick_enabled and not ban_enabled:
            return

        for action in pending_local_actions(session):
            if action.is_pick and pick_enabled:
                candidates = pick_candidates(session, self.pick_champions, self.pick_force)
            elif action.is_ban and ban_enabled:
                candidates = ban_candidates(session, self.ban_champions, self.ban_force)
            else:
                continue
            # A rejected candidate falls through to the next one
            for champion_id in candidates:
                if await self._perform(action, champion_id):
                    break

    async def _perform(self, action: ChampSelectAction, champion_id: int) -> bool:
        try:
            await self.connector.perform_champ_select_action(action.id, champion_id)
        except LcuError as exc:
            logger.warning("Failed to %s champion %d: %s", action.type, champion_id, exc)
            return False
        logger.info("Auto %s: champion %d", action.type, champion_id)
        self.emit(SIG_ACTION_PERFORMED, {"type": action.type, "championId": champion_id})
        return True
