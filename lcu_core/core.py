"""Composition root: builds the connector once and injects it everywhere.

Nothing below this module keeps global state; the host process owns one
``LcuCore`` and drives it through ``start()`` / ``shutdown()``.
"""

import logging
from typing import Any

from .auto_ban_pick import AutoBanPickService
from .connector import ConnectionManager
from .credentials import CredentialLocator
from .gameflow import GameflowTracker
from .lcu_constants import (
    AUTO_CONNECT_INTERVAL,
    SETTING_AUTO_BAN_ENABLED,
    SETTING_AUTO_PICK_ENABLED,
    SETTING_LEAGUE_CLIENT_ENABLED,
    SIG_ACTION_PERFORMED,
    SIG_CHAMPION_SELECTED,
    SIG_CONNECTED,
    SIG_DISCONNECTED,
    SIG_ERROR,
    SIG_PHASE_CHANGED,
    SIG_QUEUE_ID_DETECTED,
    SIG_READY_CHECK_ACCEPTED,
    SIG_READY_FOR_SMART_APPLY,
    SIG_TEAM_COMPOSITION_UPDATED,
    SIG_TEAM_RESET,
)
from .signals import SignalEmitter
from .team_composition import TeamCompositionTracker

logger = logging.getLogger(__name__)


class LcuCore:
    def __init__(
        self,
        settings: Any,
        *,
        connector: ConnectionManager | None = None,
        auto_connect_interval: float = AUTO_CONNECT_INTERVAL,
    ):
        self.settings = settings
        self.connector = connector or ConnectionManager(CredentialLocator(settings))
        self.gameflow = GameflowTracker(self.connector, settings)
        self.team = TeamCompositionTracker(self.gameflow, settings)
        self.auto_ban_pick = AutoBanPickService(self.connector, settings)
        self.auto_connect_interval = auto_connect_interval

    def outbound_signals(self) -> list[tuple[SignalEmitter, str]]:
        return [
            (self.connector, SIG_CONNECTED),
            (self.connector, SIG_DISCONNECTED),
            (self.connector, SIG_ERROR),
            (self.gameflow, SIG_PHASE_CHANGED),
            (self.gameflow, SIG_CHAMPION_SELECTED),
            (self.gameflow, SIG_QUEUE_ID_DETECTED),
            (self.gameflow, SIG_READY_CHECK_ACCEPTED),
            (self.team, SIG_TEAM_COMPOSITION_UPDATED),
            (self.team, SIG_READY_FOR_SMART_APPLY),
            (self.team, SIG_TEAM_RESET),
            (self.auto_ban_pick, SIG_ACTION_PERFORMED),
        ]

    def sync_auto_ban_pick(self) -> None:
        enabled = self.settings.get(SETTING_AUTO_PICK_ENABLED) or self.settings.get(SETTING_AUTO_BAN_ENABLED)
        if enabled:
            self.auto_ban_pick.start()
        else:
            self.auto_ban_pick.stop()

    def start(self) -> None:
        self.gameflow.start()
        self.team.start()
        self.sync_auto_ban_pick()
        # Missing setting means enabled
        if self.settings.get(SETTING_LEAGUE_CLIENT_ENABLED) is not False:
            self.connector.start_auto_connect(self.auto_connect_interval)
        else:
            logger.info("League client integration disabled in settings")

    async def connect(self) -> bool:
        self.connector.start_auto_connect(self.auto_connect_interval)
        return await self.connector.connect()

    def disconnect(self) -> None:
        self.connector.stop_auto_connect()
        self.connector.disconnect()

    async def update_settings(self, values: dict[str, Any]) -> None:
        await self.settings.aupdate(values)
        self.sync_auto_ban_pick()
        if SETTING_LEAGUE_CLIENT_ENABLED in values:
            if values[SETTING_LEAGUE_CLIENT_ENABLED] is False:
                self.disconnect()
            elif not self.connector.auto_connecting:
                self.connector.start_auto_connect(self.auto_connect_interval)

    def status(self) -> dict:
        creds = self.connector.credentials
        return {
            "connected": self.connector.is_connected(),
            "state": self.connector.state.value,
            "gameflowPhase": self.gameflow.current_phase,
            "queueId": self.gameflow.queue_id,
            "autoBanPickRunning": self.auto_ban_pick.is_running(),
            "client": creds.public_dict() if creds is not None else None,
        }

    async def shutdown(self) -> None:
        logger.info("Shutting down League client integration")
        self.auto_ban_pick.stop()
        self.team.stop()
        self.gameflow.stop()
        await self.connector.aclose()
        for emitter in (self.connector, self.gameflow, self.team, self.auto_ban_pick):
            emitter.remove_all_listeners()
