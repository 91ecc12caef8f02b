import sys
if sys.platform == "win32":
    import asyncio
    asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())

import logging
import os
from pathlib import Path

from fastapi import FastAPI, HTTPException, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .core import LcuCore
from .event_relay import EventRelay, websocket_events
from .lcu_constants import (
    SETTING_AUTO_ACCEPT_ENABLED,
    SETTING_AUTO_APPLY_TRIGGER_TIME,
    SETTING_AUTO_BAN_CHAMPIONS,
    SETTING_AUTO_BAN_ENABLED,
    SETTING_AUTO_BAN_FORCE,
    SETTING_AUTO_PICK_CHAMPIONS,
    SETTING_AUTO_PICK_ENABLED,
    SETTING_AUTO_PICK_FORCE,
    SETTING_LEAGUE_CLIENT_ENABLED,
)
from .models import parse_session
from .settings_store import SettingsStore

logger = logging.getLogger(__name__)

app = FastAPI()

# --- Configuration ---

BASE_DIR = Path(__file__).resolve().parent.parent
SETTINGS_PATH = os.environ.get("LCU_CORE_SETTINGS_PATH", str(BASE_DIR / "settings.json"))


def _get_cors_origins() -> list[str]:
    """Get CORS origins from environment variable or use default."""
    cors_origins_str = os.environ.get("LCU_CORE_CORS_ORIGINS", "http://localhost:8765")
    origins = [origin.strip() for origin in cors_origins_str.split(",") if origin.strip()]
    return origins if origins else ["http://localhost:8765"]


app.add_middleware(
    CORSMiddleware,
    allow_origins=_get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

settings = SettingsStore(SETTINGS_PATH)
core = LcuCore(settings)
relay = EventRelay()
relay.attach(core)


@app.on_event("startup")
async def startup_event():
    core.start()


@app.on_event("shutdown")
async def shutdown_event():
    await core.shutdown()


# --- Connection ---

@app.get("/api/health")
async def health_check():
    return {"status": "ok"}


@app.post("/api/lcu/connect")
async def api_connect():
    connected = await core.connect()
    return {"success": connected}


@app.post("/api/lcu/disconnect")
async def api_disconnect():
    core.disconnect()
    return {"success": True}


@app.get("/api/lcu/status")
async def api_status():
    return core.status()


@app.get("/api/lcu/phase")
async def api_current_phase():
    if not core.connector.is_connected():
        raise HTTPException(status_code=503, detail="Not connected to League client")
    phase = await core.connector.get_gameflow_phase()
    return {"phase": phase}


@app.get("/api/lcu/champ-select-session")
async def api_champ_select_session():
    if not core.connector.is_connected():
        raise HTTPException(status_code=503, detail="Not connected to League client")
    raw = await core.connector.get_champ_select_session()
    session = parse_session(raw)
    if session is None:
        raise HTTPException(status_code=404, detail="Not in champion select")
    return session.model_dump(by_alias=True)


# --- Team composition ---

@app.get("/api/team/composition")
async def api_team_composition():
    composition = core.team.current_composition()
    return {
        "composition": composition.model_dump(by_alias=True) if composition else None,
    }


@app.get("/api/team/ready-for-smart-apply")
async def api_ready_for_smart_apply():
    return {"ready": core.team.is_ready_for_smart_apply()}


# --- Automation settings ---

_AUTOMATION_DEFAULTS = {
    SETTING_LEAGUE_CLIENT_ENABLED: True,
    SETTING_AUTO_ACCEPT_ENABLED: False,
    SETTING_AUTO_APPLY_TRIGGER_TIME: 15,
    SETTING_AUTO_PICK_ENABLED: False,
    SETTING_AUTO_PICK_FORCE: False,
    SETTING_AUTO_PICK_CHAMPIONS: [],
    SETTING_AUTO_BAN_ENABLED: False,
    SETTING_AUTO_BAN_FORCE: False,
    SETTING_AUTO_BAN_CHAMPIONS: [],
}


class AutomationSettingsUpdate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    league_client_enabled: bool | None = None
    auto_accept_enabled: bool | None = None
    auto_apply_trigger_time: float | None = Field(None, ge=5, le=30)
    auto_pick_enabled: bool | None = None
    auto_pick_force: bool | None = None
    auto_pick_champions: list[int] | None = Field(None, max_length=50)
    auto_ban_enabled: bool | None = None
    auto_ban_force: bool | None = None
    auto_ban_champions: list[int] | None = Field(None, max_length=50)


def _automation_settings() -> dict:
    return {key: core.settings.get(key, default) for key, default in _AUTOMATION_DEFAULTS.items()}


@app.get("/api/settings/automation")
async def api_get_automation_settings():
    return _automation_settings()


@app.put("/api/settings/automation")
async def api_update_automation_settings(req: AutomationSettingsUpdate):
    values = req.model_dump(by_alias=True, exclude_none=True)
    if values:
        await core.update_settings(values)
    return _automation_settings()


# --- Event stream ---

@app.websocket("/ws/events")
async def ws_events(websocket: WebSocket):
    await websocket_events(websocket, relay=relay, core=core)
