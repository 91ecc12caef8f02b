"""Shared fixtures for the lcu_core test suite.

The local client is faked at the two network seams the connector owns:
REST goes through ``httpx.MockTransport`` backed by ``FakeLcu``, and the
event channel is an in-memory ``FakeWebSocket`` handed out by
``FakeSocketFactory``. Nothing here touches a real socket.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any
from unittest.mock import patch

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from websockets.exceptions import ConnectionClosedOK

# Ensure the project root is on sys.path so 'lcu_core' package resolves
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from lcu_core.connector import ConnectionManager  # noqa: E402
from lcu_core.credentials import Credentials  # noqa: E402
from lcu_core.lcu_constants import (  # noqa: E402
    OP_EVENT,
    PATH_CHAMP_SELECT_SESSION,
    PATH_CHAMPION_SUMMARY,
    PATH_CURRENT_SUMMONER,
    PATH_GAMEFLOW_PHASE,
    PATH_GAMEFLOW_SESSION,
    PATH_LOBBY,
    PATH_OWNED_CHAMPIONS,
    PATH_READY_CHECK_ACCEPT,
)
from lcu_core.settings_store import SettingsStore  # noqa: E402


# ---------------------------------------------------------------------------
# Fake event channel
# ---------------------------------------------------------------------------

_CLOSE = object()


class FakeWebSocket:
    """Minimal stand-in for a websockets ClientConnection."""

    def __init__(self):
        self.sent: list[Any] = []
        self.closed = False
        self.send_error: Exception | None = None
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, data):
        if self.closed:
            raise ConnectionClosedOK(None, None)
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(json.loads(data))

    async def close(self):
        if not self.closed:
            self.closed = True
            self._inbox.put_nowait(_CLOSE)

    def drop(self):
        """Simulate the client going away without us closing the socket."""
        self._inbox.put_nowait(_CLOSE)

    def push_raw(self, frame: str):
        self._inbox.put_nowait(frame)

    def push_event(self, event_name: str, data: Any, event_type: str = "Update"):
        self.push_raw(json.dumps([OP_EVENT, event_name, {"data": data, "eventType": event_type, "uri": ""}]))

    def frames_with_opcode(self, opcode: int) -> list[str]:
        return [frame[1] for frame in self.sent if frame[0] == opcode]

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbox.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        return item


class FakeSocketFactory:
    def __init__(self):
        self.sockets: list[FakeWebSocket] = []
        self.calls: list[tuple[str, dict]] = []
        self.fail = False
        # When set, the handshake waits on it before handing out the socket
        self.gate: asyncio.Event | None = None

    async def __call__(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.fail:
            raise OSError("connection refused")
        ws = FakeWebSocket()
        self.sockets.append(ws)
        if self.gate is not None:
            await self.gate.wait()
        return ws

    @property
    def last(self) -> FakeWebSocket:
        return self.sockets[-1]


# ---------------------------------------------------------------------------
# Fake REST API
# ---------------------------------------------------------------------------


class FakeLcu:
    """Answers the handful of endpoints the core uses; records every call."""

    def __init__(self):
        self.healthy = True
        self.phase = "None"
        self.champ_select_session: dict | None = None
        self.lobby: dict | None = None
        self.gameflow_session: dict | None = None
        self.owned_champions: list[dict] = []
        self.champion_summary: list[dict] = []
        self.action_status = 204
        self.rejected_champions: set[int] = set()
        self.requests: list[tuple[str, str, Any]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        method = request.method
        path = request.url.path
        body = json.loads(request.content) if request.content else None
        self.requests.append((method, path, body))

        if not self.healthy:
            raise httpx.ConnectError("connection refused", request=request)
        if path == PATH_CURRENT_SUMMONER:
            return httpx.Response(200, json={"displayName": "Tester", "summonerId": 1})
        if path == PATH_GAMEFLOW_PHASE:
            return httpx.Response(200, json=self.phase)
        if path == PATH_CHAMP_SELECT_SESSION:
            if self.champ_select_session is None:
                return httpx.Response(404, json={"message": "No active delegate"})
            return httpx.Response(200, json=self.champ_select_session)
        if path == PATH_LOBBY:
            if self.lobby is None:
                return httpx.Response(404, json={"message": "LOBBY_NOT_FOUND"})
            return httpx.Response(200, json=self.lobby)
        if path == PATH_GAMEFLOW_SESSION:
            if self.gameflow_session is None:
                return httpx.Response(404, json={"message": "No gameflow session"})
            return httpx.Response(200, json=self.gameflow_session)
        if path == PATH_OWNED_CHAMPIONS:
            return httpx.Response(200, json=self.owned_champions)
        if path == PATH_CHAMPION_SUMMARY:
            return httpx.Response(200, json=self.champion_summary)
        if path == PATH_READY_CHECK_ACCEPT and method == "POST":
            return httpx.Response(204)
        if path.startswith(PATH_CHAMP_SELECT_SESSION + "/actions/") and method == "PATCH":
            if body and body.get("championId") in self.rejected_champions:
                return httpx.Response(500, json={"message": "Invalid champion"})
            return httpx.Response(self.action_status)
        return httpx.Response(404, json={"message": "not found"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self, method: str, path: str) -> list:
        return [r for r in self.requests if r[0] == method and r[1] == path]


# ---------------------------------------------------------------------------
# Session builders
# ---------------------------------------------------------------------------


def member(cell_id: int, champion_id: int = 0, intent: int = 0) -> dict:
    return {
        "cellId": cell_id,
        "championId": champion_id,
        "championPickIntent": intent,
        "assignedPosition": "",
        "summonerId": 100 + cell_id,
    }


def action(action_id: int, actor: int, kind: str, champion_id: int = 0,
           completed: bool = False, in_progress: bool = False) -> dict:
    return {
        "id": action_id,
        "actorCellId": actor,
        "type": kind,
        "championId": champion_id,
        "completed": completed,
        "isInProgress": in_progress,
    }


def make_session(
    *,
    local_cell: int = 0,
    my_team: list[dict] | None = None,
    their_team: list[dict] | None = None,
    actions: list[list[dict]] | None = None,
    my_bans: list[int] | None = None,
    their_bans: list[int] | None = None,
    timer_phase: str = "BAN_PICK",
    time_left: int = 30000,
) -> dict:
    return {
        "localPlayerCellId": local_cell,
        "myTeam": my_team if my_team is not None else [member(i) for i in range(5)],
        "theirTeam": their_team if their_team is not None else [member(i) for i in range(5, 10)],
        "bans": {"myTeamBans": my_bans or [], "theirTeamBans": their_bans or []},
        "actions": actions or [],
        "timer": {"phase": timer_phase, "adjustedTimeLeftInPhase": time_left},
    }


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.01):
    """Poll *predicate* until it is truthy or fail after *timeout* seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met within timeout")
        await asyncio.sleep(interval)


class Recorder:
    """Collects the arguments of every emission of one signal."""

    def __init__(self, emitter, signal: str):
        self.calls: list[tuple] = []
        emitter.on(signal, self)

    def __call__(self, *args):
        self.calls.append(args)

    def __len__(self):
        return len(self.calls)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path):
    return SettingsStore(tmp_path / "settings.json")


@pytest.fixture
def creds():
    return Credentials(port=54321, password="s3cret")


@pytest.fixture
def fake_lcu():
    return FakeLcu()


@pytest.fixture
def ws_factory():
    return FakeSocketFactory()


@pytest.fixture
async def connector(fake_lcu, ws_factory, creds):
    conn = ConnectionManager(
        lambda: creds,
        poll_interval=0.05,
        reconnect_delay=0.05,
        transport=fake_lcu.transport(),
        websocket_factory=ws_factory,
    )
    yield conn
    await conn.aclose()


@pytest.fixture
async def core(settings, fake_lcu, ws_factory, creds):
    """An LcuCore wired to the fake client; shut down after the test."""
    from lcu_core.core import LcuCore

    conn = ConnectionManager(
        lambda: creds,
        poll_interval=0.05,
        reconnect_delay=0.05,
        transport=fake_lcu.transport(),
        websocket_factory=ws_factory,
    )
    lcu = LcuCore(settings, connector=conn, auto_connect_interval=0.05)
    yield lcu
    await lcu.shutdown()


@pytest.fixture
def app(core):
    """The FastAPI app with its module-level core and relay swapped for test ones."""
    from lcu_core import server
    from lcu_core.event_relay import EventRelay

    relay = EventRelay()
    relay.attach(core)
    with patch.object(server, "core", core), patch.object(server, "relay", relay):
        yield server.app


@pytest.fixture
async def client(app):
    """Async HTTP client for testing REST endpoints."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac
