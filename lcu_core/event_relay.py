"""Forwards core signals to UI clients connected on ``/ws/events``.

Every outbound signal becomes one JSON message ``{"type": ..., "data": ...}``.
Credentials are reduced to host/port/protocol before they leave the process.
"""

import asyncio
import logging
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder

from .core import LcuCore
from .credentials import Credentials
from .lcu_constants import SIG_PHASE_CHANGED, SIG_TEAM_RESET

logger = logging.getLogger(__name__)

MSG_STATUS = "status"


def _plain(value: Any) -> Any:
    if isinstance(value, Credentials):
        return value.public_dict()
    if isinstance(value, BaseException):
        return {"message": str(value), "kind": type(value).__name__}
    return jsonable_encoder(value)


def signal_payload(signal: str, args: tuple) -> Any:
    if signal == SIG_PHASE_CHANGED:
        phase, previous = (list(args) + [None, None])[:2]
        return {"phase": phase, "previousPhase": previous}
    if signal == SIG_TEAM_RESET:
        return {"phase": args[0] if args else None}
    if not args:
        return None
    return _plain(args[0])


class EventRelay:
    def __init__(self):
        self._clients: set[WebSocket] = set()
        self._lock = asyncio.Lock()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def attach(self, core: LcuCore) -> None:
        for emitter, signal in core.outbound_signals():
            emitter.on(signal, self._forwarder(signal))

    def _forwarder(self, signal: str):
        def forward(*args: Any):
            return self.broadcast(signal, signal_payload(signal, args))
        return forward

    async def add(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._clients.add(websocket)

    async def remove(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._clients.discard(websocket)

    async def broadcast(self, message_type: str, data: Any) -> None:
        message = {"type": message_type, "data": data}
        async with self._lock:
            clients = list(self._clients)
        dead = []
        for ws in clients:
            try:
                await ws.send_json(message)
            except Exception:
                logger.debug("Dropping event client after failed send")
                dead.append(ws)
        if dead:
            async with self._lock:
                for ws in dead:
                    self._clients.discard(ws)


async def websocket_events(websocket: WebSocket, *, relay: EventRelay, core: LcuCore) -> None:
    """WebSocket endpoint handler for /ws/events."""
    await websocket.accept()
    await websocket.send_json({"type": MSG_STATUS, "data": core.status()})
    await relay.add(websocket)
    try:
        while True:
            # Inbound messages are ignored; the loop only detects disconnects.
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        await relay.remove(websocket)
