"""Connection Manager for the local client API.

Owns the single HTTP client and the single event WebSocket. Everything else
in lcu_core talks to the client through ``request()`` / ``subscribe()`` and
reacts to the signals re-published here.

Connection attempts are independent of each other: each ``connect()`` call
builds its own credentials, HTTP client and socket, and only installs them
once the whole handshake succeeded. A later successful attempt supersedes an
earlier one; the superseded socket's reader notices it is no longer current
and exits without touching the live connection.
"""

import asyncio
import enum
import json
import logging
import ssl
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK

from .credentials import CredentialLocator, Credentials
from .errors import (
    CredentialsNotFoundError,
    HandshakeError,
    LcuNotConnectedError,
    LcuRequestError,
    LcuTransportError,
)
from .lcu_constants import (
    AUTO_CONNECT_INTERVAL,
    CHAMP_SELECT_PREFIX,
    EVENT_CHAMP_SELECT_SESSION,
    EVENT_GAMEFLOW_PHASE,
    EVENT_LOBBY,
    HEALTH_CHECK_INTERVAL,
    OP_EVENT,
    OP_SUBSCRIBE,
    OP_UNSUBSCRIBE,
    PATH_CHAMP_SELECT_ACTION,
    PATH_CHAMP_SELECT_SESSION,
    PATH_CHAMPION_SUMMARY,
    PATH_CURRENT_SUMMONER,
    PATH_GAMEFLOW_PHASE,
    PATH_GAMEFLOW_SESSION,
    PATH_LOBBY,
    PATH_OWNED_CHAMPIONS,
    PATH_READY_CHECK_ACCEPT,
    PHASE_NONE,
    RECONNECT_DELAY,
    REQUEST_TIMEOUT,
    SIG_CHAMP_SELECT_SESSION,
    SIG_CONNECTED,
    SIG_DISCONNECTED,
    SIG_ERROR,
    SIG_EVENT,
    SIG_GAMEFLOW_PHASE,
    SIG_LOBBY_SESSION,
)
from .signals import SignalEmitter, log_task_failure

logger = logging.getLogger(__name__)

WS_MAX_FRAME_SIZE = 16 * 1024 * 1024  # champion data events can be large

_TYPED_EVENTS = {
    EVENT_GAMEFLOW_PHASE: SIG_GAMEFLOW_PHASE,
    EVENT_CHAMP_SELECT_SESSION: SIG_CHAMP_SELECT_SESSION,
    EVENT_LOBBY: SIG_LOBBY_SESSION,
}

CredentialSource = Callable[[], Credentials | None]
WebSocketFactory = Callable[..., Awaitable[Any]]


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def decode_frame(raw: str | bytes | None) -> tuple[str, Any] | None:
    """Decode one inbound frame into ``(event_name, payload)``.

    Blank heartbeats, invalid JSON, non-event opcodes and short arrays all
    decode to None.
    """
    if raw is None:
        return None
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if not raw.strip():
        return None
    try:
        message = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(message, list) or len(message) < 3:
        return None
    opcode, event_name, payload = message[0], message[1], message[2]
    if opcode != OP_EVENT or not event_name or not isinstance(event_name, str):
        return None
    return event_name, payload


def _insecure_ssl_context() -> ssl.SSLContext:
    # The local client always presents a self-signed certificate.
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


class ConnectionManager(SignalEmitter):
    def __init__(
        self,
        locator: CredentialLocator | CredentialSource | None = None,
        *,
        poll_interval: float = HEALTH_CHECK_INTERVAL,
        reconnect_delay: float = RECONNECT_DELAY,
        request_timeout: float = REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
        websocket_factory: WebSocketFactory | None = None,
    ):
        super().__init__()
        if locator is None:
            locator = CredentialLocator()
        self._locate: CredentialSource = locator.locate if isinstance(locator, CredentialLocator) else locator
        self.poll_interval = poll_interval
        self.reconnect_delay = reconnect_delay
        self.request_timeout = request_timeout
        self._transport = transport
        self._websocket_factory = websocket_factory or ws_connect

        self._state = ConnectionState.DISCONNECTED
        self._credentials: Credentials | None = None
        self._client: httpx.AsyncClient | None = None
        self._ws: Any = None
        self._subscriptions: set[str] = set()
        self._pending_attempts = 0
        # Bumped by disconnect(); an attempt started under an older value is abandoned
        self._generation = 0

        self._reader_task: asyncio.Task | None = None
        self._liveness_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._auto_connect_task: asyncio.Task | None = None
        self._closing_tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def credentials(self) -> Credentials | None:
        return self._credentials

    @property
    def subscriptions(self) -> frozenset[str]:
        return frozenset(self._subscriptions)

    @property
    def auto_connecting(self) -> bool:
        return self._auto_connect_task is not None and not self._auto_connect_task.done()

    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    # ------------------------------------------------------------------
    # Connect / disconnect
    # ------------------------------------------------------------------

    def _fail(self, exc: Exception) -> None:
        # Auto-connect retries quietly while the client simply isn't running.
        if self.auto_connecting:
            logger.debug("Connect attempt failed: %s", exc)
        else:
            logger.info("Connect attempt failed: %s", exc)
            self.emit(SIG_ERROR, exc)

    def _build_client(self, creds: Credentials) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=creds.base_url,
            auth=creds.auth,
            verify=False,
            timeout=self.request_timeout,
            transport=self._transport,
        )

    async def _health_check(self, client: httpx.AsyncClient) -> bool:
        try:
            response = await client.get(PATH_CURRENT_SUMMONER)
        except httpx.HTTPError as exc:
            logger.debug("Health check failed: %s", exc)
            return False
        return response.is_success

    async def _open_websocket(self, creds: Credentials) -> Any:
        return await self._websocket_factory(
            creds.ws_url,
            additional_headers={"Authorization": creds.authorization_header},
            ssl=_insecure_ssl_context() if creds.protocol == "https" else None,
            max_size=WS_MAX_FRAME_SIZE,
        )

    async def connect(self) -> bool:
        """Discover credentials, verify them and open the event channel.

        Never raises; failures resolve to False (and an ``error`` signal when
        not auto-connecting).
        """
        self._pending_attempts += 1
        if self._state is ConnectionState.DISCONNECTED:
            self._state = ConnectionState.CONNECTING
        generation = self._generation
        client: httpx.AsyncClient | None = None
        ws: Any = None
        installed = False
        try:
            creds = await asyncio.to_thread(self._locate)
            if self._abandoned(generation):
                return False
            if creds is None:
                self._fail(CredentialsNotFoundError())
                return False

            client = self._build_client(creds)
            healthy = await self._health_check(client)
            if self._abandoned(generation):
                return False
            if not healthy:
                self._fail(HandshakeError())
                return False

            try:
                ws = await self._open_websocket(creds)
            except Exception as exc:
                # OSError, timeouts, or websockets' InvalidHandshake family
                self._fail(HandshakeError(f"WebSocket handshake failed: {exc}"))
                return False

            if self._abandoned(generation):
                return False
            self._install(creds, client, ws)
            installed = True
            logger.info("Connected to League client on port %d", creds.port)
            self.emit(SIG_CONNECTED, creds)
            return True
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Unexpected error while connecting")
            self._fail(HandshakeError(str(exc)))
            return False
        finally:
            self._pending_attempts -= 1
            if not installed:
                if ws is not None:
                    self._close_later(ws.close())
                if client is not None:
                    self._close_later(client.aclose())
                if self._state is ConnectionState.CONNECTING and self._pending_attempts == 0:
                    self._state = ConnectionState.DISCONNECTED

    def _abandoned(self, generation: int) -> bool:
        if generation == self._generation:
            return False
        logger.debug("Connect attempt abandoned after disconnect")
        return True

    def _install(self, creds: Credentials, client: httpx.AsyncClient, ws: Any) -> None:
        old_ws, old_client = self._ws, self._client
        self._stop_timers()
        if self._reader_task is not None and self._reader_task is not asyncio.current_task():
            self._reader_task.cancel()

        self._credentials = creds
        self._client = client
        self._ws = ws
        self._subscriptions.clear()
        self._state = ConnectionState.CONNECTED

        self._reader_task = asyncio.ensure_future(self._read_loop(ws))
        self._reader_task.add_done_callback(log_task_failure)
        self._liveness_task = asyncio.ensure_future(self._liveness_loop(client))
        self._liveness_task.add_done_callback(log_task_failure)

        if old_ws is not None:
            logger.debug("Superseding previous connection")
            self._close_later(old_ws.close())
        if old_client is not None:
            self._close_later(old_client.aclose())

    def _close_later(self, closing: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(closing)
        self._closing_tasks.add(task)
        task.add_done_callback(self._closing_tasks.discard)
        task.add_done_callback(_ignore_close_errors)

    def _stop_timers(self) -> None:
        current = asyncio.current_task()
        for task in (self._liveness_task, self._reconnect_task):
            if task is not None and task is not current:
                task.cancel()
        self._liveness_task = None
        self._reconnect_task = None

    def disconnect(self) -> None:
        """Tear down the connection. Idempotent; safe from any state."""
        self._generation += 1
        self._stop_timers()
        reader = self._reader_task
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
        self._reader_task = None

        was_connected = self._state is ConnectionState.CONNECTED
        if self._ws is not None:
            self._close_later(self._ws.close())
            self._ws = None
        if self._client is not None:
            self._close_later(self._client.aclose())
            self._client = None
        self._credentials = None
        self._subscriptions.clear()
        self._state = ConnectionState.DISCONNECTED

        if was_connected:
            logger.info("Disconnected from League client")
            self.emit(SIG_DISCONNECTED)

    def _handle_disconnection(self) -> None:
        was_connected = self._state is ConnectionState.CONNECTED
        self.disconnect()
        if was_connected:
            self._reconnect_task = asyncio.ensure_future(self._reconnect_after_delay())
            self._reconnect_task.add_done_callback(log_task_failure)

    async def _reconnect_after_delay(self) -> None:
        await asyncio.sleep(self.reconnect_delay)
        self._reconnect_task = None
        await self.connect()

    async def aclose(self) -> None:
        """Stop every loop and wait for the socket and HTTP client to close."""
        self.stop_auto_connect()
        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            self._reconnect_task = None
        self.disconnect()
        if self._closing_tasks:
            await asyncio.gather(*self._closing_tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Supervisors
    # ------------------------------------------------------------------

    async def _liveness_loop(self, client: httpx.AsyncClient) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            if client is not self._client:
                return
            if not await self._health_check(client):
                if client is not self._client:
                    return
                logger.info("League client stopped responding")
                self._liveness_task = None
                self._handle_disconnection()
                return

    def start_auto_connect(self, interval: float = AUTO_CONNECT_INTERVAL) -> None:
        self.stop_auto_connect()
        self._auto_connect_task = asyncio.ensure_future(self._auto_connect_loop(interval))
        self._auto_connect_task.add_done_callback(log_task_failure)

    def stop_auto_connect(self) -> None:
        if self._auto_connect_task is not None:
            if self._auto_connect_task is not asyncio.current_task():
                self._auto_connect_task.cancel()
            self._auto_connect_task = None

    async def _auto_connect_loop(self, interval: float) -> None:
        await self.connect()
        while True:
            await asyncio.sleep(interval)
            if not self.is_connected():
                await self.connect()

    # ------------------------------------------------------------------
    # Event channel
    # ------------------------------------------------------------------

    async def _read_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                if ws is not self._ws:
                    return
                self._dispatch(raw)
        except ConnectionClosedOK:
            pass
        except ConnectionClosed as exc:
            if ws is self._ws:
                logger.warning("WebSocket closed unexpectedly: %s", exc)
                self.emit(SIG_ERROR, exc)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if ws is self._ws:
                logger.exception("WebSocket reader failed")
                self.emit(SIG_ERROR, exc)
        if ws is self._ws:
            self._handle_disconnection()

    def _dispatch(self, raw: str | bytes) -> None:
        decoded = decode_frame(raw)
        if decoded is None:
            return
        event_name, payload = decoded
        self.emit(SIG_EVENT, event_name, payload)
        typed = _TYPED_EVENTS.get(event_name)
        if typed is not None:
            data = payload.get("data") if isinstance(payload, dict) else None
            self.emit(typed, data)

    async def _send(self, frame: list) -> bool:
        ws = self._ws
        if ws is None or self._state is not ConnectionState.CONNECTED:
            return False
        try:
            await ws.send(json.dumps(frame))
        except ConnectionClosed:
            return False
        except Exception as exc:
            logger.debug("WebSocket send failed: %s", exc)
            return False
        return True

    async def subscribe(self, event_name: str) -> bool:
        if not await self._send([OP_SUBSCRIBE, event_name]):
            return False
        self._subscriptions.add(event_name)
        return True

    async def unsubscribe(self, event_name: str) -> bool:
        if not await self._send([OP_UNSUBSCRIBE, event_name]):
            return False
        self._subscriptions.discard(event_name)
        return True

    # ------------------------------------------------------------------
    # REST
    # ------------------------------------------------------------------

    async def request(self, method: str, path: str, body: Any = None) -> Any:
        """Authenticated REST call; raises the typed errors from ``errors``."""
        client = self._client
        if client is None:
            raise LcuNotConnectedError()
        try:
            if body is None:
                response = await client.request(method, path)
            else:
                response = await client.request(method, path, json=body)
        except httpx.HTTPError as exc:
            logger.warning("No response from League client for %s %s: %s", method, path, exc)
            raise LcuTransportError(f"No response from League client: {exc}") from exc

        if not response.is_success:
            detail = response.text[:200]
            if response.status_code == 404 and path.startswith(CHAMP_SELECT_PREFIX):
                logger.debug("HTTP 404 for %s (not in champ select)", path)
            else:
                logger.warning("HTTP %d for %s %s: %s", response.status_code, method, path, detail)
            raise LcuRequestError(response.status_code, method, path, detail)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    async def get_gameflow_phase(self) -> str:
        try:
            phase = await self.request("GET", PATH_GAMEFLOW_PHASE)
        except Exception:
            return PHASE_NONE
        return phase if isinstance(phase, str) and phase else PHASE_NONE

    async def get_gameflow_session(self) -> dict | None:
        try:
            return await self.request("GET", PATH_GAMEFLOW_SESSION)
        except Exception:
            return None

    async def get_champ_select_session(self) -> dict | None:
        try:
            return await self.request("GET", PATH_CHAMP_SELECT_SESSION)
        except Exception:
            return None

    async def get_lobby_session(self) -> dict | None:
        try:
            return await self.request("GET", PATH_LOBBY)
        except Exception:
            return None

    async def perform_champ_select_action(self, action_id: int, champion_id: int) -> Any:
        return await self.request(
            "PATCH",
            PATH_CHAMP_SELECT_ACTION.format(action_id=action_id),
            {"championId": champion_id, "completed": True},
        )

    async def accept_ready_check(self) -> Any:
        return await self.request("POST", PATH_READY_CHECK_ACCEPT)

    async def get_owned_champions(self) -> list:
        try:
            return await self.request("GET", PATH_OWNED_CHAMPIONS) or []
        except Exception:
            logger.warning("Failed to get owned champions")
            return []

    async def get_all_champions(self) -> list:
        try:
            return await self.request("GET", PATH_CHAMPION_SUMMARY) or []
        except Exception:
            logger.warning("Failed to get champion summary")
            return []


def _ignore_close_errors(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Error while closing superseded resource: %s", exc)
