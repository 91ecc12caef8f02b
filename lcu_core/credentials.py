"""Credential discovery for the local client API.

The running client writes a lockfile ``name:pid:port:password:protocol`` in
its install root and also passes the same port/token on its command line.
``CredentialLocator.locate()`` walks the known places in order and returns
the first usable set of credentials, or None when the client is not running.
"""

import base64
import logging
import os
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import psutil

from .lcu_constants import SETTING_GAME_PATH

logger = logging.getLogger(__name__)

LOCKFILE_NAME = "lockfile"
CLIENT_PROCESS_NAMES = ("LeagueClientUx.exe", "LeagueClientUx", "LeagueClient.exe", "LeagueClient")

_PORT_RE = re.compile(r"--app-port=(\d+)")
_TOKEN_RE = re.compile(r"--remoting-auth-token=([A-Za-z0-9_-]+)")


def _fallback_lockfile_paths() -> list[Path]:
    paths = [
        Path(f"{drive}:/Riot Games/League of Legends") / LOCKFILE_NAME
        for drive in "CDEFGH"
    ]
    for drive in "CD":
        paths.append(Path(f"{drive}:/Program Files/Riot Games/League of Legends") / LOCKFILE_NAME)
        paths.append(Path(f"{drive}:/Program Files (x86)/Riot Games/League of Legends") / LOCKFILE_NAME)
    paths.append(Path("/Applications/League of Legends.app/Contents/LoL") / LOCKFILE_NAME)
    paths.append(Path.home() / "Riot Games" / "League of Legends" / LOCKFILE_NAME)
    return paths


@dataclass(frozen=True)
class Credentials:
    port: int
    password: str = field(repr=False)
    protocol: str = "https"
    host: str = "127.0.0.1"
    username: str = "riot"

    @property
    def base_url(self) -> str:
        return f"{self.protocol}://{self.host}:{self.port}"

    @property
    def ws_url(self) -> str:
        scheme = "wss" if self.protocol == "https" else "ws"
        return f"{scheme}://{self.host}:{self.port}/"

    @property
    def auth(self) -> tuple[str, str]:
        return (self.username, self.password)

    @property
    def authorization_header(self) -> str:
        token = base64.b64encode(f"{self.username}:{self.password}".encode()).decode()
        return f"Basic {token}"

    def public_dict(self) -> dict:
        """Everything except the password; safe to hand to UI consumers."""
        return {"protocol": self.protocol, "host": self.host, "port": self.port}


def parse_lockfile(text: str) -> Credentials | None:
    """Parse lockfile contents. Lines with fewer than 5 fields are skipped."""
    for line in text.splitlines():
        parts = line.split(":")
        if len(parts) < 5:
            if line.strip():
                logger.debug("Skipping malformed lockfile line")
            continue
        _, _, port, password, protocol = parts[:5]
        try:
            port_num = int(port.strip())
        except ValueError:
            logger.debug("Skipping lockfile line with non-numeric port %r", port)
            continue
        return Credentials(
            port=port_num,
            password=password.strip(),
            protocol=protocol.strip() or "https",
        )
    return None


def parse_command_line(args: Sequence[str]) -> Credentials | None:
    """Extract credentials from a client process command line."""
    joined = " ".join(args)
    port_match = _PORT_RE.search(joined)
    token_match = _TOKEN_RE.search(joined)
    if not port_match or not token_match:
        return None
    return Credentials(port=int(port_match.group(1)), password=token_match.group(1))


def _client_processes() -> Iterable[psutil.Process]:
    for proc in psutil.process_iter(["name", "cmdline", "exe"]):
        if proc.info.get("name") in CLIENT_PROCESS_NAMES:
            yield proc


class CredentialLocator:
    """Finds credentials from the lockfile or, failing that, the process table."""

    def __init__(
        self,
        settings: Any = None,
        *,
        fallback_paths: Sequence[Path] | None = None,
        use_process_table: bool = True,
    ):
        self.settings = settings
        self.fallback_paths = list(fallback_paths) if fallback_paths is not None else _fallback_lockfile_paths()
        self.use_process_table = use_process_table

    def _install_root_candidates(self) -> list[Path]:
        roots: list[Path] = []
        game_path = self.settings.get(SETTING_GAME_PATH) if self.settings is not None else None
        if isinstance(game_path, str) and game_path:
            # gamePath points at the "Game" folder; the lockfile is one level up
            roots.append(Path(game_path).parent)
        if self.use_process_table:
            try:
                for proc in _client_processes():
                    exe = proc.info.get("exe")
                    if exe:
                        roots.append(Path(exe).parent)
            except psutil.Error:
                logger.debug("Process scan for install root failed", exc_info=True)
        return roots

    def candidate_paths(self) -> list[Path]:
        """Lockfile paths in the order they are tried, duplicates removed."""
        candidates: list[Path] = []
        env_path = os.environ.get("LOL_LOCKFILE", "").strip()
        if env_path:
            candidates.append(Path(env_path))
        candidates.extend(root / LOCKFILE_NAME for root in self._install_root_candidates())
        candidates.extend(self.fallback_paths)

        seen: set[Path] = set()
        unique: list[Path] = []
        for p in candidates:
            if p in seen:
                continue
            seen.add(p)
            unique.append(p)
        return unique

    def _from_lockfiles(self) -> Credentials | None:
        for path in self.candidate_paths():
            try:
                text = path.read_text(encoding="utf-8", errors="ignore")
            except OSError:
                continue
            creds = parse_lockfile(text)
            if creds is not None:
                logger.info("Using lockfile %s (port %d)", path, creds.port)
                return creds
            logger.warning("Invalid lockfile format in %s", path)
        return None

    def _from_process_table(self) -> Credentials | None:
        try:
            for proc in _client_processes():
                creds = parse_command_line(proc.info.get("cmdline") or [])
                if creds is not None:
                    logger.info("Using credentials from client process %s", proc.pid)
                    return creds
        except psutil.Error:
            logger.debug("Process scan for credentials failed", exc_info=True)
        return None

    def locate(self) -> Credentials | None:
        """Blocking; call through ``asyncio.to_thread`` from the event loop."""
        creds = self._from_lockfiles()
        if creds is None and self.use_process_table:
            creds = self._from_process_table()
        return creds
