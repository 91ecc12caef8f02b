import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class SettingsStore:
    """Key-value settings persisted as a single JSON object.

    Reads are served from memory. Every write rewrites the file atomically
    (temp file + ``os.replace``). Code running on the event loop uses the
    ``aset``/``aupdate`` variants, which do the file I/O in a worker thread.
    """

    def __init__(self, filepath: str | Path):
        self.filepath = Path(filepath).resolve()
        self._data: dict[str, Any] = {}
        self._lock = asyncio.Lock()
        self._load_sync()

    def _load_sync(self):
        if self.filepath.exists():
            try:
                with open(self.filepath) as f:
                    data = json.load(f)
                self._data = data if isinstance(data, dict) else {}
            except (json.JSONDecodeError, OSError):
                logger.warning("Corrupt settings file %s, starting fresh", self.filepath)
                self._data = {}

    def _save_sync(self, data: dict[str, Any] | None = None):
        """Synchronous save; the async writers call it via asyncio.to_thread()."""
        if data is None:
            data = self._data
        self.filepath.parent.mkdir(parents=True, exist_ok=True)
        tmp_fd, tmp_path = tempfile.mkstemp(
            dir=str(self.filepath.parent), suffix=".tmp"
        )
        try:
            with os.fdopen(tmp_fd, "w") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.filepath)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    async def _save(self):
        # The worker thread dumps a snapshot, never the live dict
        await asyncio.to_thread(self._save_sync, dict(self._data))

    def get(self, key: str | None = None, default: Any = None) -> Any:
        if key is None:
            return dict(self._data)
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._save_sync()

    def update(self, values: dict[str, Any]) -> None:
        self._data.update(values)
        self._save_sync()

    def delete(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._save_sync()

    def clear(self) -> None:
        self._data = {}
        self._save_sync()

    async def aset(self, key: str, value: Any) -> None:
        async with self._lock:
            self._data[key] = value
            await self._save()

    async def aupdate(self, values: dict[str, Any]) -> None:
        async with self._lock:
            self._data.update(values)
            await self._save()
