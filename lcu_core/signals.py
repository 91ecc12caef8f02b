"""In-process signal emitter shared by the connector and the trackers.

Handlers are plain callables registered per signal name. Coroutine handlers
are scheduled on the running loop so that ``emit()`` itself never awaits;
this keeps emission order identical to the order in which state changed.
"""

import asyncio
import inspect
import logging
from collections import defaultdict
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Handler = Callable[..., Any]


def log_task_failure(task: asyncio.Task) -> None:
    """Log exceptions from background tasks instead of silently swallowing."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background task %s failed: %s", task.get_name(), exc, exc_info=exc)


class SignalEmitter:
    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._handler_tasks: set[asyncio.Task] = set()

    def on(self, signal: str, handler: Handler) -> Handler:
        self._handlers[signal].append(handler)
        return handler

    def off(self, signal: str, handler: Handler | None = None) -> None:
        if handler is None:
            self._handlers.pop(signal, None)
            return
        handlers = self._handlers.get(signal, [])
        if handler in handlers:
            handlers.remove(handler)

    def remove_all_listeners(self, signal: str | None = None) -> None:
        if signal is None:
            self._handlers.clear()
        else:
            self._handlers.pop(signal, None)

    def listener_count(self, signal: str) -> int:
        return len(self._handlers.get(signal, []))

    def emit(self, signal: str, *args: Any) -> int:
        """Deliver *args* to every handler of *signal*; returns the handler count."""
        handlers = list(self._handlers.get(signal, []))
        for handler in handlers:
            try:
                result = handler(*args)
            except Exception:
                logger.exception("Handler for signal %r failed", signal)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._handler_tasks.add(task)
                task.add_done_callback(self._handler_tasks.discard)
                task.add_done_callback(log_task_failure)
        return len(handlers)
