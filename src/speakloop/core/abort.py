"""Process-wide registry of cancel triggers for in-flight generations."""

from __future__ import annotations

import asyncio
import threading
from typing import TypeAlias
from collections.abc import Callable

from loguru import logger

CancelFn: TypeAlias = Callable[[], None]


def call_on_loop(loop: asyncio.AbstractEventLoop | None, callback: Callable[..., None], *args: object) -> None:
    """Run ``callback`` now on ``loop``'s own thread, otherwise hand it to that loop.

    Tasks and events are not thread-safe, so a trigger fired from another thread
    must not touch them directly.
    """
    if loop is None or loop.is_closed() or _running_loop() is loop:
        callback(*args)
        return
    loop.call_soon_threadsafe(callback, *args)


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class AbortRegistry:
    """Map request ids to cancel functions.

    After ``trigger`` or ``clear`` the id is absent. The registry does not know what
    cancellation means to the caller; it only stores and invokes the function.
    """

    def __init__(self) -> None:
        self._callbacks: dict[str, CancelFn] = {}
        self._lock = threading.Lock()

    def register(self, request_id: str, cancel: CancelFn) -> None:
        with self._lock:
            self._callbacks[request_id] = cancel

    def trigger(self, request_id: str) -> bool:
        """Invoke and remove the cancel function for ``request_id``.

        Returns whether a function was registered. Unknown ids are a no-op.
        """
        with self._lock:
            cancel = self._callbacks.pop(request_id, None)
        if cancel is None:
            return False
        logger.info("abort.trigger request={}", request_id)
        cancel()
        return True

    def clear(self, request_id: str) -> None:
        """Remove the entry without invoking it."""
        with self._lock:
            self._callbacks.pop(request_id, None)

    def pending(self) -> list[str]:
        with self._lock:
            return list(self._callbacks)

    def __contains__(self, request_id: object) -> bool:
        with self._lock:
            return request_id in self._callbacks

    def __len__(self) -> int:
        with self._lock:
            return len(self._callbacks)
