"""Conversation session state and the keep-alive state machine."""

from __future__ import annotations

import threading
from enum import StrEnum

from loguru import logger


class SessionStatus(StrEnum):
    RUNNING = "running"
    STOPPED = "stopped"


class KeepAliveState(StrEnum):
    IDLE = "idle"
    ACTIVE = "active"


class ConversationSession:
    """Process-wide state for the single conversation.

    Only the keep-alive transitions and run/stop mutate it; every pipeline step reads it.
    There is no terminal keep-alive state: it lives as long as the process.
    """

    def __init__(self) -> None:
        self._status = SessionStatus.STOPPED
        self._keep_alive = KeepAliveState.IDLE
        self._lock = threading.Lock()

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def is_running(self) -> bool:
        return self._status is SessionStatus.RUNNING

    @property
    def keep_alive_state(self) -> KeepAliveState:
        return self._keep_alive

    @property
    def keep_alive(self) -> bool:
        return self._keep_alive is KeepAliveState.ACTIVE

    def start(self) -> None:
        with self._lock:
            self._status = SessionStatus.RUNNING

    def stop(self) -> None:
        with self._lock:
            self._status = SessionStatus.STOPPED

    def activate(self) -> bool:
        """Move ``idle -> active``. Returns whether the state changed."""
        with self._lock:
            if self._keep_alive is KeepAliveState.ACTIVE:
                return False
            self._keep_alive = KeepAliveState.ACTIVE
        logger.info("session.keep_alive state=active")
        return True

    def deactivate(self) -> bool:
        """Move ``active -> idle``. Returns whether the state changed."""
        with self._lock:
            if self._keep_alive is KeepAliveState.IDLE:
                return False
            self._keep_alive = KeepAliveState.IDLE
        logger.info("session.keep_alive state=idle")
        return True
