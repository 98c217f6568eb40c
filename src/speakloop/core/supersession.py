"""Detect when a newer utterance makes in-flight work stale."""

from __future__ import annotations

import threading

from speakloop.types import Utterance


class SupersessionGuard:
    """Monotonic sequence of inbound utterances.

    ``snapshot`` captures the current tail; ``has_new_since`` is a plain counter
    comparison, never a content diff.
    """

    def __init__(self) -> None:
        self._seq = 0
        self._last: Utterance | None = None
        self._lock = threading.Lock()

    def append(self, utterance: Utterance) -> int:
        with self._lock:
            self._seq += 1
            self._last = utterance
            return self._seq

    def snapshot(self) -> int:
        with self._lock:
            return self._seq

    def has_new_since(self, snapshot: int) -> bool:
        with self._lock:
            return self._seq > snapshot

    @property
    def last(self) -> Utterance | None:
        return self._last
