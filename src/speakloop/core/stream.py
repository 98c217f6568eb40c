"""Incremental answer buffer with a first-token deadline."""

from __future__ import annotations

import asyncio
import threading
import uuid
from collections.abc import AsyncIterator, Callable
from enum import StrEnum

from loguru import logger

from speakloop.core.abort import call_on_loop
from speakloop.errors import FirstTokenTimeoutError

SENTENCE_ENDINGS = "。！？；!?;.\n"
DEFAULT_MAX_SENTENCE_LENGTH = 100


class StreamStatus(StrEnum):
    PENDING = "pending"
    STREAMING = "streaming"
    FINISHED = "finished"
    CANCELED = "canceled"
    TIMED_OUT = "timed_out"


TERMINAL_STATUSES = frozenset({StreamStatus.FINISHED, StreamStatus.CANCELED, StreamStatus.TIMED_OUT})


class StreamBuffer:
    """Accumulate streamed text and hand it out as speakable chunks.

    The producer calls ``add_chunk`` / ``finish`` / ``cancel``; the playback side only
    reads through ``next_chunk`` and ``result``. Status changes are serialised by one
    lock, and the first terminal status wins: late chunks, a finish after a cancel or
    a cancel after a finish are dropped.

    When ``first_submit_timeout`` is set the buffer must be created inside a running
    event loop; if no chunk arrives in time it moves to ``timed_out`` on its own.
    Producer calls may come from any thread. Waiters are woken on the loop the
    buffer was created in.
    """

    def __init__(
        self,
        *,
        request_id: str | None = None,
        first_submit_timeout: float | None = None,
        max_sentence_length: int = DEFAULT_MAX_SENTENCE_LENGTH,
        on_chunk: Callable[[str], None] | None = None,
        on_abort: Callable[[], None] | None = None,
    ) -> None:
        if max_sentence_length <= 0:
            raise ValueError("max_sentence_length must be positive")
        self.request_id = request_id or uuid.uuid4().hex
        self._first_submit_timeout = first_submit_timeout
        self._max_sentence_length = max_sentence_length
        self._on_chunk = on_chunk
        self._on_abort = on_abort
        self._lock = threading.Lock()
        self._status = StreamStatus.PENDING
        self._text = ""
        self._cursor = 0
        self._final_text: str | None = None
        self._error: Exception | None = None
        self._changed = asyncio.Event()
        self._timer: asyncio.TimerHandle | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            if first_submit_timeout is not None:
                raise
        if first_submit_timeout is not None:
            self._timer = self._loop.call_later(first_submit_timeout, self._on_first_submit_timeout)

    @property
    def status(self) -> StreamStatus:
        return self._status

    @property
    def is_terminal(self) -> bool:
        return self._status in TERMINAL_STATUSES

    @property
    def text(self) -> str:
        """Text accumulated so far."""
        return self._text

    @property
    def final_text(self) -> str | None:
        return self._final_text

    @property
    def error(self) -> Exception | None:
        return self._error

    def add_chunk(self, text: str) -> None:
        if not text:
            return
        with self._lock:
            if self._status in TERMINAL_STATUSES:
                dropped = True
                first = False
            else:
                dropped = False
                first = self._status is StreamStatus.PENDING
                self._text += text
                self._status = StreamStatus.STREAMING
        if dropped:
            logger.debug("stream.chunk.dropped request={} status={}", self.request_id, self._status)
            return
        call_on_loop(self._loop, self._wake, first)
        if self._on_chunk is not None:
            self._on_chunk(text)

    def finish(self, full_text: str | None = None) -> bool:
        """Mark the answer complete. Returns False when already terminal."""
        with self._lock:
            if self._status in TERMINAL_STATUSES:
                return False
            if full_text and full_text.startswith(self._text):
                # Text that never streamed is still spoken.
                self._text = full_text
            self._final_text = full_text or self._text
            self._status = StreamStatus.FINISHED
        self._settle()
        return True

    def cancel(self, error: Exception | None = None) -> bool:
        """Abandon the answer. Returns False when already terminal."""
        with self._lock:
            if self._status in TERMINAL_STATUSES:
                return False
            self._status = StreamStatus.CANCELED
            self._error = error
        logger.info("stream.cancel request={} error={}", self.request_id, error)
        self._settle()
        self._notify_abort()
        return True

    async def next_chunk(self) -> str | None:
        """Wait for the next speakable chunk; ``None`` once terminal and drained."""
        while True:
            self._changed.clear()
            chunk = self._take_chunk()
            if chunk is not None:
                return chunk
            if self.is_terminal:
                return None
            await self._changed.wait()

    async def result(self) -> str | None:
        """Wait for a terminal status and return the final text when finished."""
        while not self.is_terminal:
            self._changed.clear()
            if self.is_terminal:
                break
            await self._changed.wait()
        return self._final_text

    async def __aiter__(self) -> AsyncIterator[str]:
        while (chunk := await self.next_chunk()) is not None:
            yield chunk

    def _take_chunk(self) -> str | None:
        with self._lock:
            if self._status in (StreamStatus.CANCELED, StreamStatus.TIMED_OUT):
                return None
            pending = self._text[self._cursor :]
            if not pending:
                return None
            cut = _cut_point(
                pending,
                self._max_sentence_length,
                final=self._status is StreamStatus.FINISHED,
            )
            if cut == 0:
                return None
            self._cursor += cut
            return pending[:cut]

    def _on_first_submit_timeout(self) -> None:
        with self._lock:
            if self._status is not StreamStatus.PENDING:
                return
            self._status = StreamStatus.TIMED_OUT
            self._error = FirstTokenTimeoutError(
                f"no output within {self._first_submit_timeout}s"
            )
        logger.warning("stream.timeout request={} after={}s", self.request_id, self._first_submit_timeout)
        self._settle()
        self._notify_abort()

    def _settle(self) -> None:
        call_on_loop(self._loop, self._wake, True)

    def _wake(self, stop_timer: bool) -> None:
        if stop_timer:
            self._cancel_timer()
        self._changed.set()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _notify_abort(self) -> None:
        if self._on_abort is not None:
            self._on_abort()


def _cut_point(text: str, max_length: int, *, final: bool) -> int:
    for index in range(min(len(text), max_length) - 1, -1, -1):
        if _is_boundary(text, index, final=final):
            return index + 1
    if len(text) >= max_length:
        return max_length
    return len(text) if final else 0


def _is_boundary(text: str, index: int, *, final: bool) -> bool:
    char = text[index]
    if char != ".":
        return char in SENTENCE_ENDINGS
    # An ASCII period ends a sentence only before whitespace or at the end of the answer.
    if index + 1 < len(text):
        return text[index + 1].isspace()
    return final
