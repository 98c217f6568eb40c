"""Shared data types."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, TypeAlias

if TYPE_CHECKING:
    from speakloop.core.stream import StreamBuffer


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Utterance:
    """One inbound user message (voice-to-text or text)."""

    text: str
    timestamp: int = field(default_factory=now_ms)
    sender: str = "master"


@dataclass(frozen=True)
class Answer:
    """A complete text answer or a live stream handle."""

    text: str | None = None
    stream: StreamBuffer | None = None

    def __post_init__(self) -> None:
        if self.text is not None and self.stream is not None:
            raise ValueError("answer carries either text or a stream, not both")

    @property
    def empty(self) -> bool:
        return not self.text and self.stream is None


class PlaybackOutcome(StrEnum):
    OK = "ok"
    ERROR = "error"
    NONE = "none"


CommandMatcher: TypeAlias = Callable[[Utterance], bool]
CommandHandler: TypeAlias = Callable[[Utterance], Awaitable[None]]


@dataclass(frozen=True)
class Command:
    """One routable command: a predicate plus the handler it guards."""

    match: CommandMatcher
    run: CommandHandler
    name: str = "custom"
