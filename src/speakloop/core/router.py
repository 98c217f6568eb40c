"""Ordered command routing for inbound utterances."""

from __future__ import annotations

import threading
from collections.abc import Sequence

from loguru import logger

from speakloop.types import Command, Utterance


class CommandRouter:
    """First-match router over built-in, custom and fallback commands.

    Evaluation order is built-ins, then custom commands in registration order, then the
    fallback. Predicates after the first match are never evaluated.
    """

    def __init__(self, builtins: Sequence[Command], *, fallback: Command | None = None) -> None:
        self._builtins = tuple(builtins)
        self._fallback = fallback
        self._custom: list[Command] = []
        self._lock = threading.Lock()

    def add(self, command: Command) -> None:
        """Register a custom command below everything already registered."""
        with self._lock:
            self._custom.append(command)
        logger.info("router.add command={}", command.name)

    @property
    def commands(self) -> tuple[Command, ...]:
        with self._lock:
            custom = tuple(self._custom)
        fallback = (self._fallback,) if self._fallback is not None else ()
        return (*self._builtins, *custom, *fallback)

    def match(self, utterance: Utterance) -> Command | None:
        for command in self.commands:
            if command.match(utterance):
                return command
        return None

    async def dispatch(self, utterance: Utterance) -> Command | None:
        """Run the first matching command; returns it, or ``None`` when nothing matched."""
        command = self.match(utterance)
        if command is None:
            logger.debug("router.miss text={!r}", utterance.text)
            return None
        logger.info("router.hit command={} text={!r}", command.name, utterance.text)
        await command.run(utterance)
        return command


def starts_with_any(text: str, prefixes: Sequence[str]) -> str | None:
    """Return the first prefix ``text`` starts with."""
    for prefix in prefixes:
        if prefix and text.startswith(prefix):
            return prefix
    return None
