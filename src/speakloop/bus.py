"""In-memory async bus for inbound utterances."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from speakloop.types import Utterance


@dataclass(frozen=True)
class Inbound:
    """An utterance together with the supersession sequence number it was recorded at."""

    utterance: Utterance
    seq: int


class UtteranceBus:
    """FIFO of recorded utterances waiting to be routed."""

    def __init__(self) -> None:
        self._inbound: asyncio.Queue[Inbound] = asyncio.Queue()

    async def publish(self, message: Inbound) -> None:
        await self._inbound.put(message)

    async def next(self, timeout_seconds: float | None = None) -> Inbound | None:
        if timeout_seconds is None:
            return await self._inbound.get()
        try:
            return await asyncio.wait_for(self._inbound.get(), timeout=timeout_seconds)
        except TimeoutError:
            return None

    def empty(self) -> bool:
        return self._inbound.empty()
