"""Application runtime wiring and the conversation loop."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterable
from contextlib import suppress

from loguru import logger

from speakloop.bot import Bot
from speakloop.bus import Inbound, UtteranceBus
from speakloop.config import Settings, get_settings
from speakloop.core.session import ConversationSession
from speakloop.core.supersession import SupersessionGuard
from speakloop.errors import ApiKeyNotConfiguredError, InvalidModelFormatError, ModelNotConfiguredError
from speakloop.gateway import ModelGateway
from speakloop.speaker.ai import AISpeaker
from speakloop.speaker.base import Voice
from speakloop.speaker.console import ConsoleVoice
from speakloop.store import ConversationStore
from speakloop.types import Command, Utterance

QUEUE_POLL_SECONDS = 0.2
MODEL_NOT_CONFIGURED_ERROR = "Model not configured. Set SPEAKLOOP_MODEL (e.g., 'openai:gpt-4o-mini')."
MODEL_FORMAT_ERROR = "Model must be in provider:model format (e.g., 'openai:gpt-4o-mini')."
API_KEY_NOT_CONFIGURED_ERROR = "API key not configured. Set SPEAKLOOP_API_KEY in your environment or .env file."


class VoiceRuntime:
    """Single-conversation runtime.

    ``submit`` records an utterance for supersession and aborts every in-flight
    generation before queueing it, so a new utterance barges in on the current answer
    instead of waiting behind it. ``run`` routes queued utterances one at a time and
    closes the store when it returns.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        gateway: ModelGateway,
        voice: Voice,
        store: ConversationStore | None = None,
    ) -> None:
        self.settings = settings
        self.session = ConversationSession()
        self.guard = SupersessionGuard()
        self.gateway = gateway
        self.store = store or ConversationStore(settings.store_path)
        self.bus = UtteranceBus()
        self.speaker = AISpeaker(voice, session=self.session, guard=self.guard, settings=settings)
        self.bot = Bot(self.speaker, gateway, self.store, settings)
        self._started = False

    @classmethod
    def build(cls, settings: Settings | None = None, *, voice: Voice | None = None) -> VoiceRuntime:
        settings = settings or get_settings()
        _validate_settings(settings)
        gateway = ModelGateway.from_settings(settings)
        voice = voice or ConsoleVoice(name=settings.bot_name, chars_per_second=settings.console_chars_per_second)
        return cls(settings, gateway=gateway, voice=voice)

    def add_command(self, command: Command) -> None:
        """Register a command after the built-ins and before the AI fallback."""
        self.speaker.add_command(command)

    def cancel(self, request_id: str) -> bool:
        return self.gateway.cancel(request_id)

    def start(self) -> None:
        self.session.start()
        if not self._started:
            self.bot.init()
            self._started = True
        logger.info("runtime.start name={}", self.speaker.name)

    def stop(self) -> None:
        self.session.stop()
        self._abort_inflight()
        logger.info("runtime.stop")

    def close(self) -> None:
        """Stop and release the store connection. The store reopens on next use."""
        self.stop()
        self.store.close()

    async def submit(self, utterance: Utterance | str) -> int:
        if isinstance(utterance, str):
            utterance = Utterance(text=utterance)
        seq = self.guard.append(utterance)
        self._abort_inflight()
        await self.bus.publish(Inbound(utterance=utterance, seq=seq))
        logger.info("runtime.submit seq={} text={!r}", seq, utterance.text)
        return seq

    async def run(self, source: AsyncIterable[Utterance] | None = None) -> None:
        """Route utterances until stopped, or until ``source`` is exhausted and drained."""
        self.start()
        feeder = asyncio.create_task(self._feed(source)) if source is not None else None
        try:
            while self.session.is_running:
                inbound = await self.bus.next(timeout_seconds=QUEUE_POLL_SECONDS)
                if inbound is None:
                    if feeder is not None and feeder.done():
                        break
                    continue
                await self.handle(inbound)
        finally:
            if feeder is not None and not feeder.done():
                feeder.cancel()
                with suppress(asyncio.CancelledError):
                    await feeder
            self.close()

    async def handle_once(self, timeout_seconds: float | None = None) -> Command | None:
        """Route one queued utterance, if any arrives within the timeout."""
        inbound = await self.bus.next(timeout_seconds=timeout_seconds)
        if inbound is None:
            return None
        return await self.handle(inbound)

    async def handle(self, inbound: Inbound) -> Command | None:
        try:
            return await self.speaker.handle(inbound.utterance, seq=inbound.seq)
        except Exception:
            logger.exception("runtime.handle.error seq={}", inbound.seq)
            return None

    async def _feed(self, source: AsyncIterable[Utterance]) -> None:
        async for utterance in source:
            if not self.session.is_running:
                return
            await self.submit(utterance)

    def _abort_inflight(self) -> None:
        for request_id in self.gateway.aborts.pending():
            self.gateway.cancel(request_id)


def _validate_settings(settings: Settings) -> None:
    model = settings.model
    if not model:
        raise ModelNotConfiguredError(MODEL_NOT_CONFIGURED_ERROR)
    if ":" not in model:
        raise InvalidModelFormatError(MODEL_FORMAT_ERROR)
    if not settings.api_key and _requires_api_key(model, settings.api_base):
        raise ApiKeyNotConfiguredError(API_KEY_NOT_CONFIGURED_ERROR)


def _requires_api_key(model: str, api_base: str | None) -> bool:
    provider = model.split(":", 1)[0].lower().strip()
    if api_base:
        return False
    return provider not in {"ollama", "lmstudio", "local"}
