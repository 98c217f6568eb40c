"""Speaker with built-in conversation commands and the AI answer steps."""

from __future__ import annotations

import itertools
import random
from typing import TypeAlias
from collections.abc import Awaitable, Callable, Sequence
from contextvars import ContextVar
from dataclasses import replace

from loguru import logger

from speakloop.config import Settings
from speakloop.core.pipeline import AnswerBag, AnswerPipeline, AnswerStep, PipelineResult
from speakloop.core.router import CommandRouter, starts_with_any
from speakloop.core.session import ConversationSession
from speakloop.core.supersession import SupersessionGuard
from speakloop.speaker.base import Speaker, Voice
from speakloop.types import Answer, Command, PlaybackOutcome, Utterance

AskAI: TypeAlias = Callable[[Utterance], Awaitable[Answer | None]]

STREAM_DISABLED_NOTICE = "您已关闭流式响应(stream_response)，无法使用连续对话模式"
SWITCHING_VOICE = "正在切换音色，请稍等..."
VOICE_SWITCHED = "音色已切换！"
VOICE_SWITCH_FAILED = "音色切换失败！"

_inbound_seq: ContextVar[int | None] = ContextVar("inbound_seq", default=None)


def pick_one(options: Sequence[str]) -> str | None:
    if not options:
        return None
    return random.choice(options)


def default_switch_speaker_prefixes() -> list[str]:
    """Every ``[把] 音色|声音 切换|换|调 到|为|成`` combination."""
    words = [
        ["把", ""],
        ["音色", "声音"],
        ["切换", "换", "调"],
        ["到", "为", "成"],
    ]
    return ["".join(parts) for parts in itertools.product(*words)]


class AISpeaker(Speaker):
    """Route utterances to built-in behaviours or the answer pipeline."""

    def __init__(
        self,
        voice: Voice,
        *,
        session: ConversationSession,
        guard: SupersessionGuard,
        settings: Settings,
        ask_ai: AskAI | None = None,
    ) -> None:
        super().__init__(
            voice,
            session=session,
            guard=guard,
            stream_response=settings.stream_response,
            audio_beep=settings.audio_beep,
        )
        self.ask_ai = ask_ai
        self.name = settings.bot_name
        self.call_ai_keywords = list(settings.call_ai_keywords)
        self.wake_up_keywords = list(settings.wake_up_keywords)
        self.exit_keywords = list(settings.exit_keywords)
        self.switch_speaker_keywords = (
            list(settings.switch_speaker_keywords)
            if settings.switch_speaker_keywords is not None
            else default_switch_speaker_prefixes()
        )
        self.on_enter_ai = list(settings.on_enter_ai)
        self.on_exit_ai = list(settings.on_exit_ai)
        self.on_ai_asking = list(settings.on_ai_asking)
        self.on_ai_replied = list(settings.on_ai_replied)
        self.on_ai_error = list(settings.on_ai_error)
        self.audio_active = settings.audio_active
        self.audio_error = settings.audio_error
        self.router = CommandRouter(self._builtin_commands(), fallback=self._ask_ai_command())
        self.pipeline = AnswerPipeline(self._answer_steps(), session=session, guard=guard)

    def add_command(self, command: Command) -> None:
        self.router.add(command)

    async def handle(self, utterance: Utterance, *, seq: int | None = None) -> Command | None:
        """Dispatch one utterance.

        ``seq`` is the supersession sequence number the utterance was recorded with;
        the answer pipeline treats anything recorded after it as superseding.
        """
        token = _inbound_seq.set(seq)
        try:
            return await self.router.dispatch(utterance)
        finally:
            _inbound_seq.reset(token)

    async def enter_keep_alive(self) -> None:
        if not self.stream_response:
            await self.response(text=STREAM_DISABLED_NOTICE)
            return
        if text := pick_one(self.on_enter_ai):
            await self.response(text=text)
        self.session.activate()
        await self.wake_up()
        logger.info("speaker.keep_alive.enter name={}", self.name)

    async def exit_keep_alive(self) -> None:
        self.session.deactivate()
        if text := pick_one(self.on_exit_ai):
            await self.response(text=text)
        await self.un_wake_up()
        logger.info("speaker.keep_alive.exit name={}", self.name)

    async def switch_voice(self, utterance: Utterance) -> None:
        prefix = starts_with_any(utterance.text, self.switch_speaker_keywords)
        if prefix is None:
            return
        await self.response(text=SWITCHING_VOICE)
        voice_name = utterance.text[len(prefix) :].strip()
        success = await self.switch_speaker(voice_name)
        await self.response(
            text=VOICE_SWITCHED if success else VOICE_SWITCH_FAILED,
            keep_alive=self.keep_alive,
        )

    async def ask_ai_for_answer(self, utterance: Utterance) -> PipelineResult:
        logger.info("speaker.ask text={!r}", utterance.text)
        snapshot = _inbound_seq.get()
        return await self.pipeline.run(utterance, snapshot=snapshot)

    def _builtin_commands(self) -> list[Command]:
        return [
            Command(
                name="wake",
                match=lambda msg: (
                    not self.keep_alive and starts_with_any(msg.text, self.wake_up_keywords) is not None
                ),
                run=lambda msg: self.enter_keep_alive(),
            ),
            Command(
                name="exit",
                match=lambda msg: self.keep_alive and starts_with_any(msg.text, self.exit_keywords) is not None,
                run=lambda msg: self.exit_keep_alive(),
            ),
            Command(
                name="switch_voice",
                match=lambda msg: starts_with_any(msg.text, self.switch_speaker_keywords) is not None,
                run=self.switch_voice,
            ),
        ]

    def _ask_ai_command(self) -> Command:
        async def run(msg: Utterance) -> None:
            await self.ask_ai_for_answer(msg)

        return Command(
            name="ask_ai",
            match=lambda msg: self.keep_alive or starts_with_any(msg.text, self.call_ai_keywords) is not None,
            run=run,
        )

    def _answer_steps(self) -> list[AnswerStep]:
        return [
            self._announce_thinking,
            self._invoke_model,
            self._play_answer,
            self._announce_done,
            self._announce_error,
            self._rearm_keep_alive,
        ]

    async def _announce_thinking(self, msg: Utterance, bag: AnswerBag) -> None:
        if text := pick_one(self.on_ai_asking):
            await self.response(text=text, audio=self.audio_active)
            logger.info("speaker.thinking text={!r}", text)

    async def _invoke_model(self, msg: Utterance, bag: AnswerBag) -> AnswerBag | None:
        if self.ask_ai is None:
            logger.warning("speaker.ask_ai.missing")
            return None
        answer = await self.ask_ai(msg)
        if answer is None or answer.empty:
            logger.info("speaker.ask_ai.empty")
            return None
        return replace(bag, answer=answer)

    async def _play_answer(self, msg: Utterance, bag: AnswerBag) -> AnswerBag | None:
        if bag.answer is None:
            return None
        res = await self.response(text=bag.answer.text, stream=bag.answer.stream)
        logger.info("speaker.answer.played res={}", res)
        return replace(bag, res=res)

    async def _announce_done(self, msg: Utterance, bag: AnswerBag) -> None:
        if bag.answer is None or bag.res is not PlaybackOutcome.OK:
            return
        if self.audio_beep or not self.stream_response:
            return
        if text := pick_one(self.on_ai_replied):
            await self.response(text=text)

    async def _announce_error(self, msg: Utterance, bag: AnswerBag) -> None:
        if bag.res is not PlaybackOutcome.ERROR:
            return
        if text := pick_one(self.on_ai_error):
            await self.response(text=text, audio=self.audio_error)
            logger.info("speaker.answer.error_notice text={!r}", text)

    async def _rearm_keep_alive(self, msg: Utterance, bag: AnswerBag) -> None:
        if self.keep_alive:
            await self.wake_up()
            logger.info("speaker.keep_alive.rearm")
