from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import pytest

from speakloop.config import Settings
from speakloop.core.session import ConversationSession
from speakloop.core.supersession import SupersessionGuard
from speakloop.errors import PlaybackError


@dataclass(frozen=True)
class FakeStreamEvent:
    kind: str
    data: dict[str, Any]


@dataclass
class FakeAsyncStreamEvents:
    events: list[FakeStreamEvent]
    error: object | None = None
    delay: float = 0.0
    first_delay: float = 0.0
    cancelled: bool = False

    def __aiter__(self):
        async def _iterator():
            try:
                if self.first_delay:
                    await asyncio.sleep(self.first_delay)
                for event in self.events:
                    if self.delay:
                        await asyncio.sleep(self.delay)
                    yield event
            except asyncio.CancelledError:
                self.cancelled = True
                raise

        return _iterator()


def text_stream(*deltas: str, delay: float = 0.0, first_delay: float = 0.0) -> FakeAsyncStreamEvents:
    text = "".join(deltas)
    events = [FakeStreamEvent("text", {"delta": delta}) for delta in deltas]
    events.append(FakeStreamEvent("final", {"text": text, "tool_calls": [], "usage": None, "ok": True}))
    return FakeAsyncStreamEvents(events=events, delay=delay, first_delay=first_delay)


def error_stream(kind: str = "provider", message: str = "boom") -> FakeAsyncStreamEvents:
    return FakeAsyncStreamEvents(
        events=[
            FakeStreamEvent("error", {"kind": kind, "message": message}),
            FakeStreamEvent("final", {"text": None, "tool_calls": [], "usage": None, "ok": False}),
        ]
    )


class FakeLLM:
    def __init__(self, *streams: FakeAsyncStreamEvents) -> None:
        self.streams = list(streams)
        self.calls: list[dict[str, Any]] = []

    async def stream_events_async(self, **kwargs: Any) -> FakeAsyncStreamEvents:
        self.calls.append(kwargs)
        if not self.streams:
            raise RuntimeError("no more scripted streams")
        return self.streams.pop(0)


class FakeVoice:
    def __init__(self, *, fail_on: str | None = None, on_speak: Callable[[str], None] | None = None) -> None:
        self.events: list[tuple[str, ...]] = []
        self.audio: list[str | None] = []
        self.fail_on = fail_on
        self.on_speak = on_speak
        self.voice_name = "default"
        self.listening = False

    @property
    def spoken(self) -> list[str]:
        return [event[1] for event in self.events if event[0] == "speak"]

    async def speak(self, text: str, *, audio: str | None = None) -> None:
        await asyncio.sleep(0)
        if self.fail_on is not None and self.fail_on in text:
            raise PlaybackError(f"cannot play {text!r}")
        self.events.append(("speak", text))
        self.audio.append(audio)
        if self.on_speak is not None:
            self.on_speak(text)

    async def wake_up(self) -> None:
        self.events.append(("wake_up",))
        self.listening = True

    async def sleep(self) -> None:
        self.events.append(("sleep",))
        self.listening = False

    async def switch_voice(self, name: str) -> bool:
        if not name:
            return False
        self.voice_name = name
        return True


async def wait_until(predicate: Callable[[], bool], *, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "model": "openai:test-model",
        "api_key": "test-key",
        "on_enter_ai": ["你好，我是傻妞，很高兴认识你"],
        "on_exit_ai": ["傻妞已退出"],
        "on_ai_asking": ["让我先想想"],
        "on_ai_replied": ["我说完了"],
        "on_ai_error": ["啊哦，出错了，请稍后再试吧！"],
        "first_submit_timeout_seconds": 1.0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def session() -> ConversationSession:
    session = ConversationSession()
    session.start()
    return session


@pytest.fixture
def guard() -> SupersessionGuard:
    return SupersessionGuard()


@pytest.fixture
def voice() -> FakeVoice:
    return FakeVoice()
