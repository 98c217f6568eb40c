"""Playback of text and streamed answers through a voice backend."""

from __future__ import annotations

from typing import Protocol

from loguru import logger

from speakloop.core.session import ConversationSession
from speakloop.core.stream import StreamBuffer, StreamStatus
from speakloop.core.supersession import SupersessionGuard
from speakloop.errors import PlaybackError
from speakloop.types import PlaybackOutcome


class Voice(Protocol):
    """Minimal contract for the audio/TTS side of a device."""

    async def speak(self, text: str, *, audio: str | None = None) -> None: ...

    async def wake_up(self) -> None: ...

    async def sleep(self) -> None: ...

    async def switch_voice(self, name: str) -> bool: ...


class Speaker:
    """Speak answers while watching for stop and newer utterances."""

    def __init__(
        self,
        voice: Voice,
        *,
        session: ConversationSession,
        guard: SupersessionGuard,
        stream_response: bool = True,
        audio_beep: bool = False,
    ) -> None:
        self.voice = voice
        self.session = session
        self.guard = guard
        self.stream_response = stream_response
        self.audio_beep = audio_beep

    @property
    def keep_alive(self) -> bool:
        return self.session.keep_alive

    async def response(
        self,
        *,
        text: str | None = None,
        stream: StreamBuffer | None = None,
        audio: str | None = None,
        keep_alive: bool = False,
    ) -> PlaybackOutcome:
        """Play a text or a stream and report how playback ended."""
        snapshot = self.guard.snapshot()
        if stream is not None:
            outcome = await self._play_stream(stream, audio=audio, snapshot=snapshot)
        else:
            outcome = await self._play_text(text, audio=audio)
        if keep_alive and outcome is PlaybackOutcome.OK and not self._is_stale(snapshot):
            await self.wake_up()
        return outcome

    async def wake_up(self) -> None:
        await self.voice.wake_up()

    async def un_wake_up(self) -> None:
        await self.voice.sleep()

    async def switch_speaker(self, name: str) -> bool:
        try:
            return await self.voice.switch_voice(name)
        except Exception:
            logger.exception("speaker.switch.error voice={!r}", name)
            return False

    async def _play_text(self, text: str | None, *, audio: str | None) -> PlaybackOutcome:
        if not text:
            return PlaybackOutcome.NONE
        try:
            await self.voice.speak(text, audio=audio)
        except Exception:
            logger.exception("speaker.playback.error")
            return PlaybackOutcome.ERROR
        return PlaybackOutcome.OK

    async def _play_stream(self, stream: StreamBuffer, *, audio: str | None, snapshot: int) -> PlaybackOutcome:
        if not self.stream_response:
            return await self._play_whole(stream, audio=audio, snapshot=snapshot)

        cue = audio
        async for chunk in stream:
            if self._is_stale(snapshot):
                stream.cancel()
                return PlaybackOutcome.NONE
            if not chunk.strip():
                continue
            try:
                await self.voice.speak(chunk, audio=cue)
            except Exception as exc:
                logger.exception("speaker.playback.error request={}", stream.request_id)
                stream.cancel(PlaybackError(str(exc)))
                return PlaybackOutcome.ERROR
            cue = None
        return _stream_outcome(stream)

    async def _play_whole(self, stream: StreamBuffer, *, audio: str | None, snapshot: int) -> PlaybackOutcome:
        text = await stream.result()
        if self._is_stale(snapshot):
            return PlaybackOutcome.NONE
        if text is None:
            return _stream_outcome(stream)
        return await self._play_text(text, audio=audio)

    def _is_stale(self, snapshot: int) -> bool:
        return not self.session.is_running or self.guard.has_new_since(snapshot)


def _stream_outcome(stream: StreamBuffer) -> PlaybackOutcome:
    if stream.status is StreamStatus.FINISHED:
        return PlaybackOutcome.OK
    if stream.error is not None:
        logger.warning("speaker.stream.failed request={} error={}", stream.request_id, stream.error)
        return PlaybackOutcome.ERROR
    return PlaybackOutcome.NONE
