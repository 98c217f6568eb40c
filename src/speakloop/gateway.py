"""Model gateway backed by Republic, with cancellable streaming answers."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from functools import partial
from typing import Any, TypeAlias

from loguru import logger
from republic import LLM
from republic.tape import InMemoryTapeStore

from speakloop.config import Settings
from speakloop.core.abort import AbortRegistry, call_on_loop
from speakloop.core.stream import DEFAULT_MAX_SENTENCE_LENGTH, StreamBuffer
from speakloop.errors import GatewayError
from speakloop.logging_utils import bind_request

OnFinished: TypeAlias = Callable[[str], Awaitable[None]]


def build_llm(settings: Settings) -> LLM:
    """Build Republic LLM client configured for speakloop."""

    return LLM(
        settings.model,
        api_key=settings.api_key,
        api_base=settings.api_base,
        tape_store=InMemoryTapeStore(),
    )


class ModelGateway:
    """Start, stream and cancel generation requests.

    Every streamed request gets a fresh request id, an entry in the abort registry and
    a ``StreamBuffer``. The entry is removed when the producer finishes, fails, is
    canceled or the buffer times out.
    """

    def __init__(
        self,
        llm: Any,
        *,
        aborts: AbortRegistry | None = None,
        max_tokens: int = 1024,
        first_submit_timeout: float | None = 3.0,
        max_sentence_length: int = DEFAULT_MAX_SENTENCE_LENGTH,
    ) -> None:
        self._llm = llm
        self.aborts = aborts or AbortRegistry()
        self._max_tokens = max_tokens
        self._first_submit_timeout = first_submit_timeout
        self._max_sentence_length = max_sentence_length
        self._tasks: set[asyncio.Task[None]] = set()

    @classmethod
    def from_settings(cls, settings: Settings, *, aborts: AbortRegistry | None = None) -> ModelGateway:
        return cls(
            build_llm(settings),
            aborts=aborts,
            max_tokens=settings.max_tokens,
            first_submit_timeout=settings.first_submit_timeout_seconds,
            max_sentence_length=settings.max_sentence_length,
        )

    def cancel(self, request_id: str) -> bool:
        return self.aborts.trigger(request_id)

    async def generate(self, prompt: str, *, system_prompt: str | None = None) -> str:
        """Return the complete answer text or raise ``GatewayError``."""
        return await self._chat_stream(prompt, system_prompt=system_prompt)

    def stream(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        on_finished: OnFinished | None = None,
        on_chunk: Callable[[str], None] | None = None,
    ) -> StreamBuffer:
        """Open a streamed generation and return its buffer immediately.

        Must be called inside a running event loop. ``cancel`` may be called from any
        thread; the producer task is always canceled on its own loop.
        """
        request_id = uuid.uuid4().hex
        buffer = StreamBuffer(
            request_id=request_id,
            first_submit_timeout=self._first_submit_timeout,
            max_sentence_length=self._max_sentence_length,
            on_chunk=on_chunk,
            on_abort=partial(self.cancel, request_id),
        )
        task = asyncio.create_task(
            self._produce(buffer, prompt, system_prompt=system_prompt, on_finished=on_finished),
            name=f"gateway.stream:{request_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self.aborts.register(request_id, partial(call_on_loop, asyncio.get_running_loop(), _abort, task, buffer))
        logger.info("gateway.stream.start request={}", request_id)
        return buffer

    async def _produce(
        self,
        buffer: StreamBuffer,
        prompt: str,
        *,
        system_prompt: str | None,
        on_finished: OnFinished | None,
    ) -> None:
        request_id = buffer.request_id
        bind_request(request_id)
        error: GatewayError | None = None
        text = ""
        try:
            text = await self._chat_stream(
                prompt,
                system_prompt=system_prompt,
                request_id=request_id,
                on_text=buffer.add_chunk,
            )
        except GatewayError as exc:
            error = exc
        finally:
            self.aborts.clear(request_id)

        if error is not None:
            buffer.cancel(error)
            return
        if not buffer.finish(text):
            logger.info("gateway.stream.late request={} status={}", request_id, buffer.status)
            return
        logger.info("gateway.stream.finish request={} chars={}", request_id, len(text))
        if on_finished is None:
            return
        try:
            await on_finished(text)
        except Exception:
            logger.exception("gateway.stream.on_finished.error request={}", request_id)

    async def _chat_stream(
        self,
        prompt: str,
        *,
        system_prompt: str | None,
        request_id: str | None = None,
        on_text: Callable[[str], None] | None = None,
    ) -> str:
        parts: list[str] = []
        final_event: dict[str, Any] | None = None
        error_event: dict[str, Any] | None = None
        try:
            stream = await self._llm.stream_events_async(
                prompt=prompt,
                system_prompt=system_prompt,
                max_tokens=self._max_tokens,
            )
            async for event in stream:
                if request_id is not None and request_id not in self.aborts:
                    raise GatewayError(f"request {request_id} aborted")
                event_kind = getattr(event, "kind", None)
                event_data = getattr(event, "data", None)
                if not isinstance(event_data, dict):
                    continue
                if event_kind == "text":
                    delta = event_data.get("delta")
                    if isinstance(delta, str) and delta:
                        parts.append(delta)
                        if on_text is not None:
                            on_text(delta)
                elif event_kind == "error":
                    error_event = event_data
                elif event_kind == "final":
                    final_event = event_data
        except GatewayError:
            raise
        except Exception as exc:
            logger.exception("gateway.call.error")
            raise GatewayError(f"model_call_error: {exc!s}") from exc

        return _final_text(
            parts,
            final_event=final_event,
            error_event=error_event,
            stream_error=getattr(stream, "error", None),
        )


def _abort(task: asyncio.Task[None], buffer: StreamBuffer) -> None:
    buffer.cancel()
    task.cancel()


def _final_text(
    parts: list[str],
    *,
    final_event: dict[str, Any] | None,
    error_event: dict[str, Any] | None,
    stream_error: object | None,
) -> str:
    if stream_error is not None:
        raise GatewayError(_format_stream_error(stream_error))
    if error_event is not None:
        raise GatewayError(_format_error_event(error_event))
    if final_event is not None and final_event.get("ok") is False:
        raise GatewayError(_format_error_event(final_event))

    text = "".join(parts)
    if final_event is not None and isinstance(final_text := final_event.get("text"), str) and final_text:
        text = final_text
    if not text.strip():
        raise GatewayError("model returned an empty answer")
    return text


def _format_stream_error(error: object) -> str:
    kind = getattr(error, "kind", None)
    message = getattr(error, "message", None)
    kind_value = getattr(kind, "value", kind)
    if isinstance(kind_value, str) and isinstance(message, str):
        return f"{kind_value}: {message}"
    if isinstance(message, str):
        return message
    return str(error)


def _format_error_event(error_event: dict[str, Any]) -> str:
    kind = error_event.get("kind")
    message = error_event.get("message")
    if isinstance(kind, str) and isinstance(message, str):
        return f"{kind}: {message}"
    if isinstance(message, str):
        return message
    return "stream_events_error: unknown"
