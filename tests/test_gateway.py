import asyncio

import pytest
from conftest import FakeAsyncStreamEvents, FakeLLM, error_stream, text_stream, wait_until

from speakloop.core.stream import StreamStatus
from speakloop.errors import FirstTokenTimeoutError, GatewayError
from speakloop.gateway import ModelGateway


class RaisingLLM:
    async def stream_events_async(self, **kwargs):
        raise RuntimeError("connection reset")


@pytest.mark.asyncio
async def test_stream_delivers_answer_and_clears_registry() -> None:
    llm = FakeLLM(text_stream("你好。", "今天不错。"))
    gateway = ModelGateway(llm, max_tokens=256, first_submit_timeout=1.0)
    finished = asyncio.Event()
    saved: list[str] = []

    async def on_finished(text: str) -> None:
        saved.append(text)
        finished.set()

    buffer = gateway.stream("你好吗", system_prompt="你是傻妞", on_finished=on_finished)
    assert buffer.request_id in gateway.aborts

    chunks = [chunk async for chunk in buffer]
    await asyncio.wait_for(finished.wait(), timeout=1.0)

    assert "".join(chunks) == "你好。今天不错。"
    assert buffer.status is StreamStatus.FINISHED
    assert saved == ["你好。今天不错。"]
    assert len(gateway.aborts) == 0
    assert llm.calls == [{"prompt": "你好吗", "system_prompt": "你是傻妞", "max_tokens": 256}]


@pytest.mark.asyncio
async def test_stream_error_event_cancels_buffer() -> None:
    gateway = ModelGateway(FakeLLM(error_stream("rate_limit", "slow down")))
    saved: list[str] = []

    async def on_finished(text: str) -> None:
        saved.append(text)

    buffer = gateway.stream("你好吗", on_finished=on_finished)

    assert await buffer.result() is None
    assert buffer.status is StreamStatus.CANCELED
    assert isinstance(buffer.error, GatewayError)
    assert str(buffer.error) == "rate_limit: slow down"
    assert saved == []
    assert len(gateway.aborts) == 0


@pytest.mark.asyncio
async def test_empty_answer_is_an_error() -> None:
    gateway = ModelGateway(FakeLLM(text_stream()))

    buffer = gateway.stream("你好吗")

    assert await buffer.result() is None
    assert isinstance(buffer.error, GatewayError)
    assert len(gateway.aborts) == 0


@pytest.mark.asyncio
async def test_model_exception_becomes_gateway_error() -> None:
    gateway = ModelGateway(RaisingLLM())

    buffer = gateway.stream("你好吗")

    assert await buffer.result() is None
    assert isinstance(buffer.error, GatewayError)
    assert "connection reset" in str(buffer.error)
    assert len(gateway.aborts) == 0


@pytest.mark.asyncio
async def test_cancel_stops_generation() -> None:
    events = text_stream("第一句。", "第二句。", "第三句。", delay=0.05)
    gateway = ModelGateway(FakeLLM(events))
    saved: list[str] = []

    async def on_finished(text: str) -> None:
        saved.append(text)

    buffer = gateway.stream("讲个故事", on_finished=on_finished)
    assert await buffer.next_chunk() == "第一句。"

    assert gateway.cancel(buffer.request_id) is True
    assert gateway.cancel(buffer.request_id) is False
    assert buffer.status is StreamStatus.CANCELED
    assert await buffer.next_chunk() is None

    await wait_until(lambda: events.cancelled)
    assert len(gateway.aborts) == 0
    assert saved == []
    assert buffer.text == "第一句。"


@pytest.mark.asyncio
async def test_first_token_timeout_aborts_generation() -> None:
    events = text_stream("太迟了。", first_delay=5.0)
    gateway = ModelGateway(FakeLLM(events), first_submit_timeout=0.02)

    buffer = gateway.stream("你好吗")

    assert await buffer.result() is None
    assert buffer.status is StreamStatus.TIMED_OUT
    assert isinstance(buffer.error, FirstTokenTimeoutError)
    assert len(gateway.aborts) == 0
    await wait_until(lambda: events.cancelled)


@pytest.mark.asyncio
async def test_generate_returns_complete_text() -> None:
    gateway = ModelGateway(FakeLLM(text_stream("晴天", "。")))

    assert await gateway.generate("今天天气", system_prompt="你是傻妞") == "晴天。"


@pytest.mark.asyncio
async def test_generate_prefers_final_text() -> None:
    events = FakeAsyncStreamEvents(events=text_stream("晴").events[:1] + text_stream("晴天。").events[-1:])
    gateway = ModelGateway(FakeLLM(events))

    assert await gateway.generate("今天天气") == "晴天。"


@pytest.mark.asyncio
async def test_generate_raises_on_error_event() -> None:
    gateway = ModelGateway(FakeLLM(error_stream()))

    with pytest.raises(GatewayError, match="provider: boom"):
        await gateway.generate("今天天气")
