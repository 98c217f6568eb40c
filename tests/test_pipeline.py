from dataclasses import replace

import pytest

from speakloop.core.pipeline import AnswerBag, AnswerPipeline, PipelineOutcome
from speakloop.core.session import ConversationSession
from speakloop.core.supersession import SupersessionGuard
from speakloop.types import Answer, PlaybackOutcome, Utterance


def _recording_step(name: str, calls: list[str]):
    async def step(msg: Utterance, bag: AnswerBag) -> None:
        calls.append(name)

    step.__name__ = name
    return step


@pytest.mark.asyncio
async def test_steps_run_in_order_and_merge_bag(session: ConversationSession, guard: SupersessionGuard) -> None:
    calls: list[str] = []

    async def answer(msg: Utterance, bag: AnswerBag) -> AnswerBag:
        calls.append("answer")
        return replace(bag, answer=Answer(text="晴天"))

    async def play(msg: Utterance, bag: AnswerBag) -> AnswerBag:
        calls.append("play")
        assert bag.answer == Answer(text="晴天")
        return replace(bag, res=PlaybackOutcome.OK)

    pipeline = AnswerPipeline(
        [_recording_step("think", calls), answer, play, _recording_step("done", calls)],
        session=session,
        guard=guard,
    )

    result = await pipeline.run(Utterance(text="请问今天天气"))

    assert calls == ["think", "answer", "play", "done"]
    assert result.outcome is PipelineOutcome.COMPLETED
    assert result.steps_run == 4
    assert result.bag == AnswerBag(answer=Answer(text="晴天"), res=PlaybackOutcome.OK)


@pytest.mark.asyncio
async def test_failing_step_contributes_nothing(session: ConversationSession, guard: SupersessionGuard) -> None:
    calls: list[str] = []

    async def broken(msg: Utterance, bag: AnswerBag) -> AnswerBag:
        raise RuntimeError("network down")

    pipeline = AnswerPipeline(
        [broken, _recording_step("after", calls)],
        session=session,
        guard=guard,
    )

    result = await pipeline.run(Utterance(text="请问今天天气"))

    assert calls == ["after"]
    assert result.outcome is PipelineOutcome.COMPLETED
    assert result.bag == AnswerBag()


@pytest.mark.asyncio
async def test_newer_utterance_skips_remaining_steps(
    session: ConversationSession, guard: SupersessionGuard
) -> None:
    calls: list[str] = []

    async def answer(msg: Utterance, bag: AnswerBag) -> AnswerBag:
        calls.append("answer")
        return replace(bag, answer=Answer(text="晴天"))

    async def interrupted(msg: Utterance, bag: AnswerBag) -> None:
        calls.append("interrupted")
        guard.append(Utterance(text="请停下"))

    pipeline = AnswerPipeline(
        [answer, interrupted, _recording_step("never", calls)],
        session=session,
        guard=guard,
    )

    result = await pipeline.run(Utterance(text="请问今天天气"))

    assert calls == ["answer", "interrupted"]
    assert result.outcome is PipelineOutcome.SUPERSEDED
    assert result.steps_run == 2
    assert result.bag.answer == Answer(text="晴天")


@pytest.mark.asyncio
async def test_stopped_session_skips_remaining_steps(
    session: ConversationSession, guard: SupersessionGuard
) -> None:
    calls: list[str] = []

    async def stop(msg: Utterance, bag: AnswerBag) -> None:
        calls.append("stop")
        session.stop()

    pipeline = AnswerPipeline([stop, _recording_step("never", calls)], session=session, guard=guard)

    result = await pipeline.run(Utterance(text="请问今天天气"))

    assert calls == ["stop"]
    assert result.outcome is PipelineOutcome.STOPPED


@pytest.mark.asyncio
async def test_explicit_snapshot_sees_already_queued_utterance(
    session: ConversationSession, guard: SupersessionGuard
) -> None:
    calls: list[str] = []
    first = guard.append(Utterance(text="请讲个故事"))
    guard.append(Utterance(text="请停下"))

    pipeline = AnswerPipeline(
        [_recording_step("think", calls), _recording_step("never", calls)],
        session=session,
        guard=guard,
    )

    result = await pipeline.run(Utterance(text="请讲个故事"), snapshot=first)

    assert calls == []
    assert result.outcome is PipelineOutcome.SUPERSEDED
    assert result.steps_run == 0
    assert result.bag == AnswerBag()


@pytest.mark.asyncio
async def test_stopped_session_runs_no_step(guard: SupersessionGuard) -> None:
    calls: list[str] = []
    pipeline = AnswerPipeline([_recording_step("think", calls)], session=ConversationSession(), guard=guard)

    result = await pipeline.run(Utterance(text="请问今天天气"))

    assert calls == []
    assert result.outcome is PipelineOutcome.STOPPED
    assert result.steps_run == 0
