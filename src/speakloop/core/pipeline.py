"""Ordered answer steps with cooperative supersession checkpoints."""

from __future__ import annotations

from typing import TypeAlias
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum

from loguru import logger

from speakloop.core.session import ConversationSession
from speakloop.core.supersession import SupersessionGuard
from speakloop.errors import SupersededError
from speakloop.types import Answer, PlaybackOutcome, Utterance


@dataclass(frozen=True)
class AnswerBag:
    """Result bag threaded through the answer steps."""

    answer: Answer | None = None
    res: PlaybackOutcome | None = None


AnswerStep: TypeAlias = Callable[[Utterance, AnswerBag], Awaitable[AnswerBag | None]]


class PipelineOutcome(StrEnum):
    COMPLETED = "completed"
    SUPERSEDED = "superseded"
    STOPPED = "stopped"


@dataclass(frozen=True)
class PipelineResult:
    """Outcome of one pipeline run."""

    bag: AnswerBag
    outcome: PipelineOutcome
    steps_run: int


class AnswerPipeline:
    """Run answer steps in order, checking for staleness between them.

    A step that raises contributes nothing and the run moves on. Before the first step
    and after every step the session status and the supersession snapshot are checked;
    once the session stopped or a newer utterance arrived, the remaining steps are
    skipped. An utterance superseded while it was queued runs no step at all. Effects
    of steps that already ran are kept.
    """

    def __init__(
        self,
        steps: Sequence[AnswerStep],
        *,
        session: ConversationSession,
        guard: SupersessionGuard,
    ) -> None:
        self._steps = tuple(steps)
        self._session = session
        self._guard = guard

    async def run(self, utterance: Utterance, *, snapshot: int | None = None) -> PipelineResult:
        """Run every step for ``utterance``.

        ``snapshot`` defaults to the guard's current tail; pass the sequence number the
        utterance was recorded with when newer utterances may already be queued.
        """
        if snapshot is None:
            snapshot = self._guard.snapshot()
        bag = AnswerBag()
        steps_run = 0
        logger.info("pipeline.start text={!r} snapshot={}", utterance.text, snapshot)
        try:
            self._checkpoint(snapshot)
            for step in self._steps:
                update = await self._run_step(step, utterance, bag)
                steps_run += 1
                if update is not None:
                    bag = update
                self._checkpoint(snapshot)
        except SupersededError as exc:
            outcome = PipelineOutcome.SUPERSEDED if self._session.is_running else PipelineOutcome.STOPPED
            logger.info("pipeline.abort outcome={} after_steps={} reason={}", outcome, steps_run, exc)
            return PipelineResult(bag=bag, outcome=outcome, steps_run=steps_run)

        logger.info("pipeline.finish steps={}", steps_run)
        return PipelineResult(bag=bag, outcome=PipelineOutcome.COMPLETED, steps_run=steps_run)

    async def _run_step(self, step: AnswerStep, utterance: Utterance, bag: AnswerBag) -> AnswerBag | None:
        name = getattr(step, "__name__", repr(step))
        try:
            return await step(utterance, bag)
        except Exception:
            # A failed step yields no data.
            logger.exception("pipeline.step.error step={}", name)
            return None

    def _checkpoint(self, snapshot: int) -> None:
        if not self._session.is_running:
            raise SupersededError("session stopped")
        if self._guard.has_new_since(snapshot):
            raise SupersededError("newer utterance arrived")
