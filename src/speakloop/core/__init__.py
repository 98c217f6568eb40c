"""Core streaming answer pipeline."""

from speakloop.core.abort import AbortRegistry
from speakloop.core.pipeline import AnswerBag, AnswerPipeline, AnswerStep, PipelineOutcome, PipelineResult
from speakloop.core.router import CommandRouter
from speakloop.core.session import ConversationSession, KeepAliveState, SessionStatus
from speakloop.core.stream import StreamBuffer, StreamStatus
from speakloop.core.supersession import SupersessionGuard

__all__ = [
    "AbortRegistry",
    "AnswerBag",
    "AnswerPipeline",
    "AnswerStep",
    "CommandRouter",
    "ConversationSession",
    "KeepAliveState",
    "PipelineOutcome",
    "PipelineResult",
    "SessionStatus",
    "StreamBuffer",
    "StreamStatus",
    "SupersessionGuard",
]
