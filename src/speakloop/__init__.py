"""speakloop - interruptible streaming answers for voice assistants."""

from .app import VoiceRuntime
from .core import AbortRegistry, AnswerPipeline, CommandRouter, StreamBuffer, SupersessionGuard
from .types import Answer, Command, PlaybackOutcome, Utterance

__version__ = "0.1.0"

__all__ = [
    "AbortRegistry",
    "Answer",
    "AnswerPipeline",
    "Command",
    "CommandRouter",
    "PlaybackOutcome",
    "StreamBuffer",
    "SupersessionGuard",
    "Utterance",
    "VoiceRuntime",
]
