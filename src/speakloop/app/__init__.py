"""Application runtime."""

from speakloop.app.runtime import VoiceRuntime

__all__ = ["VoiceRuntime"]
