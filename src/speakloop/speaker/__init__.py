"""Speaker layer: playback, built-in commands and answer steps."""

from speakloop.speaker.ai import AISpeaker
from speakloop.speaker.base import Speaker, Voice
from speakloop.speaker.console import ConsoleVoice

__all__ = ["AISpeaker", "ConsoleVoice", "Speaker", "Voice"]
