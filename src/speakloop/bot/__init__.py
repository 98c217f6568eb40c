"""Conversational bot built on the speaker and the model gateway."""

from speakloop.bot.service import Bot

__all__ = ["Bot"]
