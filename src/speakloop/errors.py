"""Application-level exception types for speakloop."""

from __future__ import annotations


class SpeakloopError(Exception):
    """Base exception for speakloop."""


class ConfigurationError(SpeakloopError):
    """Base exception for configuration and startup validation errors."""


class ModelNotConfiguredError(ConfigurationError):
    """Raised when model configuration is missing."""


class InvalidModelFormatError(ConfigurationError):
    """Raised when model format is not provider:model."""


class ApiKeyNotConfiguredError(ConfigurationError):
    """Raised when an API key is required but missing."""


class GatewayError(SpeakloopError):
    """Raised when the model call failed or returned nothing."""


class FirstTokenTimeoutError(GatewayError):
    """Raised when the model produced no output before the first-token deadline."""


class PlaybackError(SpeakloopError):
    """Raised by voice backends when audio output fails."""


class SupersededError(SpeakloopError):
    """Signals that a newer utterance made the current answer stale.

    Never surfaced to the user.
    """
