from __future__ import annotations


class StudioError(Exception):
    """Base error for the SuaraStudio library."""

    user_message = "Something went wrong. Please try again."


class DecodeError(StudioError):
    """Raised when model output or an uploaded file cannot be decoded."""

    user_message = "Failed to process the audio. The format may be unsupported or the file corrupted."


class ServiceError(StudioError):
    """Raised when the generation service fails or returns no audio."""

    user_message = "Failed to generate audio. Make sure the API key is valid and try again."


class ModelNotAvailableError(ServiceError):
    """Raised when the provider client library is missing."""


class ValidationError(StudioError):
    """Raised when user input is rejected before any network call."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.user_message = message


class PlaybackError(StudioError):
    """Raised when no audio output backend is available."""

    user_message = "Playback is unavailable on this machine."
