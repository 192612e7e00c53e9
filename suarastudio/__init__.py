from __future__ import annotations

from .audio import (
    CHANNELS,
    SAMPLE_RATE,
    AudioBuffer,
    decode_file,
    decode_pcm,
    encode_wav,
    write_wav,
)
from .config import (
    VOICE_OPTIONS,
    MelodyConfig,
    MusicGenre,
    MusicMood,
    ScriptBlock,
    StudioSettings,
    StudioSnapshot,
    TabMode,
    VoiceName,
)
from .editor import EditConfig, apply_edits, update_edit_config
from .errors import (
    DecodeError,
    ModelNotAvailableError,
    PlaybackError,
    ServiceError,
    StudioError,
    ValidationError,
)
from .history import History, HistoryItem, WavArtifact
from .logging_utils import configure_logging as _configure_logging
from .models import GeneratedAudio, SpeechService, build_service
from .playback import Analyser, PlaybackBackend, PlaybackEngine
from .session import JsonFileStore, SessionStore
from .studio import Studio

__all__ = [
    "CHANNELS",
    "SAMPLE_RATE",
    "VOICE_OPTIONS",
    "Analyser",
    "AudioBuffer",
    "DecodeError",
    "EditConfig",
    "GeneratedAudio",
    "History",
    "HistoryItem",
    "JsonFileStore",
    "MelodyConfig",
    "ModelNotAvailableError",
    "MusicGenre",
    "MusicMood",
    "PlaybackBackend",
    "PlaybackEngine",
    "PlaybackError",
    "ScriptBlock",
    "ServiceError",
    "SessionStore",
    "SpeechService",
    "Studio",
    "StudioError",
    "StudioSettings",
    "StudioSnapshot",
    "TabMode",
    "ValidationError",
    "VoiceName",
    "WavArtifact",
    "apply_edits",
    "build_service",
    "decode_file",
    "decode_pcm",
    "encode_wav",
    "update_edit_config",
    "write_wav",
]

__version__ = "0.1.0"

_configure_logging()
del _configure_logging
