from __future__ import annotations

import base64
import binascii
import logging
import re
from collections.abc import Sequence
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field

from .audio import CHANNELS, SAMPLE_RATE, AudioBuffer, decode_pcm, decode_wav_bytes
from .config import MelodyConfig, ScriptBlock, StudioSettings
from .errors import DecodeError

_LOGGER = logging.getLogger("suarastudio.models")
_RATE_PATTERN = re.compile(r"rate=(\d+)")
_CHANNELS_PATTERN = re.compile(r"channels=(\d+)")
_WAV_MIME_TYPES = frozenset({"audio/wav", "audio/x-wav", "audio/wave"})


class GeneratedAudio(BaseModel):
    """Base64 audio returned by a generation back end plus its PCM layout."""

    data: str
    sample_rate: int = Field(default=SAMPLE_RATE, gt=0)
    channels: int = Field(default=CHANNELS, gt=0)
    mime_type: str | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def from_inline(cls, data: str, mime_type: str | None = None) -> "GeneratedAudio":
        """Build from inline data, reading ``rate=``/``channels=`` from the mime type."""

        sample_rate = SAMPLE_RATE
        channels = CHANNELS
        if mime_type:
            rate_match = _RATE_PATTERN.search(mime_type)
            if rate_match:
                sample_rate = int(rate_match.group(1))
            channels_match = _CHANNELS_PATTERN.search(mime_type)
            if channels_match:
                channels = int(channels_match.group(1))
        return cls(data=data, sample_rate=sample_rate, channels=channels, mime_type=mime_type)

    @property
    def is_wav(self) -> bool:
        if not self.mime_type:
            return False
        return self.mime_type.split(";", 1)[0].strip().lower() in _WAV_MIME_TYPES

    def decode(self) -> AudioBuffer:
        if not self.is_wav:
            return decode_pcm(self.data, sample_rate=self.sample_rate, channels=self.channels)
        try:
            raw = base64.b64decode("".join(self.data.split()), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise DecodeError("Malformed base64 audio payload") from exc
        return decode_wav_bytes(raw)


class SpeechService(Protocol):
    """Async generation back end used by the studio."""

    async def synthesize_script(self, blocks: Sequence[ScriptBlock]) -> GeneratedAudio: ...

    async def synthesize_melody(self, config: MelodyConfig) -> GeneratedAudio: ...

    async def transform_audio(self, buffer: AudioBuffer, instruction: str) -> GeneratedAudio: ...


def build_service(settings: StudioSettings) -> SpeechService:
    from .providers.litellm import LiteLLMSpeechAdapter

    _LOGGER.debug(
        "Using LiteLLM speech adapter (speech=%s, transform=%s).",
        settings.speech_model,
        settings.transform_model,
    )
    return LiteLLMSpeechAdapter(
        speech_model=settings.speech_model,
        transform_model=settings.transform_model,
        api_key=settings.api_key,
    )
