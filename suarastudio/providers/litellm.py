from __future__ import annotations

import asyncio
import atexit
import logging
import warnings
from collections.abc import Mapping, Sequence
from threading import Event, Lock, Thread
from typing import Any, Coroutine

from pydantic import BaseModel, Field

from ..audio import AudioBuffer, wav_to_base64
from ..config import DEFAULT_SPEECH_MODEL, DEFAULT_TRANSFORM_MODEL, MelodyConfig, ScriptBlock
from ..errors import ModelNotAvailableError, ServiceError
from ..models import GeneratedAudio
from ..prompts import MELODY_VOICE, format_script, melody_prompt, speaker_voices, transform_prompt

_LOGGER = logging.getLogger("suarastudio.providers.litellm")
_RESERVED_LITELLM_KWARGS = frozenset({"model", "messages", "modalities", "audio", "api_key"})
_PCM_FORMAT = "pcm16"
_NO_AUDIO_MESSAGE = "No audio data received from the generation service."
_litellm_quieted = False


class _BackgroundLoop:
    """Long-lived event loop thread shared by every LiteLLM request.

    LiteLLM pools async HTTP clients per event loop, so requests made from
    short-lived ``asyncio.run`` loops are funnelled onto this one.
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: Thread | None = None
        self._ready = Event()
        self._lock = Lock()
        self._atexit_registered = False

    @property
    def started(self) -> bool:
        return self._loop is not None and not self._loop.is_closed()

    def get(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._loop is None or self._loop.is_closed():
                self._start()
            loop = self._loop
        if loop is None:
            raise RuntimeError(f"{self._name} failed to start")
        return loop

    def _start(self) -> None:
        self._ready.clear()
        self._thread = Thread(target=self._serve, name=self._name, daemon=True)
        self._thread.start()
        self._ready.wait()
        if not self._atexit_registered:
            atexit.register(self.shutdown)
            self._atexit_registered = True

    def _serve(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        self._ready.set()
        try:
            loop.run_forever()
            loop.run_until_complete(loop.shutdown_asyncgens())
        except Exception as exc:
            _LOGGER.info("%s shutdown failed: %s", self._name, exc, exc_info=True)
        finally:
            loop.close()

    def shutdown(self) -> None:
        loop, thread = self._loop, self._thread
        if loop is None or thread is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(loop.stop)
        except RuntimeError as exc:
            _LOGGER.info("%s stop failed: %s", self._name, exc, exc_info=True)
        thread.join(timeout=1.0)

    async def run(self, coro: Coroutine[Any, Any, Any]) -> Any:
        loop = self.get()
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            return await coro
        future = asyncio.run_coroutine_threadsafe(coro, loop)
        try:
            return await asyncio.wrap_future(future)
        except asyncio.CancelledError:
            future.cancel()
            raise


_LITELLM_LOOP = _BackgroundLoop("suarastudio-litellm-loop")


def _quiet_litellm(litellm_module: Any) -> None:
    """Keep request payloads (base64 audio, API keys) out of LiteLLM's own logs."""

    global _litellm_quieted
    if _litellm_quieted:
        return
    _litellm_quieted = True
    for flag, value in (
        ("turn_off_message_logging", True),
        ("disable_streaming_logging", True),
        ("logging", False),
    ):
        try:
            setattr(litellm_module, flag, value)
        except AttributeError as exc:
            _LOGGER.info("Could not set litellm.%s: %s", flag, exc)
    warnings.filterwarnings("ignore", message="Pydantic serializer warnings")


def _read_field(value: Any, name: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(name)
    return getattr(value, name, None)


def _extract_audio(response: Any) -> GeneratedAudio:
    choices = _read_field(response, "choices") or []
    if not choices:
        raise ServiceError(_NO_AUDIO_MESSAGE)
    message = _read_field(choices[0], "message")
    audio = _read_field(message, "audio") if message is not None else None
    data = _read_field(audio, "data") if audio is not None else None
    if not isinstance(data, str) or not data.strip():
        raise ServiceError(_NO_AUDIO_MESSAGE)
    mime_type = _read_field(audio, "mime_type")
    return GeneratedAudio.from_inline(data, mime_type if isinstance(mime_type, str) else None)


def _multi_speaker_config(voices: Mapping[str, str]) -> dict[str, Any]:
    return {
        "multiSpeakerVoiceConfig": {
            "speakerVoiceConfigs": [
                {
                    "speaker": speaker,
                    "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": voice}},
                }
                for speaker, voice in voices.items()
            ]
        }
    }


class _LiteLLMAudioRequest(BaseModel):
    model: str
    messages: list[dict[str, Any]]
    modalities: list[str] = Field(default_factory=lambda: ["audio"])
    audio: dict[str, str] | None = None
    api_key: str | None = None
    speech_config: dict[str, Any] | None = Field(default=None, serialization_alias="speechConfig")


class LiteLLMSpeechAdapter:
    """LiteLLM wrapper implementing the async speech service protocol."""

    def __init__(
        self,
        *,
        speech_model: str = DEFAULT_SPEECH_MODEL,
        transform_model: str = DEFAULT_TRANSFORM_MODEL,
        api_key: str | None = None,
        litellm_kwargs: Mapping[str, Any] | None = None,
    ) -> None:
        self._speech_model = speech_model
        self._transform_model = transform_model
        self._api_key = api_key
        self._litellm_kwargs = dict(litellm_kwargs or {})
        invalid_keys = _RESERVED_LITELLM_KWARGS.intersection(self._litellm_kwargs)
        if invalid_keys:
            keys = ", ".join(sorted(invalid_keys))
            raise ServiceError(f"litellm_kwargs cannot override: {keys}")

    async def synthesize_script(self, blocks: Sequence[ScriptBlock]) -> GeneratedAudio:
        voices = speaker_voices(blocks)
        first_voice = next(iter(voices.values()), MELODY_VOICE)
        request = _LiteLLMAudioRequest(
            model=self._speech_model,
            messages=[{"role": "user", "content": format_script(blocks)}],
            audio={"voice": first_voice, "format": _PCM_FORMAT},
            speech_config=_multi_speaker_config(voices) if len(voices) > 1 else None,
        )
        return await self._complete(request, context="Script speech")

    async def synthesize_melody(self, config: MelodyConfig) -> GeneratedAudio:
        request = _LiteLLMAudioRequest(
            model=self._speech_model,
            messages=[{"role": "user", "content": melody_prompt(config)}],
            audio={"voice": MELODY_VOICE, "format": _PCM_FORMAT},
        )
        return await self._complete(request, context="Melody")

    async def transform_audio(self, buffer: AudioBuffer, instruction: str) -> GeneratedAudio:
        content: list[dict[str, Any]] = [
            {
                "type": "input_audio",
                "input_audio": {"data": wav_to_base64(buffer), "format": "wav"},
            },
            {"type": "text", "text": transform_prompt(instruction)},
        ]
        request = _LiteLLMAudioRequest(
            model=self._transform_model,
            messages=[{"role": "user", "content": content}],
        )
        return await self._complete(request, context="Audio transform")

    async def _complete(self, request: _LiteLLMAudioRequest, *, context: str) -> GeneratedAudio:
        if not self._api_key:
            raise ServiceError("API key is not set. Export GEMINI_API_KEY or API_KEY.")
        try:
            import litellm  # type: ignore[import]
            from litellm import acompletion  # type: ignore[import]
        except ImportError as exc:
            _LOGGER.warning("LiteLLM not installed: %s", exc)
            raise ModelNotAvailableError("litellm is not installed") from exc

        _quiet_litellm(litellm)
        payload = request.model_copy(update={"api_key": self._api_key}).model_dump(
            by_alias=True, exclude_none=True
        )
        payload.update(self._litellm_kwargs)

        try:
            response: Any = await _LITELLM_LOOP.run(acompletion(**payload))
        except Exception as exc:
            _LOGGER.warning("%s request failed: %s", context, exc, exc_info=True)
            raise ServiceError(f"{context} request failed: {exc}") from exc

        audio = _extract_audio(response)
        _LOGGER.info(
            "%s returned %d base64 chars (%d Hz, %d channel(s)).",
            context,
            len(audio.data),
            audio.sample_rate,
            audio.channels,
        )
        return audio

    async def aclose(self) -> None:
        """Close LiteLLM's pooled async clients on the shared loop."""

        if not _LITELLM_LOOP.started:
            return
        try:
            import litellm  # type: ignore[import]
        except ImportError as exc:
            _LOGGER.info("LiteLLM not installed; nothing to close: %s", exc)
            return
        closer: Any = getattr(litellm, "close_litellm_async_clients", None) or getattr(
            litellm, "aclose", None
        )
        if closer is None:
            return
        try:
            await _LITELLM_LOOP.run(closer())
        except Exception as exc:
            _LOGGER.warning("Closing LiteLLM clients failed: %s", exc, exc_info=True)
