from __future__ import annotations

import logging
import math
import time
from typing import Any, Callable, Literal

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, ConfigDict

from .audio import AudioBuffer, FloatArray, to_pcm16
from .errors import PlaybackError

PlaybackState = Literal["stopped", "playing", "paused"]
ByteArray = NDArray[np.uint8]

DEFAULT_FFT_SIZE = 2048

_LOGGER = logging.getLogger("suarastudio.playback")


class PlaybackBackend(BaseModel):
    """Audio output device. ``play`` must return immediately."""

    name: str
    play: Callable[[FloatArray, int], None]
    stop: Callable[[], None]

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=True,
    )


def _load_backend() -> PlaybackBackend | None:
    return _load_sounddevice() or _load_simpleaudio()


def resolve_backend() -> PlaybackBackend:
    backend = _load_backend()
    if backend is None:
        raise PlaybackError(
            "Playback requires sounddevice or simpleaudio. "
            "Install one of them (or download the WAV instead)."
        )
    return backend


def _load_sounddevice() -> PlaybackBackend | None:
    try:
        import sounddevice as sd_module  # type: ignore[import]
    except (ImportError, OSError) as exc:
        _LOGGER.info("sounddevice not available: %s", exc, exc_info=True)
        return None
    sd: Any = sd_module

    def _play(frames: FloatArray, sample_rate: int) -> None:
        sd.play(frames, sample_rate)

    def _stop() -> None:
        sd.stop()

    return PlaybackBackend(name="sounddevice", play=_play, stop=_stop)


def _load_simpleaudio() -> PlaybackBackend | None:
    try:
        import simpleaudio as sa_module  # type: ignore[import]
    except ImportError as exc:
        _LOGGER.info("simpleaudio not available: %s", exc, exc_info=True)
        return None
    sa: Any = sa_module
    active: list[Any] = []

    def _play(frames: FloatArray, sample_rate: int) -> None:
        pcm = to_pcm16(frames)
        active[:] = [play_obj for play_obj in active if play_obj.is_playing()]
        active.append(sa.play_buffer(pcm, frames.shape[1], 2, sample_rate))

    def _stop() -> None:
        while active:
            active.pop().stop()

    return PlaybackBackend(name="simpleaudio", play=_play, stop=_stop)


class Analyser:
    """Visualization tap over the samples around the playback position.

    Byte data follows the browser analyser conventions: time-domain bytes
    are ``128 * (1 + sample)`` and frequency bytes map
    ``[min_decibels, max_decibels]`` onto ``0..255``.
    """

    def __init__(
        self,
        fft_size: int = DEFAULT_FFT_SIZE,
        *,
        min_decibels: float = -100.0,
        max_decibels: float = -30.0,
    ) -> None:
        if fft_size < 32 or fft_size & (fft_size - 1):
            raise ValueError("fft_size must be a power of two >= 32")
        if min_decibels >= max_decibels:
            raise ValueError("min_decibels must be below max_decibels")
        self.fft_size = fft_size
        self.min_decibels = min_decibels
        self.max_decibels = max_decibels
        self._window = np.blackman(fft_size).astype(np.float32)

    @property
    def frequency_bin_count(self) -> int:
        return self.fft_size // 2

    def _samples(self, buffer: AudioBuffer, position: int) -> FloatArray:
        end = min(max(position, 0), buffer.length)
        start = max(0, end - self.fft_size)
        out = np.zeros(self.fft_size, dtype=np.float32)
        if end > start:
            out[self.fft_size - (end - start) :] = buffer.channels[:, start:end].mean(axis=0)
        return out

    def time_domain_data(self, buffer: AudioBuffer | None, position: int = 0) -> ByteArray:
        if buffer is None:
            return np.full(self.fft_size, 128, dtype=np.uint8)
        samples = self._samples(buffer, position)
        scaled = np.floor(128.0 * (samples.astype(np.float64) + 1.0))
        return np.clip(scaled, 0, 255).astype(np.uint8)

    def frequency_data(self, buffer: AudioBuffer | None, position: int = 0) -> ByteArray:
        if buffer is None:
            return np.zeros(self.frequency_bin_count, dtype=np.uint8)
        samples = self._samples(buffer, position) * self._window
        magnitude = np.abs(np.fft.rfft(samples))[: self.frequency_bin_count] / self.fft_size
        decibels = 20.0 * np.log10(np.maximum(magnitude, 1e-12))
        span = self.max_decibels - self.min_decibels
        scaled = np.floor(255.0 * (decibels - self.min_decibels) / span)
        return np.clip(scaled, 0, 255).astype(np.uint8)


class PlaybackEngine:
    """Stopped/playing/paused state machine around a playback backend.

    ``pause`` remembers the elapsed offset and the next ``play`` resumes
    from it. ``poll`` detects the natural end of the buffer, which moves
    the engine back to ``stopped`` at offset zero.
    """

    def __init__(
        self,
        backend: PlaybackBackend | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        analyser: Analyser | None = None,
    ) -> None:
        self._backend = backend
        self._clock = clock
        self.analyser = analyser or Analyser()
        self._buffer: AudioBuffer | None = None
        self._state: PlaybackState = "stopped"
        self._start_time = 0.0
        self._offset = 0.0

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def is_playing(self) -> bool:
        return self._state == "playing"

    @property
    def buffer(self) -> AudioBuffer | None:
        return self._buffer

    @property
    def duration(self) -> float:
        return 0.0 if self._buffer is None else self._buffer.duration

    @property
    def current_time(self) -> float:
        if self._state == "playing":
            elapsed = max(0.0, self._clock() - self._start_time)
            return min(elapsed, self.duration)
        return min(self._offset, self.duration)

    def load(self, buffer: AudioBuffer | None) -> None:
        self.stop()
        self._buffer = buffer

    def play(self, offset: float | None = None) -> None:
        if self._buffer is None or self._state == "playing":
            return
        backend = self._get_backend()
        start = self._offset if offset is None else max(0.0, offset)
        if start >= self._buffer.duration:
            start = 0.0
        start_frame = min(math.floor(start * self._buffer.sample_rate), self._buffer.length)
        backend.play(self._buffer.frames()[start_frame:], self._buffer.sample_rate)
        self._start_time = self._clock() - start
        self._offset = start
        self._state = "playing"
        _LOGGER.debug("Playing from %.3fs via %s.", start, backend.name)

    def pause(self) -> None:
        if self._state != "playing":
            return
        self._halt()
        self._offset = min(self._clock() - self._start_time, self.duration)
        self._state = "paused"

    def stop(self) -> None:
        if self._state == "playing":
            self._halt()
        self._state = "stopped"
        self._offset = 0.0

    def toggle(self) -> None:
        if self._state == "playing":
            self.pause()
        else:
            self.play()

    def poll(self) -> PlaybackState:
        """Advance the state machine; call from the UI refresh loop."""

        if self._state == "playing" and self._clock() - self._start_time >= self.duration:
            _LOGGER.debug("Playback reached the end of the buffer.")
            self._state = "stopped"
            self._offset = 0.0
        return self._state

    def time_domain_data(self) -> ByteArray:
        return self.analyser.time_domain_data(self._tap_buffer(), self._position_frame())

    def frequency_data(self) -> ByteArray:
        return self.analyser.frequency_data(self._tap_buffer(), self._position_frame())

    def _tap_buffer(self) -> AudioBuffer | None:
        return self._buffer if self._state == "playing" else None

    def _position_frame(self) -> int:
        if self._buffer is None:
            return 0
        return math.floor(self.current_time * self._buffer.sample_rate)

    def _get_backend(self) -> PlaybackBackend:
        if self._backend is None:
            self._backend = resolve_backend()
        return self._backend

    def _halt(self) -> None:
        if self._backend is None:
            return
        try:
            self._backend.stop()
        except Exception as exc:
            _LOGGER.warning(
                "Playback backend %s failed to stop: %s", self._backend.name, exc, exc_info=True
            )
