from __future__ import annotations

import base64
import binascii
import io
import logging
import struct
from pathlib import Path
from typing import Any, BinaryIO

import numpy as np
import soundfile as sf  # type: ignore[import]
from numpy.typing import NDArray
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import DecodeError

FloatArray = NDArray[np.float32]
AudioSource = str | Path | bytes | BinaryIO

SAMPLE_RATE = 24_000
CHANNELS = 1
WAV_HEADER_BYTES = 44

_LOGGER = logging.getLogger("suarastudio.audio")
_PCM_FORMAT_TAG = 1
_BITS_PER_SAMPLE = 16
_NEGATIVE_SCALE = 32_768.0
_POSITIVE_SCALE = 32_767.0
_WAV_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")


class AudioBuffer(BaseModel):
    """Fixed-length, per-channel float32 samples plus sample rate.

    ``channels`` has shape ``(number_of_channels, length)`` and is stored
    read-only, so a buffer never changes after construction. Editing
    produces a new buffer.
    """

    channels: FloatArray
    sample_rate: int = Field(default=SAMPLE_RATE, gt=0)

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=True,
    )

    @field_validator("channels", mode="before")
    @classmethod
    def _coerce_channels(cls, value: Any) -> FloatArray:
        array: FloatArray = np.array(value, dtype=np.float32)
        if array.ndim == 1:
            array = array.reshape(1, -1)
        if array.ndim != 2 or array.shape[0] < 1:
            raise ValueError("channels must have shape (number_of_channels, length)")
        array.setflags(write=False)
        return array

    @classmethod
    def silent(
        cls,
        number_of_channels: int,
        length: int,
        sample_rate: int = SAMPLE_RATE,
    ) -> "AudioBuffer":
        return cls(
            channels=np.zeros((number_of_channels, max(0, length)), dtype=np.float32),
            sample_rate=sample_rate,
        )

    @property
    def number_of_channels(self) -> int:
        return int(self.channels.shape[0])

    @property
    def length(self) -> int:
        return int(self.channels.shape[1])

    @property
    def duration(self) -> float:
        return self.length / self.sample_rate

    def get_channel_data(self, channel: int) -> FloatArray:
        return self.channels[channel]

    def frames(self) -> FloatArray:
        """Interleaved view with shape ``(length, number_of_channels)``."""

        return np.ascontiguousarray(self.channels.T)

    def mixdown(self) -> FloatArray:
        return self.channels.mean(axis=0, dtype=np.float32)


def decode_pcm(
    data: str,
    sample_rate: int = SAMPLE_RATE,
    channels: int = CHANNELS,
) -> AudioBuffer:
    """Decode base64 raw 16-bit little-endian PCM into a float buffer.

    Samples are scaled by ``1 / 32768`` so ``-32768`` maps to ``-1.0`` and
    ``32767`` to ``0.99997``. Trailing bytes that do not form a whole
    frame are dropped.
    """

    if sample_rate <= 0 or channels <= 0:
        raise DecodeError(f"Invalid PCM layout: sample_rate={sample_rate}, channels={channels}")
    try:
        raw = base64.b64decode("".join(data.split()), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError("Malformed base64 audio payload") from exc

    frame_count = len(raw) // (2 * channels)
    usable = raw[: frame_count * 2 * channels]
    ints = np.frombuffer(usable, dtype="<i2")
    samples = ints.astype(np.float32) / np.float32(_NEGATIVE_SCALE)
    deinterleaved = samples.reshape(frame_count, channels).T
    _LOGGER.debug(
        "Decoded %d PCM frames (%d channel(s) @ %d Hz).", frame_count, channels, sample_rate
    )
    return AudioBuffer(channels=deinterleaved, sample_rate=sample_rate)


def to_pcm16(samples: NDArray[np.floating[Any]]) -> NDArray[np.int16]:
    """Quantize to int16 with the asymmetric 32768 / 32767 scale.

    Results are rounded up, which inverts ``decode_pcm`` exactly: a decoded
    positive sample times 32767 lands in ``(i - 1, i]``.
    """

    clipped = np.clip(samples.astype(np.float64), -1.0, 1.0)
    scaled = np.where(clipped < 0.0, clipped * _NEGATIVE_SCALE, clipped * _POSITIVE_SCALE)
    return np.ceil(scaled).astype("<i2")


def encode_wav(buffer: AudioBuffer, frame_count: int | None = None) -> bytes:
    """Serialize ``buffer`` as a canonical 16-bit PCM RIFF/WAVE byte string.

    ``frame_count`` defaults to the buffer length. Frames past the end of
    the buffer are written as silence.
    """

    frames = buffer.length if frame_count is None else max(0, int(frame_count))
    num_channels = buffer.number_of_channels
    block_align = num_channels * 2
    data_size = frames * block_align

    interleaved = np.zeros((frames, num_channels), dtype=np.float32)
    usable = min(frames, buffer.length)
    interleaved[:usable] = buffer.channels[:, :usable].T
    pcm = to_pcm16(interleaved)

    header = _WAV_HEADER.pack(
        b"RIFF",
        WAV_HEADER_BYTES + data_size - 8,
        b"WAVE",
        b"fmt ",
        16,
        _PCM_FORMAT_TAG,
        num_channels,
        buffer.sample_rate,
        buffer.sample_rate * block_align,
        block_align,
        _BITS_PER_SAMPLE,
        b"data",
        data_size,
    )
    return header + pcm.tobytes()


def wav_to_base64(buffer: AudioBuffer) -> str:
    return base64.b64encode(encode_wav(buffer)).decode("ascii")


def write_wav(path: str | Path, buffer: AudioBuffer) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(encode_wav(buffer))
    return target


def decode_file(source: AudioSource) -> AudioBuffer:
    """Decode any container libsndfile understands into a float buffer."""

    handle: Any = io.BytesIO(source) if isinstance(source, bytes) else source
    try:
        data, sample_rate = sf.read(handle, dtype="float32", always_2d=True)
    except (RuntimeError, TypeError, ValueError, OSError) as exc:
        _LOGGER.warning("Native audio decode failed: %s", exc, exc_info=True)
        raise DecodeError("Unsupported format or corrupted file") from exc
    if sample_rate <= 0 or data.shape[1] < 1:
        raise DecodeError("Unsupported format or corrupted file")
    return AudioBuffer(channels=np.asarray(data).T, sample_rate=int(sample_rate))


def decode_wav_bytes(data: bytes) -> AudioBuffer:
    return decode_file(data)
