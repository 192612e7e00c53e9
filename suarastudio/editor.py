from __future__ import annotations

import logging
import math
from typing import Literal

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from .audio import AudioBuffer, FloatArray

EditField = Literal["trim_start", "trim_end", "fade_in", "fade_out"]

MIN_DURATION = 0.1
FADE_CEILING = 5.0

_LOGGER = logging.getLogger("suarastudio.editor")


class EditConfig(BaseModel):
    """Non-destructive trim/fade settings, all in seconds."""

    trim_start: float = Field(default=0.0, ge=0.0, alias="trimStart")
    trim_end: float = Field(default=0.0, ge=0.0, alias="trimEnd")
    fade_in: float = Field(default=0.0, ge=0.0, alias="fadeIn")
    fade_out: float = Field(default=0.0, ge=0.0, alias="fadeOut")

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    @property
    def has_edits(self) -> bool:
        return self.trim_start > 0 or self.trim_end > 0 or self.fade_in > 0 or self.fade_out > 0


def _frame_count(seconds: float, sample_rate: int) -> float:
    """``floor(seconds * sample_rate)``, left infinite when the product overflows."""

    frames = seconds * sample_rate
    return math.floor(frames) if math.isfinite(frames) else frames


def _ramp(count: float, limit: int) -> FloatArray:
    """Gains ``i / count`` for the first ``min(count, limit)`` positions."""

    steps = np.arange(min(count, limit), dtype=np.float64)
    return (steps / count).astype(np.float32)


def apply_edits(original: AudioBuffer, config: EditConfig) -> AudioBuffer:
    """Trim and fade ``original`` into a new buffer.

    The result is at least ``MIN_DURATION`` long; positions past the end
    of the source are silence. Fade-in and fade-out are independent
    linear passes over the trimmed buffer, so overlapping windows
    multiply.
    """

    sample_rate = original.sample_rate
    new_duration = max(MIN_DURATION, original.duration - config.trim_start - config.trim_end)
    new_length = math.floor(new_duration * sample_rate)
    start_offset = int(min(_frame_count(config.trim_start, sample_rate), original.length))

    data = np.zeros((original.number_of_channels, new_length), dtype=np.float32)
    available = max(0, min(new_length, original.length - start_offset))
    if available:
        data[:, :available] = original.channels[:, start_offset : start_offset + available]

    fade_in_samples = _frame_count(config.fade_in, sample_rate)
    if fade_in_samples > 0:
        ramp = _ramp(fade_in_samples, new_length)
        data[:, : ramp.size] *= ramp

    fade_out_samples = _frame_count(config.fade_out, sample_rate)
    if fade_out_samples > 0:
        ramp = _ramp(fade_out_samples, new_length)
        # ramp[i] lands on index new_length - 1 - i
        data[:, new_length - ramp.size :] *= ramp[::-1]

    _LOGGER.debug(
        "Applied edits %s: %d -> %d frames.",
        config.model_dump(),
        original.length,
        new_length,
    )
    return AudioBuffer(channels=data, sample_rate=sample_rate)


def update_edit_config(
    config: EditConfig,
    field: EditField,
    value: float,
    original_duration: float,
) -> EditConfig:
    """Apply one slider change, keeping trims inside the source duration.

    Negative values become 0, fades are capped at ``FADE_CEILING`` and a
    trim that would consume the whole source leaves ``config`` unchanged.
    """

    new_value = max(0.0, float(value))
    if field == "trim_start" and new_value + config.trim_end >= original_duration:
        return config
    if field == "trim_end" and new_value + config.trim_start >= original_duration:
        return config
    if field in ("fade_in", "fade_out"):
        new_value = min(new_value, FADE_CEILING)
    return config.model_copy(update={field: new_value})
