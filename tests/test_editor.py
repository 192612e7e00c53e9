from __future__ import annotations

import numpy as np
import pytest

from suarastudio.audio import AudioBuffer
from suarastudio.editor import (
    FADE_CEILING,
    MIN_DURATION,
    EditConfig,
    apply_edits,
    update_edit_config,
)

SAMPLE_RATE = 24_000


def _ramp_buffer(seconds: float = 2.0, channels: int = 1) -> AudioBuffer:
    length = int(seconds * SAMPLE_RATE)
    base = np.linspace(0.1, 0.9, length, dtype=np.float32)
    return AudioBuffer(channels=np.tile(base, (channels, 1)), sample_rate=SAMPLE_RATE)


def _constant_buffer(length: int, value: float = 1.0) -> AudioBuffer:
    return AudioBuffer(channels=np.full(length, value, dtype=np.float32), sample_rate=SAMPLE_RATE)


def test_identity_edit_preserves_buffer() -> None:
    original = _ramp_buffer(channels=2)

    edited = apply_edits(original, EditConfig())

    assert edited is not original
    assert edited.length == original.length
    assert edited.sample_rate == original.sample_rate
    assert edited.number_of_channels == 2
    assert np.array_equal(edited.channels, original.channels)


def test_trim_and_fade_end_to_end() -> None:
    original = _ramp_buffer(2.0)
    config = EditConfig(trim_start=0.5, trim_end=0.5, fade_in=0.25, fade_out=0.0)

    edited = apply_edits(original, config)

    assert edited.length == 24_000
    assert edited.duration == pytest.approx(1.0)
    samples = edited.get_channel_data(0)
    source = original.get_channel_data(0)
    assert samples[0] == 0.0
    assert samples[6000] == source[12_000 + 6000]
    assert samples[3000] == pytest.approx(source[12_000 + 3000] * 0.5)


def test_duration_never_drops_below_floor() -> None:
    original = _ramp_buffer(1.0)

    edited = apply_edits(original, EditConfig(trim_start=0.6, trim_end=0.39))

    assert edited.duration >= MIN_DURATION
    assert edited.length == int(MIN_DURATION * SAMPLE_RATE)


def test_trim_past_source_end_fills_silence() -> None:
    original = _constant_buffer(SAMPLE_RATE)

    edited = apply_edits(original, EditConfig(trim_start=0.95, trim_end=0.5))

    samples = edited.get_channel_data(0)
    available = SAMPLE_RATE - int(0.95 * SAMPLE_RATE)
    assert samples.size == int(MIN_DURATION * SAMPLE_RATE)
    assert np.all(samples[:available] == 1.0)
    assert np.all(samples[available:] == 0.0)


def test_fade_in_reaches_unity_after_window() -> None:
    original = _constant_buffer(SAMPLE_RATE)

    samples = apply_edits(original, EditConfig(fade_in=0.125)).get_channel_data(0)

    assert samples[0] == 0.0
    assert samples[1500] == pytest.approx(0.5)
    assert samples[2999] == pytest.approx(2999 / 3000)
    assert samples[3000] == 1.0


def test_fade_out_mirrors_fade_in() -> None:
    original = _constant_buffer(SAMPLE_RATE)

    samples = apply_edits(original, EditConfig(fade_out=0.125)).get_channel_data(0)

    assert samples[-1] == 0.0
    assert samples[-2] == pytest.approx(1 / 3000)
    assert samples[-3000] == pytest.approx(2999 / 3000)
    assert samples[-3001] == 1.0


def test_overlapping_fades_compound() -> None:
    original = _constant_buffer(3000)
    config = EditConfig(fade_in=0.125, fade_out=0.125)

    samples = apply_edits(original, config).get_channel_data(0)

    assert samples.size == 3000
    middle = 1500
    expected = (middle / 3000) * ((3000 - 1 - middle) / 3000)
    assert samples[middle] == pytest.approx(expected)
    assert samples[0] == 0.0
    assert samples[-1] == 0.0


def test_fade_longer_than_buffer_does_not_overflow() -> None:
    original = _constant_buffer(100)

    edited = apply_edits(original, EditConfig(fade_in=10.0, fade_out=10.0))

    assert edited.length == int(MIN_DURATION * SAMPLE_RATE)
    assert np.all(np.isfinite(edited.channels))


@pytest.mark.parametrize("seconds", [1e305, float("inf")])
@pytest.mark.parametrize("field", ["fade_in", "fade_out"])
def test_unbounded_fade_silences_instead_of_raising(field: str, seconds: float) -> None:
    original = _constant_buffer(SAMPLE_RATE)

    edited = apply_edits(original, EditConfig(**{field: seconds}))

    assert edited.length == SAMPLE_RATE
    assert not edited.get_channel_data(0).any()


@pytest.mark.parametrize("seconds", [1e305, float("inf")])
def test_unbounded_trim_start_yields_silent_floor(seconds: float) -> None:
    original = _constant_buffer(SAMPLE_RATE)

    edited = apply_edits(original, EditConfig(trim_start=seconds))

    assert edited.length == int(MIN_DURATION * SAMPLE_RATE)
    assert not edited.get_channel_data(0).any()


@pytest.mark.parametrize("seconds", [1e305, float("inf")])
def test_unbounded_trim_end_keeps_head(seconds: float) -> None:
    original = _constant_buffer(SAMPLE_RATE)

    edited = apply_edits(original, EditConfig(trim_end=seconds))

    assert edited.length == int(MIN_DURATION * SAMPLE_RATE)
    assert np.all(edited.get_channel_data(0) == 1.0)


def test_apply_edits_is_pure() -> None:
    original = _ramp_buffer(1.0)
    snapshot = original.channels.copy()
    config = EditConfig(trim_start=0.1, fade_in=0.2, fade_out=0.3)

    first = apply_edits(original, config)
    second = apply_edits(original, config)

    assert np.array_equal(original.channels, snapshot)
    assert np.array_equal(first.channels, second.channels)


def test_edit_config_accepts_aliases() -> None:
    config = EditConfig.model_validate({"trimStart": 1, "trimEnd": 2, "fadeIn": 0.5, "fadeOut": 0})

    assert config.trim_start == 1.0
    assert config.has_edits
    assert config.model_dump(by_alias=True)["fadeIn"] == 0.5
    assert not EditConfig().has_edits


def test_update_edit_config_rejects_trim_overflow() -> None:
    config = EditConfig(trim_end=1.0)

    assert update_edit_config(config, "trim_start", 1.0, original_duration=2.0) is config
    assert update_edit_config(config, "trim_start", 0.5, original_duration=2.0).trim_start == 0.5
    assert update_edit_config(config, "trim_end", 2.5, original_duration=2.0) is config


def test_update_edit_config_clamps_values() -> None:
    config = EditConfig()

    assert update_edit_config(config, "fade_in", 9.0, 10.0).fade_in == FADE_CEILING
    assert update_edit_config(config, "fade_out", -1.0, 10.0).fade_out == 0.0
    assert update_edit_config(config, "trim_start", -3.0, 10.0).trim_start == 0.0
