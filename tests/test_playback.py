from __future__ import annotations

import sys
from types import SimpleNamespace

import numpy as np
import pytest

from suarastudio import playback as playback_module
from suarastudio.audio import AudioBuffer
from suarastudio.errors import PlaybackError
from suarastudio.playback import Analyser, PlaybackBackend, PlaybackEngine


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def _recording_backend() -> tuple[PlaybackBackend, list[tuple[int, int]], list[str]]:
    plays: list[tuple[int, int]] = []
    events: list[str] = []

    def _play(frames: np.ndarray, sample_rate: int) -> None:
        plays.append((frames.shape[0], sample_rate))
        events.append("play")

    def _stop() -> None:
        events.append("stop")

    return PlaybackBackend(name="fake", play=_play, stop=_stop), plays, events


def _buffer(seconds: float = 2.0, sample_rate: int = 1000) -> AudioBuffer:
    length = int(seconds * sample_rate)
    return AudioBuffer(channels=np.full(length, 0.5, dtype=np.float32), sample_rate=sample_rate)


def test_play_pause_resume_from_offset() -> None:
    backend, plays, _ = _recording_backend()
    clock = FakeClock()
    engine = PlaybackEngine(backend, clock=clock)
    engine.load(_buffer())

    engine.play()
    clock.now += 0.5
    engine.pause()

    assert engine.state == "paused"
    assert engine.current_time == pytest.approx(0.5)

    clock.now += 10.0
    engine.play()

    assert engine.state == "playing"
    assert plays == [(2000, 1000), (1500, 1000)]
    clock.now += 0.25
    assert engine.current_time == pytest.approx(0.75)


def test_natural_end_returns_to_stopped_at_zero() -> None:
    backend, _, _ = _recording_backend()
    clock = FakeClock()
    engine = PlaybackEngine(backend, clock=clock)
    engine.load(_buffer(1.0))

    engine.play()
    clock.now += 0.4
    assert engine.poll() == "playing"
    clock.now += 0.7

    assert engine.poll() == "stopped"
    assert engine.current_time == 0.0


def test_stop_resets_offset_and_halts_backend() -> None:
    backend, plays, events = _recording_backend()
    clock = FakeClock()
    engine = PlaybackEngine(backend, clock=clock)
    engine.load(_buffer())

    engine.play()
    clock.now += 1.0
    engine.stop()
    engine.play()

    assert events == ["play", "stop", "play"]
    assert plays[-1] == (2000, 1000)


def test_toggle_switches_between_play_and_pause() -> None:
    backend, _, _ = _recording_backend()
    engine = PlaybackEngine(backend, clock=FakeClock())
    engine.load(_buffer())

    engine.toggle()
    assert engine.is_playing
    engine.toggle()
    assert engine.state == "paused"


def test_load_stops_current_playback() -> None:
    backend, _, events = _recording_backend()
    engine = PlaybackEngine(backend, clock=FakeClock())
    engine.load(_buffer())
    engine.play()

    engine.load(_buffer(0.5))

    assert engine.state == "stopped"
    assert events[-1] == "stop"
    assert engine.duration == pytest.approx(0.5)


def test_play_without_buffer_is_noop() -> None:
    backend, plays, _ = _recording_backend()
    engine = PlaybackEngine(backend, clock=FakeClock())

    engine.play()

    assert engine.state == "stopped"
    assert plays == []


def test_missing_backend_raises_playback_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(playback_module, "_load_backend", lambda: None)
    engine = PlaybackEngine(clock=FakeClock())
    engine.load(_buffer())

    with pytest.raises(PlaybackError):
        engine.play()
    assert engine.state == "stopped"


def test_backend_stop_failure_is_logged_not_raised() -> None:
    def _boom() -> None:
        raise RuntimeError("device gone")

    backend = PlaybackBackend(name="flaky", play=lambda frames, rate: None, stop=_boom)
    engine = PlaybackEngine(backend, clock=FakeClock())
    engine.load(_buffer())
    engine.play()

    engine.stop()

    assert engine.state == "stopped"


def test_analyser_idle_data() -> None:
    analyser = Analyser(64)

    assert analyser.time_domain_data(None).tolist() == [128] * 64
    assert analyser.frequency_data(None).tolist() == [0] * 32
    assert analyser.frequency_bin_count == 32


def test_analyser_time_domain_tracks_samples() -> None:
    analyser = Analyser(32)
    buffer = AudioBuffer(channels=np.full(100, 0.5, dtype=np.float32))

    data = analyser.time_domain_data(buffer, position=10)

    assert data[:22].tolist() == [128] * 22
    assert data[22:].tolist() == [192] * 10


def test_analyser_frequency_peaks_at_tone() -> None:
    analyser = Analyser(256, min_decibels=-100.0, max_decibels=0.0)
    rate = 256
    t = np.arange(rate) / rate
    tone = AudioBuffer(channels=np.sin(2 * np.pi * 32 * t).astype(np.float32), sample_rate=rate)

    data = analyser.frequency_data(tone, position=256)

    assert int(np.argmax(data)) == 32
    assert data[32] > data[100]


def test_engine_taps_only_while_playing() -> None:
    backend, _, _ = _recording_backend()
    clock = FakeClock()
    engine = PlaybackEngine(backend, clock=clock, analyser=Analyser(32))
    engine.load(_buffer())

    assert engine.time_domain_data().tolist() == [128] * 32

    engine.play()
    clock.now += 0.5

    assert engine.time_domain_data().tolist() == [192] * 32


@pytest.mark.parametrize("fft_size", [0, 31, 100])
def test_analyser_rejects_invalid_fft_size(fft_size: int) -> None:
    with pytest.raises(ValueError):
        Analyser(fft_size)


def test_resolve_backend_without_libraries_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(playback_module, "_load_sounddevice", lambda: None)
    monkeypatch.setattr(playback_module, "_load_simpleaudio", lambda: None)

    with pytest.raises(PlaybackError) as excinfo:
        playback_module.resolve_backend()

    assert "sounddevice or simpleaudio" in str(excinfo.value)


def test_resolve_backend_prefers_sounddevice(monkeypatch: pytest.MonkeyPatch) -> None:
    backend, _, _ = _recording_backend()
    monkeypatch.setattr(playback_module, "_load_sounddevice", lambda: backend)
    monkeypatch.setattr(playback_module, "_load_simpleaudio", lambda: None)

    assert playback_module.resolve_backend() is backend


class FakePlayObject:
    def __init__(self) -> None:
        self.playing = True
        self.stopped = False

    def is_playing(self) -> bool:
        return self.playing

    def stop(self) -> None:
        self.stopped = True
        self.playing = False


def test_simpleaudio_backend_forgets_finished_plays(monkeypatch: pytest.MonkeyPatch) -> None:
    started: list[FakePlayObject] = []

    def play_buffer(pcm: object, channels: int, width: int, rate: int) -> FakePlayObject:
        started.append(FakePlayObject())
        return started[-1]

    monkeypatch.setitem(sys.modules, "simpleaudio", SimpleNamespace(play_buffer=play_buffer))
    backend = playback_module._load_simpleaudio()
    assert backend is not None
    frames = _buffer().frames()

    backend.play(frames, 8_000)
    started[0].playing = False
    backend.play(frames, 8_000)
    backend.stop()

    assert not started[0].stopped
    assert started[1].stopped
