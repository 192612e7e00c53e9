from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Iterator
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from .audio import AudioBuffer, encode_wav
from .config import DEFAULT_HISTORY_LIMIT, TabMode
from .errors import StudioError

_LOGGER = logging.getLogger("suarastudio.history")


class WavArtifact:
    """Scoped handle to an encoded WAV file held in memory.

    The bytes are dropped by ``release()``; reading a released artifact
    raises ``StudioError``.
    """

    def __init__(self, data: bytes, *, filename: str = "audio.wav") -> None:
        self._data: bytes | None = data
        self.filename = filename

    @classmethod
    def from_buffer(cls, buffer: AudioBuffer, *, filename: str = "audio.wav") -> "WavArtifact":
        return cls(encode_wav(buffer), filename=filename)

    @property
    def released(self) -> bool:
        return self._data is None

    @property
    def data(self) -> bytes:
        if self._data is None:
            raise StudioError(f"Artifact {self.filename} has been released")
        return self._data

    @property
    def size(self) -> int:
        return 0 if self._data is None else len(self._data)

    def save(self, path: str | Path) -> Path:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(self.data)
        return target

    def release(self) -> None:
        if self._data is not None:
            _LOGGER.debug("Released artifact %s (%d bytes).", self.filename, len(self._data))
        self._data = None

    def __enter__(self) -> "WavArtifact":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.release()

    def __repr__(self) -> str:
        state = "released" if self.released else f"{self.size} bytes"
        return f"WavArtifact({self.filename!r}, {state})"


def _now_ms() -> int:
    return int(time.time() * 1000)


class HistoryItem(BaseModel):
    """One successful generation, transformation or upload."""

    id: str
    timestamp: int
    type: TabMode
    title: str
    artifact: WavArtifact
    buffer: AudioBuffer

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    @classmethod
    def create(cls, buffer: AudioBuffer, *, type: TabMode, title: str) -> "HistoryItem":
        timestamp = _now_ms()
        item_id = f"{timestamp}-{uuid.uuid4().hex[:8]}"
        artifact = WavArtifact.from_buffer(buffer, filename=f"suara-ai-{type}-{timestamp}.wav")
        return cls(
            id=item_id,
            timestamp=timestamp,
            type=type,
            title=title,
            artifact=artifact,
            buffer=buffer,
        )


class History:
    """Newest-first list of history items; evicted items release their artifact."""

    def __init__(self, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        if limit <= 0:
            raise ValueError("History limit must be positive")
        self.limit = limit
        self._items: list[HistoryItem] = []

    @property
    def items(self) -> tuple[HistoryItem, ...]:
        return tuple(self._items)

    def add(self, item: HistoryItem) -> None:
        self._items.insert(0, item)
        while len(self._items) > self.limit:
            evicted = self._items.pop()
            _LOGGER.info("Evicting history item %s (%s).", evicted.id, evicted.title)
            evicted.artifact.release()

    def get(self, item_id: str) -> HistoryItem | None:
        return next((item for item in self._items if item.id == item_id), None)

    def owns(self, artifact: WavArtifact) -> bool:
        return any(item.artifact is artifact for item in self._items)

    def clear(self) -> None:
        for item in self._items:
            item.artifact.release()
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[HistoryItem]:
        return iter(self._items)
