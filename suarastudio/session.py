from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from .config import StudioSnapshot

STATE_KEY = "suaraai_app_state_v1"

_LOGGER = logging.getLogger("suarastudio.session")


class JsonFileStore:
    """Flat key-value store persisted as a single JSON object on disk."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()

    def _read_all(self) -> dict[str, Any]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        data = json.loads(text)
        match data:
            case dict():
                return data
            case _:
                raise ValueError(f"{self.path} must contain a JSON object")

    def get(self, key: str) -> Any | None:
        return self._read_all().get(key)

    def set(self, key: str, value: Any) -> None:
        try:
            data = self._read_all()
        except (OSError, ValueError) as exc:
            _LOGGER.warning("Discarding unreadable store %s: %s", self.path, exc)
            data = {}
        data[key] = value
        self._write_all(data)

    def delete(self, key: str) -> None:
        data = self._read_all()
        if data.pop(key, None) is not None:
            self._write_all(data)

    def _write_all(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(data, indent=2, ensure_ascii=False)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload + "\n")
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


class SessionStore:
    """Load and save the studio snapshot under one key."""

    def __init__(self, store: JsonFileStore, *, key: str = STATE_KEY) -> None:
        self._store = store
        self._key = key

    def load(self) -> StudioSnapshot:
        """Return the saved snapshot, or defaults when missing or unreadable."""

        try:
            raw = self._store.get(self._key)
        except (OSError, ValueError) as exc:
            _LOGGER.warning("Failed to load studio state: %s", exc, exc_info=True)
            return StudioSnapshot()
        if raw is None:
            return StudioSnapshot()
        try:
            return StudioSnapshot.model_validate(raw)
        except PydanticValidationError as exc:
            _LOGGER.warning("Ignoring invalid studio state: %s", exc)
            return StudioSnapshot()

    def save(self, snapshot: StudioSnapshot) -> None:
        try:
            self._store.set(self._key, snapshot.model_dump(mode="json", by_alias=True))
        except OSError as exc:
            _LOGGER.warning("Failed to save studio state: %s", exc, exc_info=True)
