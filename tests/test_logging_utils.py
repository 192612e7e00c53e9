from __future__ import annotations

import io
import logging
from pathlib import Path

import pytest

from suarastudio.errors import DecodeError
from suarastudio.logging_utils import (
    DEBUG_ENV,
    LOG_DIR_ENV,
    configure_logging,
    get_log_dir,
    get_log_path,
    log_exception,
)
from suarastudio.spinner import Spinner, render_error


def test_log_path_uses_env_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(LOG_DIR_ENV, str(tmp_path))

    assert get_log_dir() == tmp_path
    assert get_log_path() == tmp_path / "suarastudio.log"


def test_configure_logging_adds_file_handler(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv(LOG_DIR_ENV, str(tmp_path))

    configure_logging(force=True)

    logger = logging.getLogger("suarastudio")
    file_handlers = [h for h in logger.handlers if isinstance(h, logging.FileHandler)]
    assert file_handlers
    assert Path(file_handlers[-1].baseFilename) == tmp_path / "suarastudio.log"
    assert logger.propagate


def test_log_exception_appends_traceback(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(LOG_DIR_ENV, str(tmp_path))
    try:
        raise DecodeError("bad bytes")
    except DecodeError as exc:
        path = log_exception("upload", exc)

    assert path == tmp_path / "suarastudio.log"
    text = path.read_text(encoding="utf-8")
    assert "upload failed: DecodeError: bad bytes" in text
    assert "Traceback" in text


def test_render_error_plain_stream_uses_user_message(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv(LOG_DIR_ENV, str(tmp_path))
    monkeypatch.delenv(DEBUG_ENV, raising=False)
    stream = io.StringIO()

    render_error("generate", DecodeError("bad bytes"), stream=stream)

    output = stream.getvalue()
    assert output.startswith("generate failed: DecodeError: Failed to process the audio.")
    assert str(tmp_path / "suarastudio.log") in output


def test_spinner_disabled_is_noop() -> None:
    spinner = Spinner("Voicing script", enabled=False)
    spinner.start()
    spinner.update("Still voicing")
    spinner.stop()

    with Spinner("Composing", stream=io.StringIO()):
        pass
