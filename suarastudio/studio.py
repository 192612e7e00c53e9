from __future__ import annotations

import asyncio
import inspect
import logging
import math
import time
import uuid
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Coroutine, TypeVar

from .audio import AudioBuffer, AudioSource, decode_file
from .config import (
    DEFAULT_HISTORY_LIMIT,
    MelodyConfig,
    ScriptBlock,
    StudioSettings,
    StudioSnapshot,
    TabMode,
    VoiceName,
)
from .editor import EditConfig, EditField, apply_edits, update_edit_config
from .errors import ServiceError, StudioError, ValidationError
from .history import History, HistoryItem, WavArtifact
from .logging_utils import debug_enabled
from .models import GeneratedAudio, SpeechService, build_service
from .playback import PlaybackEngine, PlaybackState
from .session import JsonFileStore, SessionStore

T = TypeVar("T")

_LOGGER = logging.getLogger("suarastudio.studio")
_EXECUTOR = ThreadPoolExecutor(max_workers=1, thread_name_prefix="suarastudio-sync")
_TITLE_LIMIT = 25
_INSTRUCTION_TITLE_LIMIT = 15


def _run_async(coro: Coroutine[Any, Any, T]) -> T:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        _LOGGER.debug("No running event loop; running coroutine directly.")
        return asyncio.run(coro)

    return _EXECUTOR.submit(lambda: asyncio.run(coro)).result()


def _now_ms() -> int:
    return int(time.time() * 1000)


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else f"{text[:limit]}..."


class Studio:
    """Single-user studio session.

    Owns the persisted snapshot, the original/processed buffer pair, the
    history and the current download artifact. Edits are always
    re-derived from the original buffer.

    Each generation, upload, transform or restore takes a new operation
    token; a completion whose token has been superseded is discarded.
    """

    def __init__(
        self,
        service: SpeechService,
        *,
        session: SessionStore | None = None,
        engine: PlaybackEngine | None = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self._service = service
        self._session = session
        self._snapshot = session.load() if session is not None else StudioSnapshot()
        self.engine = engine or PlaybackEngine()
        self.history = History(history_limit)
        self._original: AudioBuffer | None = None
        self._processed: AudioBuffer | None = None
        self._artifact: WavArtifact | None = None
        self.current_item_id: str | None = None
        self.current_file_name: str | None = None
        self.is_generating = False
        self.error: str | None = None
        self._operation = 0

    @classmethod
    def from_settings(cls, settings: StudioSettings | None = None) -> "Studio":
        settings = settings or StudioSettings.from_env()
        return cls(
            build_service(settings),
            session=SessionStore(JsonFileStore(settings.state_path)),
            history_limit=settings.history_limit,
        )

    # ------------------------------------------------------------------
    # Snapshot state
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> StudioSnapshot:
        return self._snapshot

    @property
    def active_tab(self) -> TabMode:
        return self._snapshot.active_tab

    @property
    def script_blocks(self) -> tuple[ScriptBlock, ...]:
        return self._snapshot.script_blocks

    @property
    def melody_config(self) -> MelodyConfig:
        return self._snapshot.melody_config

    @property
    def edit_config(self) -> EditConfig:
        return self._snapshot.edit_config

    def _update_snapshot(self, **changes: Any) -> None:
        self._snapshot = self._snapshot.model_copy(update=changes)
        if self._session is not None:
            self._session.save(self._snapshot)

    def set_tab(self, tab: TabMode) -> None:
        self._update_snapshot(active_tab=tab)

    def set_script_blocks(self, blocks: Sequence[ScriptBlock]) -> None:
        self._update_snapshot(script_blocks=tuple(blocks))

    def add_script_block(
        self,
        speaker: str = "New Speaker",
        voice: VoiceName = "Puck",
        text: str = "",
    ) -> ScriptBlock:
        block = ScriptBlock(id=uuid.uuid4().hex, speaker=speaker, voice=voice, text=text)
        self.set_script_blocks((*self.script_blocks, block))
        return block

    def update_script_block(self, block_id: str, **fields: Any) -> ScriptBlock:
        blocks = list(self.script_blocks)
        for index, block in enumerate(blocks):
            if block.id == block_id:
                updated = ScriptBlock.model_validate({**block.model_dump(), **fields, "id": block_id})
                blocks[index] = updated
                self.set_script_blocks(blocks)
                return updated
        raise ValidationError(f"Unknown script line: {block_id}")

    def remove_script_block(self, block_id: str) -> None:
        self.set_script_blocks([block for block in self.script_blocks if block.id != block_id])

    def set_melody_config(self, config: MelodyConfig) -> None:
        self._update_snapshot(melody_config=config)

    # ------------------------------------------------------------------
    # Buffers and artifacts
    # ------------------------------------------------------------------

    @property
    def original_buffer(self) -> AudioBuffer | None:
        return self._original

    @property
    def processed_buffer(self) -> AudioBuffer | None:
        return self._processed

    @property
    def artifact(self) -> WavArtifact | None:
        return self._artifact

    @property
    def duration(self) -> float:
        return 0.0 if self._processed is None else self._processed.duration

    def _download_name(self) -> str:
        return f"suara-ai-{self.active_tab}-{_now_ms()}.wav"

    def _replace_artifact(self, artifact: WavArtifact | None) -> None:
        previous = self._artifact
        self._artifact = artifact
        if previous is None or previous is artifact or self.history.owns(previous):
            return
        previous.release()

    def _install(self, buffer: AudioBuffer, artifact: WavArtifact) -> None:
        self._original = buffer
        self._processed = buffer
        self.engine.load(buffer)
        self._replace_artifact(artifact)

    # ------------------------------------------------------------------
    # Operation lifecycle
    # ------------------------------------------------------------------

    def _begin(self) -> int:
        self._operation += 1
        self.is_generating = True
        self.error = None
        return self._operation

    def _is_current(self, token: int) -> bool:
        return token == self._operation

    def _fail(self, token: int, context: str, exc: StudioError) -> None:
        if not self._is_current(token):
            _LOGGER.info("Ignoring failure of superseded %s: %s", context, exc)
            return
        self.is_generating = False
        self.error = exc.user_message
        _LOGGER.warning("%s failed: %s", context, exc, exc_info=debug_enabled())

    def _complete(
        self,
        token: int,
        buffer: AudioBuffer,
        *,
        type: TabMode,
        title: str,
    ) -> HistoryItem | None:
        if not self._is_current(token):
            _LOGGER.info("Discarding stale result for %r (operation %d).", title, token)
            return None
        item = HistoryItem.create(buffer, type=type, title=title)
        self.history.add(item)
        self._install(buffer, item.artifact)
        self.current_item_id = item.id
        self.is_generating = False
        self.error = None
        self._update_snapshot(edit_config=EditConfig())
        _LOGGER.info("New %s audio %r (%.2fs).", type, title, buffer.duration)
        return item

    async def _call_service(self, coro: Coroutine[Any, Any, GeneratedAudio]) -> AudioBuffer:
        try:
            result = await coro
        except StudioError:
            raise
        except Exception as exc:
            raise ServiceError(str(exc)) from exc
        return result.decode()

    # ------------------------------------------------------------------
    # Generation, upload, transform
    # ------------------------------------------------------------------

    async def agenerate(self) -> HistoryItem | None:
        """Generate speech or melody for the active tab."""

        token = self._begin()
        tab = self.active_tab
        try:
            if tab == "script":
                blocks = [block for block in self.script_blocks if block.text.strip()]
                if not blocks:
                    raise ValidationError("Please fill in the script text first.")
                buffer = await self._call_service(self._service.synthesize_script(blocks))
                title = f"Conversation ({len(blocks)} lines)"
            elif tab == "melody":
                melody = self.melody_config
                if not melody.text.strip():
                    raise ValidationError("Please fill in the lyrics or humming.")
                buffer = await self._call_service(self._service.synthesize_melody(melody))
                title = f"Melody {melody.genre} {melody.mood}"
            else:
                raise ValidationError("Switch to the script or melody tab to generate audio.")
        except StudioError as exc:
            self._fail(token, "Generation", exc)
            raise
        return self._complete(token, buffer, type=tab, title=title)

    def generate(self) -> HistoryItem | None:
        return _run_async(self.agenerate())

    def upload(self, source: AudioSource, name: str | None = None) -> HistoryItem | None:
        """Decode an uploaded file; on failure the loaded audio is untouched."""

        token = self._begin()
        if name is None:
            name = Path(source).name if isinstance(source, (str, Path)) else "upload"
        try:
            buffer = decode_file(source)
        except StudioError as exc:
            self._fail(token, "Upload", exc)
            raise
        item = self._complete(token, buffer, type="upload", title=_truncate(name, _TITLE_LIMIT))
        if item is not None:
            self.current_file_name = name
        return item

    async def atransform(self, instruction: str) -> HistoryItem | None:
        """Restyle the current (edited) audio, keeping melody and timing."""

        token = self._begin()
        try:
            source = self._processed or self._original
            if source is None:
                raise ValidationError("Upload or generate audio before transforming it.")
            if not instruction.strip():
                raise ValidationError("Please describe how the audio should change.")
            buffer = await self._call_service(self._service.transform_audio(source, instruction))
        except StudioError as exc:
            self._fail(token, "Transform", exc)
            raise
        title = f"Mod: {instruction[:_INSTRUCTION_TITLE_LIMIT]}..."
        return self._complete(token, buffer, type="upload", title=title)

    def transform(self, instruction: str) -> HistoryItem | None:
        return _run_async(self.atransform(instruction))

    def restore(self, item_id: str) -> HistoryItem:
        item = self.history.get(item_id)
        if item is None:
            raise ValidationError(f"Unknown history item: {item_id}")
        self._operation += 1
        self.is_generating = False
        self.error = None
        self._install(item.buffer, item.artifact)
        self.current_item_id = item.id
        self.current_file_name = item.title
        self._update_snapshot(edit_config=EditConfig(), active_tab=item.type)
        return item

    def clear_upload(self) -> None:
        self.engine.load(None)
        self._original = None
        self._processed = None
        self._replace_artifact(None)
        self.current_file_name = None
        self.is_generating = False
        self.error = None

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def set_edit_config(self, config: EditConfig) -> None:
        self._update_snapshot(edit_config=config)
        self._reprocess()

    def update_edit(self, field: EditField, value: float) -> EditConfig:
        """Apply one slider change using the control constraints."""

        duration = self._original.duration if self._original is not None else math.inf
        config = update_edit_config(self.edit_config, field, value, duration)
        if config != self.edit_config:
            self.set_edit_config(config)
        return self.edit_config

    def _reprocess(self) -> None:
        original = self._original
        if original is None:
            return
        config = self.edit_config
        if config.has_edits:
            processed = apply_edits(original, config)
            self._processed = processed
            self.engine.load(processed)
            self._replace_artifact(WavArtifact.from_buffer(processed, filename=self._download_name()))
            return
        if self._processed is original:
            return
        self._processed = original
        self.engine.load(original)
        item = self.history.get(self.current_item_id) if self.current_item_id else None
        if item is not None and item.buffer is original and not item.artifact.released:
            self._replace_artifact(item.artifact)
        else:
            self._replace_artifact(WavArtifact.from_buffer(original, filename=self._download_name()))

    # ------------------------------------------------------------------
    # Download and playback
    # ------------------------------------------------------------------

    def download(self, directory: str | Path = ".") -> Path:
        if self._processed is None:
            raise ValidationError("There is no audio to download yet.")
        artifact = self._artifact
        if artifact is None or artifact.released:
            artifact = WavArtifact.from_buffer(self._processed, filename=self._download_name())
            self._replace_artifact(artifact)
        target = artifact.save(Path(directory) / self._download_name())
        _LOGGER.info("Saved %s (%d bytes).", target, artifact.size)
        return target

    def play(self) -> None:
        self.engine.play()

    def pause(self) -> None:
        self.engine.pause()

    def stop(self) -> None:
        self.engine.stop()

    def toggle_playback(self) -> None:
        self.engine.toggle()

    def poll(self) -> PlaybackState:
        return self.engine.poll()

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        self.engine.stop()
        self._replace_artifact(None)
        self.history.clear()
        aclose = getattr(self._service, "aclose", None)
        if callable(aclose):
            try:
                result = aclose()
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                _LOGGER.warning("Service close failed: %s", exc, exc_info=True)

    def close(self) -> None:
        _run_async(self.aclose())
