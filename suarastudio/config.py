from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .editor import EditConfig

VoiceName = Literal["Kore", "Puck", "Charon", "Fenrir", "Zephyr"]
Gender = Literal["Male", "Female"]
MusicGenre = Literal["Pop", "Jazz", "Rock", "Lofi", "Klasik"]
MusicMood = Literal["Ceria", "Sedih", "Epik", "Santai", "Tegang"]
TabMode = Literal["script", "melody", "upload"]

MUSIC_GENRES: tuple[MusicGenre, ...] = ("Pop", "Jazz", "Rock", "Lofi", "Klasik")
MUSIC_MOODS: tuple[MusicMood, ...] = ("Ceria", "Sedih", "Epik", "Santai", "Tegang")
TAB_MODES: tuple[TabMode, ...] = ("script", "melody", "upload")

DEFAULT_SPEECH_MODEL = "gemini/gemini-2.5-flash-preview-tts"
DEFAULT_TRANSFORM_MODEL = "gemini/gemini-2.5-flash-preview"
DEFAULT_HISTORY_LIMIT = 20
API_KEY_ENVS = ("GEMINI_API_KEY", "API_KEY")
STATE_PATH_ENV = "SUARASTUDIO_STATE_PATH"

_LOGGER = logging.getLogger("suarastudio.config")


class VoiceOption(BaseModel):
    name: VoiceName
    gender: Gender
    style: str

    model_config = ConfigDict(frozen=True, extra="forbid")


VOICE_OPTIONS: tuple[VoiceOption, ...] = (
    VoiceOption(name="Puck", gender="Male", style="Soft, Deep"),
    VoiceOption(name="Charon", gender="Male", style="Deep, Authoritative"),
    VoiceOption(name="Kore", gender="Female", style="Calm, Soothing"),
    VoiceOption(name="Fenrir", gender="Male", style="Energetic, Strong"),
    VoiceOption(name="Zephyr", gender="Female", style="Bright, Clear"),
)


class ScriptBlock(BaseModel):
    """One line of a conversation script."""

    id: str
    speaker: str
    voice: VoiceName = "Kore"
    text: str = ""

    model_config = ConfigDict(frozen=True, extra="forbid")


class MelodyConfig(BaseModel):
    genre: MusicGenre = "Pop"
    mood: MusicMood = "Ceria"
    text: str = "La la la la la..."

    model_config = ConfigDict(frozen=True, extra="forbid")


INITIAL_SCRIPT_BLOCKS: tuple[ScriptBlock, ...] = (
    ScriptBlock(
        id="1",
        speaker="Narrator",
        voice="Kore",
        text="Welcome to SuaraAI Studio. This is a demo of text-driven voice editing.",
    ),
    ScriptBlock(
        id="2",
        speaker="Budi",
        voice="Puck",
        text="Wow, the voice sounds really natural! How does it work?",
    ),
    ScriptBlock(
        id="3",
        speaker="Narrator",
        voice="Kore",
        text="It's easy. Type your script, pick a character, and the AI turns it into audio.",
    ),
)


class StudioSnapshot(BaseModel):
    """Everything the studio persists between sessions."""

    active_tab: TabMode = Field(default="script", alias="activeTab")
    script_blocks: tuple[ScriptBlock, ...] = Field(
        default=INITIAL_SCRIPT_BLOCKS,
        alias="blocks",
    )
    melody_config: MelodyConfig = Field(default_factory=MelodyConfig, alias="melodyConfig")
    edit_config: EditConfig = Field(default_factory=EditConfig, alias="editConfig")

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


def _default_state_path() -> Path:
    configured = os.environ.get(STATE_PATH_ENV)
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".suarastudio" / "state.json"


class StudioSettings(BaseModel):
    api_key: str | None = None
    speech_model: str = DEFAULT_SPEECH_MODEL
    transform_model: str = DEFAULT_TRANSFORM_MODEL
    state_path: Path = Field(default_factory=_default_state_path)
    history_limit: int = Field(default=DEFAULT_HISTORY_LIMIT, gt=0)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def from_env(cls) -> "StudioSettings":
        api_key = next((os.environ[name] for name in API_KEY_ENVS if os.environ.get(name)), None)
        if api_key is None:
            _LOGGER.debug("No API key found in %s.", ", ".join(API_KEY_ENVS))
        return cls(
            api_key=api_key,
            speech_model=os.environ.get("SUARASTUDIO_SPEECH_MODEL", DEFAULT_SPEECH_MODEL),
            transform_model=os.environ.get(
                "SUARASTUDIO_TRANSFORM_MODEL", DEFAULT_TRANSFORM_MODEL
            ),
        )
