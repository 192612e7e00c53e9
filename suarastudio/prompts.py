from __future__ import annotations

from collections.abc import Iterable

from .config import MelodyConfig, ScriptBlock, VoiceName

MELODY_VOICE: VoiceName = "Zephyr"

TRANSFORM_PRESETS: tuple[str, ...] = (
    "Change the vocals to a male voice (Deep Male Voice)",
    "Change the vocals to a female voice (Soft Female Voice)",
    "Change the vocals to a child's voice (Child Voice)",
    "Change the vocals to a futuristic robot",
    "Acoustic style (keep the melody)",
    "Rock style (keep the melody)",
    "Concert hall echo (Reverb)",
    "Old radio sound (Lo-Fi)",
)

_TRANSFORM_TEMPLATE = """
Task: Audio-to-Audio Transformation.
Input: An audio file containing music or vocals.
Instruction: {instruction}.

CRITICAL CONSTRAINTS:
1. PRESERVE the original melody, harmony, tempo, rhythm, and song structure EXACTLY.
2. DO NOT compose a new song. The output must align perfectly with the original audio.
3. ONLY change the vocal timbre (voice character) or instrumentation style as requested.
4. If the instruction asks to change the voice, keep the original lyrics and pitch melody but swap the singer's tone.
5. High fidelity output required.
"""


def format_script(blocks: Iterable[ScriptBlock]) -> str:
    return "\n".join(f"{block.speaker}: {block.text}" for block in blocks)


def speaker_voices(blocks: Iterable[ScriptBlock]) -> dict[str, VoiceName]:
    """Map each speaker to the voice of its first line."""

    voices: dict[str, VoiceName] = {}
    for block in blocks:
        voices.setdefault(block.speaker, block.voice)
    return voices


def melody_prompt(config: MelodyConfig) -> str:
    return f"(Singing in a {config.mood} {config.genre} style) {config.text}"


def transform_prompt(instruction: str) -> str:
    return _TRANSFORM_TEMPLATE.format(instruction=instruction.strip())
