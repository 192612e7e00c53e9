from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Iterable

from rich.console import Console

from .audio import decode_file, write_wav
from .config import (
    API_KEY_ENVS,
    MUSIC_GENRES,
    MUSIC_MOODS,
    MelodyConfig,
    ScriptBlock,
    StudioSettings,
)
from .editor import EditConfig, apply_edits
from .errors import PlaybackError, ValidationError
from .logging_utils import configure_logging, debug_enabled, get_log_path, log_exception
from .models import build_service
from .playback import resolve_backend
from .spinner import Spinner, render_error
from .studio import Studio

_LOGGER = logging.getLogger("suarastudio.cli")
_CONSOLE = Console()


def _load_script(path: Path) -> list[ScriptBlock]:
    """Read script lines from a JSON list or an object with a ``blocks`` list."""

    payload: Any = json.loads(path.read_text(encoding="utf-8"))
    match payload:
        case {"blocks": list() as entries}:
            pass
        case list() as entries:
            pass
        case _:
            raise ValidationError(f"{path} must contain a list of script lines")
    blocks: list[ScriptBlock] = []
    for index, entry in enumerate(entries, start=1):
        if not isinstance(entry, dict):
            raise ValidationError(f"Script line {index} in {path} must be an object")
        blocks.append(ScriptBlock.model_validate({"id": str(index), **entry}))
    return blocks


def _build_studio() -> Studio:
    settings = StudioSettings.from_env()
    return Studio(build_service(settings), history_limit=settings.history_limit)


def _save(studio: Studio, args: argparse.Namespace) -> Path:
    if args.output:
        buffer = studio.processed_buffer
        if buffer is None:
            raise ValidationError("There is no audio to save.")
        return write_wav(args.output, buffer)
    return studio.download(args.output_dir)


def _report(lines: Iterable[str]) -> None:
    for line in lines:
        _CONSOLE.print(line)


def _doctor_lines(settings: StudioSettings) -> list[str]:
    try:
        backend = resolve_backend().name
    except PlaybackError as exc:
        backend = f"unavailable ({exc})"
    return [
        f"API key set: {settings.api_key is not None}",
        f"Speech model: {settings.speech_model}",
        f"Transform model: {settings.transform_model}",
        f"Playback backend: {backend}",
        f"State file: {settings.state_path}",
        f"Log file: {get_log_path()}",
        "Hints:",
        f"- Export one of {', '.join(API_KEY_ENVS)} before generating audio.",
        "- Install the `playback` extra for speaker output.",
        "- Set SUARASTUDIO_DEBUG=1 for verbose console logs.",
    ]


def build_parser() -> argparse.ArgumentParser:
    output = argparse.ArgumentParser(add_help=False)
    output.add_argument("--output", type=Path, default=None, help="Exact WAV path to write.")
    output.add_argument(
        "--output-dir",
        type=Path,
        default=Path("."),
        help="Directory for the timestamped download name.",
    )

    parser = argparse.ArgumentParser(prog="suarastudio")
    sub = parser.add_subparsers(dest="command", required=True)

    speak = sub.add_parser("speak", parents=[output], help="Voice a conversation script.")
    speak.add_argument("script", type=Path, help="JSON list of {speaker, voice, text} lines.")

    melody = sub.add_parser("melody", parents=[output], help="Sing lyrics or humming.")
    melody.add_argument("text", type=str)
    melody.add_argument("--genre", choices=MUSIC_GENRES, default="Pop")
    melody.add_argument("--mood", choices=MUSIC_MOODS, default="Ceria")

    transform = sub.add_parser("transform", parents=[output], help="Restyle an audio file.")
    transform.add_argument("input", type=Path)
    transform.add_argument("instruction", type=str)

    edit = sub.add_parser("edit", parents=[output], help="Trim and fade an audio file.")
    edit.add_argument("input", type=Path)
    edit.add_argument("--trim-start", type=float, default=0.0)
    edit.add_argument("--trim-end", type=float, default=0.0)
    edit.add_argument("--fade-in", type=float, default=0.0)
    edit.add_argument("--fade-out", type=float, default=0.0)

    info = sub.add_parser("info", help="Show the layout of an audio file.")
    info.add_argument("input", type=Path)

    sub.add_parser("doctor", help="Check API key, models and playback backends.")
    return parser


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    try:
        parser = build_parser()
        args = parser.parse_args(argv)

        match args.command:
            case "speak" | "melody" | "transform":
                studio = _build_studio()
                try:
                    if args.command == "speak":
                        studio.set_script_blocks(_load_script(args.script))
                        studio.set_tab("script")
                        with Spinner("Voicing script"):
                            studio.generate()
                    elif args.command == "melody":
                        studio.set_melody_config(
                            MelodyConfig(genre=args.genre, mood=args.mood, text=args.text)
                        )
                        studio.set_tab("melody")
                        with Spinner("Composing melody"):
                            studio.generate()
                    else:
                        studio.upload(args.input)
                        with Spinner("Transforming audio"):
                            studio.transform(args.instruction)
                    path = _save(studio, args)
                    duration = studio.duration
                finally:
                    studio.close()
                _CONSOLE.print(f"Wrote {path} ({duration:.2f}s)")
                return 0

            case "edit":
                original = decode_file(args.input)
                config = EditConfig(
                    trim_start=args.trim_start,
                    trim_end=args.trim_end,
                    fade_in=args.fade_in,
                    fade_out=args.fade_out,
                )
                edited = apply_edits(original, config)
                target = args.output or args.output_dir / f"{args.input.stem}-edited.wav"
                path = write_wav(target, edited)
                _CONSOLE.print(
                    f"Wrote {path} ({original.duration:.2f}s -> {edited.duration:.2f}s)"
                )
                return 0

            case "info":
                buffer = decode_file(args.input)
                _report(
                    [
                        f"File: {args.input}",
                        f"Channels: {buffer.number_of_channels}",
                        f"Sample rate: {buffer.sample_rate} Hz",
                        f"Frames: {buffer.length}",
                        f"Duration: {buffer.duration:.3f}s",
                    ]
                )
                return 0

            case "doctor":
                _report(_doctor_lines(StudioSettings.from_env()))
                return 0

        parser.print_help()
        return 1
    except Exception as exc:
        _LOGGER.warning("suarastudio CLI failed: %s", exc, exc_info=debug_enabled())
        log_exception("suarastudio CLI", exc)
        render_error("suarastudio CLI", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
