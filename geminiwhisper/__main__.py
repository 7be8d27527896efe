"""Entry point for running geminiwhisper as a module: python -m geminiwhisper"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from geminiwhisper import __version__
from geminiwhisper.archive import RecordingArchive
from geminiwhisper.config import Config
from geminiwhisper.errors import GeminiWhisperError, ModeNotFoundError
from geminiwhisper.modes import ModeRegistry
from geminiwhisper.ratelimit import RateLimiter, RateLimiterState
from geminiwhisper.settings import SettingsStore
from geminiwhisper.transcribe import GeminiTranscriber

NOISY_LOGGERS = ("httpx", "httpcore", "sounddevice", "pynput")


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbosity setting."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gemini-whisper",
        description="Push-to-talk dictation transcribed by Gemini.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable info logging")
    commands = parser.add_subparsers(dest="command")

    commands.add_parser("run", help="start the hotkey listener (default)")

    modes = commands.add_parser("modes", help="manage transcription modes")
    modes_cmd = modes.add_subparsers(dest="modes_command", required=True)
    modes_cmd.add_parser("list", help="list modes, marking the active one")
    add = modes_cmd.add_parser("add", help="create a custom mode")
    add.add_argument("name")
    add.add_argument("prompt")
    add.add_argument("--icon")
    add.add_argument("--color")
    remove = modes_cmd.add_parser("remove", help="delete a custom mode")
    remove.add_argument("mode_id")
    use = modes_cmd.add_parser("use", help="set the active mode")
    use.add_argument("mode_id")
    modes_cmd.add_parser("cycle", help="switch to the next mode")

    history = commands.add_parser("history", help="browse archived recordings")
    history_cmd = history.add_subparsers(dest="history_command", required=True)
    history_cmd.add_parser("list", help="list archived recordings")
    show = history_cmd.add_parser("show", help="print a transcript")
    show.add_argument("entry_id")
    delete = history_cmd.add_parser("delete", help="delete a recording")
    delete.add_argument("entry_id")
    history_cmd.add_parser("clear", help="delete every recording")

    set_key = commands.add_parser("set-key", help="store the Gemini API key")
    set_key.add_argument("key")
    set_model = commands.add_parser("set-model", help="store the Gemini model id")
    set_model.add_argument("model")
    set_model.add_argument(
        "--no-check", action="store_true", help="save without checking the model is available"
    )
    commands.add_parser("models", help="list models available to the API key")
    test_key = commands.add_parser("test-key", help="check that an API key is accepted")
    test_key.add_argument("key", nargs="?", help="key to test (default: the stored key)")

    return parser


def run_modes(args: argparse.Namespace, registry: ModeRegistry) -> int:
    if args.modes_command == "list":
        try:
            active_id = registry.get_active_mode().id
        except ModeNotFoundError:
            active_id = registry.reset_active_mode().id
        for mode in registry.list_modes():
            marker = "*" if mode.id == active_id else " "
            origin = "built-in" if mode.is_builtin else "custom"
            print(f"{marker} {mode.id:<20} {mode.icon} {mode.name} ({origin})")
    elif args.modes_command == "add":
        mode = registry.create_custom_mode(args.name, args.prompt, icon=args.icon, color=args.color)
        print(f"Created mode {mode.id}")
    elif args.modes_command == "remove":
        registry.get_mode(args.mode_id)
        registry.delete_custom_mode(args.mode_id)
        print(f"Deleted mode {args.mode_id}")
    elif args.modes_command == "use":
        mode = registry.set_active_mode(args.mode_id)
        print(f"Active mode: {mode.name}")
    elif args.modes_command == "cycle":
        mode = registry.cycle_mode()
        print(f"Active mode: {mode.name}")
    return 0


def run_history(args: argparse.Namespace, archive: RecordingArchive) -> int:
    if args.history_command == "list":
        entries = archive.list()
        if not entries:
            print("No recordings.")
            return 0
        for entry in entries:
            preview = (entry.transcript or "").replace("\n", " ")
            if len(preview) > 60:
                preview = preview[:57] + "..."
            size_kb = entry.size_bytes / 1024
            print(f"{entry.id}  {entry.created_at:%Y-%m-%d %H:%M:%S}  {size_kb:7.1f} KB  {preview}")
        print(f"\n{len(entries)} recordings, {archive.total_size() / 1024:.1f} KB total")
    elif args.history_command == "show":
        entry = archive.get(args.entry_id)
        if entry is None:
            print(f"No archived recording with id {args.entry_id!r}", file=sys.stderr)
            return 1
        print(entry.transcript if entry.transcript is not None else "(no transcript)")
        if entry.audio_path is not None:
            print(f"\nAudio: {entry.audio_path}")
    elif args.history_command == "delete":
        if archive.get(args.entry_id) is None:
            print(f"No archived recording with id {args.entry_id!r}", file=sys.stderr)
            return 1
        archive.delete(args.entry_id)
        print(f"Deleted {args.entry_id}")
    elif args.history_command == "clear":
        removed = archive.clear_all()
        print(f"Removed {removed} files")
    return 0


def build_transcriber(config: Config) -> GeminiTranscriber:
    limiter = RateLimiter(RateLimiterState.initial(config.rate_limit.min_interval_s))
    return GeminiTranscriber(
        limiter,
        base_url=config.gemini.base_url,
        timeout_s=config.gemini.request_timeout_s,
    )


def run_remote(
    args: argparse.Namespace, settings: SettingsStore, transcriber: GeminiTranscriber
) -> int:
    """Commands that talk to the models endpoint."""
    if args.command == "test-key":
        models = transcriber.list_models(args.key or settings.get_active_api_key())
        print(f"✅ API key is valid ({len(models)} models available)")
        return 0

    if args.command == "models":
        active_id = settings.get_active_model_id()
        for model in transcriber.list_models(settings.get_active_api_key()):
            marker = "*" if model.id == active_id else " "
            print(f"{marker} {model.id:<40} {model.display_name}")
        return 0

    # set-model
    available = {model.id for model in transcriber.list_models(settings.get_active_api_key())}
    if args.model.strip() not in available:
        print(f"❌ Model {args.model!r} is not available for this key", file=sys.stderr)
        print("   Run 'models' to see the choices, or pass --no-check", file=sys.stderr)
        return 1
    settings.set_model_id(args.model)
    print(f"Model set to {args.model}")
    return 0


def run_app(config: Config) -> int:
    from geminiwhisper.app import DictationApp

    app = DictationApp(config)

    try:
        app.run()
        return 0
    except KeyboardInterrupt:
        print("\n👋 Interrupted")
        return 130
    except Exception as e:
        logging.exception("Fatal error: %s", e)
        return 1
    finally:
        app.shutdown()


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    env_path = Path.cwd() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    args = build_parser().parse_args(argv)
    config = Config.from_env()
    if args.verbose:
        config.verbose = True
    setup_logging(config.verbose)

    command = args.command or "run"
    if command == "run":
        return run_app(config)

    settings = SettingsStore(config.settings_path, defaults=config)
    try:
        if command == "modes":
            return run_modes(args, ModeRegistry(settings))
        if command == "history":
            return run_history(args, RecordingArchive(config.archive_dir))
        if command == "set-key":
            settings.set_api_key(args.key)
            print(f"API key saved to {settings.path}")
        elif command == "set-model" and (args.no_check or not settings.get_active_api_key()):
            settings.set_model_id(args.model)
            print(f"Model set to {args.model}")
        elif command in ("set-model", "models", "test-key"):
            transcriber = build_transcriber(config)
            try:
                return run_remote(args, settings, transcriber)
            finally:
                transcriber.close()
        return 0
    except (GeminiWhisperError, ValueError) as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
