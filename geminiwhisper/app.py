"""Main Gemini Whisper application."""

from __future__ import annotations

import logging
import signal
import threading

from geminiwhisper.archive import RecordingArchive
from geminiwhisper.audio import AudioCapture, FeedbackTones, get_device_name, list_input_devices
from geminiwhisper.config import Config
from geminiwhisper.errors import ModeNotFoundError, TranscriptionError
from geminiwhisper.modes import ModeRegistry
from geminiwhisper.output import ClipboardOutput, DesktopNotifier, PasteSimulator
from geminiwhisper.postprocess import AudioPostProcessor
from geminiwhisper.ratelimit import RateLimiter, RateLimiterState
from geminiwhisper.session import PipelineState, SessionState, SessionStateMachine
from geminiwhisper.settings import SettingsStore
from geminiwhisper.transcribe import GeminiTranscriber

logger = logging.getLogger(__name__)

PIPELINE_JOIN_TIMEOUT_S = 5.0

STATUS_ICONS = {
    SessionState.RECORDING: "🎙️",
    SessionState.PROCESSING: "⏳",
    SessionState.DELIVERED: "✅",
    SessionState.NO_SPEECH: "🤫",
    SessionState.FAILED: "❌",
}


def build_settings(config: Config) -> SettingsStore:
    return SettingsStore(config.settings_path, defaults=config)


class DictationApp:
    """
    Push-to-Talk Dictation Application.

    A global hotkey toggles recording; the recording is normalized, sent to
    Gemini, and the transcript is copied (and optionally pasted) into the
    focused window. A second hotkey cycles through transcription modes.
    """

    def __init__(self, config: Config | None = None) -> None:
        self._config = config or Config()
        self._stop_event = threading.Event()
        self._last_state = SessionState.IDLE

        self.settings = build_settings(self._config)
        self.modes = ModeRegistry(self.settings)
        self.archive = RecordingArchive(self._config.archive_dir)

        limiter_state = RateLimiterState.initial(self._config.rate_limit.min_interval_s)
        self._limiter = RateLimiter(
            limiter_state,
            max_interval_s=self._config.rate_limit.max_interval_s,
            backoff_base_s=self._config.rate_limit.backoff_base_s,
        )
        self._transcriber = GeminiTranscriber(
            self._limiter,
            base_url=self._config.gemini.base_url,
            timeout_s=self._config.gemini.request_timeout_s,
            max_retries=self._config.gemini.max_retries,
        )
        self._audio = AudioCapture(self._config.audio)
        self._tones = FeedbackTones(self._config.tones, self._config.audio.sample_rate)
        self._post = AudioPostProcessor(
            ffmpeg_path=self._config.postprocess.ffmpeg_path,
            target_lufs=self._config.postprocess.target_lufs,
            true_peak_db=self._config.postprocess.true_peak_db,
            timeout_s=self._config.postprocess.timeout_s,
        )
        self.session = SessionStateMachine(
            recorder=self._audio,
            post_processor=self._post,
            limiter=self._limiter,
            transcriber=self._transcriber,
            archive=self.archive,
            modes=self.modes,
            settings=self.settings,
            clipboard=ClipboardOutput(),
            paster=PasteSimulator(),
            scratch_dir=self._config.scratch_dir,
            state=PipelineState(limiter=limiter_state),
            on_status=self._on_status,
            notifier=DesktopNotifier(),
            settle_delay_s=self._config.settle_delay_s,
        )

    def setup(self) -> None:
        """Prepare data directories and print the startup banner."""
        self._config.scratch_dir.mkdir(parents=True, exist_ok=True)
        self._config.archive_dir.mkdir(parents=True, exist_ok=True)
        self._print_banner()
        self._print_devices()
        self._check_model()
        self._print_instructions()

    def _print_banner(self) -> None:
        print("=" * 60)
        print("🎙️ GEMINI WHISPER - Push-to-Talk Dictation")
        print("=" * 60)

    def _print_devices(self) -> None:
        print("\n🎤 Available audio input devices:")
        print("-" * 50)
        for device in list_input_devices():
            print(f"  {device}")
        print("-" * 50)

        device_name = get_device_name(self._config.audio.device_id)
        if self._config.audio.device_id is not None:
            print(f"\n✅ Using input device [{self._config.audio.device_id}]: {device_name}")
        else:
            print(f"\n✅ Using DEFAULT input device: {device_name}")

        if not self._post.is_available():
            print("⚠️  ffmpeg not found: audio will be sent without normalization")
        if not self.settings.get_active_api_key():
            print("⚠️  No API key configured. Run: python -m geminiwhisper set-key <KEY>")

    def _check_model(self) -> None:
        if not self.settings.get_active_api_key():
            return
        try:
            models = self.session.available_models()
        except TranscriptionError as e:
            print(f"⚠️  Could not verify the API key: {e.message}")
            return
        model_id = self.settings.get_active_model_id()
        if model_id not in {model.id for model in models}:
            print(f"⚠️  Model {model_id!r} is not available for this key.")
            print("   Run: python -m geminiwhisper models")

    def _print_instructions(self) -> None:
        try:
            mode = self.modes.get_active_mode()
        except ModeNotFoundError:
            mode = self.modes.reset_active_mode()
        print("\n" + "=" * 60)
        print("📌 INSTRUCTIONS:")
        print(f"   • Press {self._config.keybinds.trigger} to start, press again to transcribe.")
        print(f"   • Press {self._config.keybinds.mode_switch} to switch mode.")
        print("   • Ctrl+C quits.")
        print(f"   • Model: {self.settings.get_active_model_id()}  Mode: {mode.name}")
        print("=" * 60)
        print("\n🟢 Ready!\n")

    def _on_status(self, state: SessionState, message: str) -> None:
        if state == SessionState.RECORDING:
            self._tones.play_start()
        elif state == SessionState.PROCESSING and self._last_state == SessionState.RECORDING:
            self._tones.play_stop()
        self._last_state = state
        print(f"{STATUS_ICONS.get(state, '•')} {message}")

    def _on_mode_switch(self) -> None:
        mode = self.session.on_mode_switch_trigger()
        print(f"🔁 Mode: {mode.name}")

    def shutdown(self) -> None:
        """Shutdown the application gracefully."""
        if self._stop_event.is_set():
            return
        logger.info("Shutting down...")
        self._stop_event.set()

        if self._audio.is_recording:
            self._audio.stop()
        if self.session.state == SessionState.PROCESSING:
            print("⏳ Waiting for the current transcription to finish...")
            if not self.session.wait_until_idle(PIPELINE_JOIN_TIMEOUT_S):
                logger.warning(
                    "Session still processing after %.0fs, closing anyway", PIPELINE_JOIN_TIMEOUT_S
                )
        self._transcriber.close()

    def run(self) -> None:
        """Run the application with a global hotkey listener."""
        from pynput import keyboard

        self.setup()

        hotkeys = {
            self._config.keybinds.trigger: self.session.on_trigger,
            self._config.keybinds.mode_switch: self._on_mode_switch,
        }

        def handle_sigint(sig: int, frame: object) -> None:
            self.shutdown()
            raise SystemExit(0)

        signal.signal(signal.SIGINT, handle_sigint)

        with keyboard.GlobalHotKeys(hotkeys) as listener:
            while not self._stop_event.is_set() and listener.is_alive():
                self._stop_event.wait(0.5)

        self.shutdown()
