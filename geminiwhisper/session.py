"""Session state machine driving capture, processing and delivery."""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Protocol

from geminiwhisper.errors import (
    ArchiveIOFailure,
    ModeNotFoundError,
    TranscriptionError,
)
from geminiwhisper.ratelimit import RateLimiterState

if TYPE_CHECKING:
    from geminiwhisper.archive import ArchiveEntryHandle, RecordingArchive
    from geminiwhisper.modes import Mode, ModeRegistry
    from geminiwhisper.postprocess import AudioPostProcessor, ProcessedAudio
    from geminiwhisper.ratelimit import RateLimiter
    from geminiwhisper.transcribe import GeminiModel, GeminiTranscriber, TranscriptionResult

logger = logging.getLogger(__name__)

NO_SPEECH_PLACEHOLDER = "[No speech detected]"
DEFAULT_SETTLE_DELAY_S = 0.5


class SessionState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    PROCESSING = "processing"
    DELIVERED = "delivered"
    NO_SPEECH = "no_speech"
    FAILED = "failed"


TERMINAL_STATES = frozenset({SessionState.DELIVERED, SessionState.NO_SPEECH, SessionState.FAILED})

StatusCallback = Callable[[SessionState, str], None]
Executor = Callable[[Callable[[], None]], None]


class Recorder(Protocol):
    def start(self) -> None: ...

    def stop(self) -> float: ...

    def save_wav(self, path: Path) -> int: ...


class SettingsProvider(Protocol):
    def get_active_api_key(self) -> str: ...

    def get_active_model_id(self) -> str: ...

    def get_auto_paste_enabled(self) -> bool: ...

    def get_show_notifications(self) -> bool: ...


class TextSink(Protocol):
    def output(self, text: str) -> None: ...


class Paster(Protocol):
    def paste(self) -> None: ...


class Notifier(Protocol):
    def notify(self, title: str, message: str) -> None: ...


@dataclass
class RecordingSession:
    session_id: str
    started_at: datetime
    raw_audio_path: Path
    mode: "Mode | None" = None


@dataclass
class PipelineState:
    """Process-wide mutable state, owned by one state machine."""

    limiter: RateLimiterState = field(default_factory=RateLimiterState)
    state: SessionState = SessionState.IDLE
    session: RecordingSession | None = None
    completed_sessions: int = 0
    models: "list[GeminiModel] | None" = None


@dataclass
class Outcome:
    state: SessionState
    message: str


def _spawn_thread(job: Callable[[], None]) -> None:
    threading.Thread(target=job, name="session-pipeline", daemon=True).start()


class SessionStateMachine:
    """
    Push-to-talk session lifecycle.

    ``IDLE -> RECORDING -> PROCESSING -> DELIVERED | NO_SPEECH | FAILED -> IDLE``.
    The state check in :meth:`start` and :meth:`stop` is the only gate for new
    work: triggers arriving while a session is busy are ignored, never queued.
    Processing cannot be cancelled once started and always ends in exactly one
    terminal state with one status message.
    """

    def __init__(
        self,
        recorder: Recorder,
        post_processor: "AudioPostProcessor",
        limiter: "RateLimiter",
        transcriber: "GeminiTranscriber",
        archive: "RecordingArchive",
        modes: "ModeRegistry",
        settings: SettingsProvider,
        clipboard: TextSink,
        paster: Paster,
        scratch_dir: Path,
        state: PipelineState | None = None,
        on_status: StatusCallback | None = None,
        notifier: Notifier | None = None,
        settle_delay_s: float = DEFAULT_SETTLE_DELAY_S,
        executor: Executor = _spawn_thread,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._recorder = recorder
        self._post = post_processor
        self._limiter = limiter
        self._transcriber = transcriber
        self._archive = archive
        self._modes = modes
        self._settings = settings
        self._clipboard = clipboard
        self._paster = paster
        self._scratch_dir = scratch_dir
        self._pipeline = state or PipelineState(limiter=limiter.state)
        self._on_status = on_status
        self._notifier = notifier
        self._settle_delay_s = settle_delay_s
        self._executor = executor
        self._sleep = sleep
        self._lock = threading.Lock()
        self._idle = threading.Event()
        self._idle.set()

    @property
    def state(self) -> SessionState:
        return self._pipeline.state

    @property
    def pipeline_state(self) -> PipelineState:
        return self._pipeline

    @property
    def current_session(self) -> RecordingSession | None:
        return self._pipeline.session

    def on_trigger(self) -> None:
        """Hotkey entry point: start when idle, stop when recording, else ignore."""
        state = self.state
        if state == SessionState.IDLE:
            self.start()
        elif state == SessionState.RECORDING:
            self.stop()
        else:
            logger.debug("Trigger ignored while %s", state.value)

    def on_mode_switch_trigger(self) -> "Mode":
        return self._modes.cycle_mode()

    def start(self) -> bool:
        with self._lock:
            if self._pipeline.state != SessionState.IDLE:
                logger.debug("start() ignored while %s", self._pipeline.state.value)
                return False
            session_id = uuid.uuid4().hex[:12]
            session = RecordingSession(
                session_id=session_id,
                started_at=datetime.now(),
                raw_audio_path=self._scratch_dir / f"{session_id}_raw.wav",
            )
            self._pipeline.session = session
            self._pipeline.state = SessionState.RECORDING
            self._idle.clear()

        try:
            self._recorder.start()
        except Exception as e:
            logger.exception("Could not start recording")
            self._finish(Outcome(SessionState.FAILED, f"Microphone error: {e}"))
            return False

        logger.info("Session %s recording", session.session_id)
        self._emit(SessionState.RECORDING, "Listening...")
        return True

    def stop(self) -> bool:
        with self._lock:
            session = self._pipeline.session
            if self._pipeline.state != SessionState.RECORDING or session is None:
                logger.debug("stop() ignored while %s", self._pipeline.state.value)
                return False
            self._pipeline.state = SessionState.PROCESSING

        try:
            session.mode = self._snapshot_mode()
        except Exception as e:
            logger.exception("Could not resolve the active mode")
            self._stop_recorder()
            self._finish(Outcome(SessionState.FAILED, f"Error: {e}"))
            return False

        self._stop_recorder()
        self._emit(SessionState.PROCESSING, "Transcribing...")
        try:
            self._executor(lambda: self._process(session))
        except Exception as e:
            logger.exception("Could not start processing for session %s", session.session_id)
            self._post.cleanup(list(self._scratch_dir.glob(f"{session.session_id}_*")))
            self._finish(Outcome(SessionState.FAILED, f"Error: {e}"))
            return False
        return True

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        """Block until no session is in flight. Returns False on timeout."""
        return self._idle.wait(timeout)

    def available_models(self, refresh: bool = False) -> "list[GeminiModel]":
        """Models usable with the active key, fetched once and then cached."""
        if self._pipeline.models is None or refresh:
            self._pipeline.models = self._transcriber.list_models(self._settings.get_active_api_key())
        return list(self._pipeline.models)

    def _stop_recorder(self) -> None:
        try:
            self._recorder.stop()
        except Exception as e:
            logger.warning("Error stopping recorder: %s", e)

    def _snapshot_mode(self) -> "Mode":
        try:
            return self._modes.get_active_mode()
        except ModeNotFoundError as e:
            logger.warning("%s; falling back to default mode", e)
            return self._modes.reset_active_mode()

    def _process(self, session: RecordingSession) -> None:
        try:
            outcome = self._run_pipeline(session)
        except Exception as e:
            logger.exception("Unexpected error while processing session %s", session.session_id)
            outcome = Outcome(SessionState.FAILED, f"Error: {e}")
        finally:
            # Raw capture and every derived file share the session id prefix.
            self._post.cleanup(list(self._scratch_dir.glob(f"{session.session_id}_*")))
        self._finish(outcome)

    def _run_pipeline(self, session: RecordingSession) -> Outcome:
        # Let the audio backend flush its last buffers.
        if self._settle_delay_s > 0:
            self._sleep(self._settle_delay_s)

        frames = self._recorder.save_wav(session.raw_audio_path)
        if frames == 0:
            return Outcome(SessionState.FAILED, "No audio captured.")

        processed = self._post.prepare(session.raw_audio_path)
        audio_bytes = processed.upload_path.read_bytes()

        if session.mode is None:
            raise RuntimeError(f"Session {session.session_id} has no mode")
        try:
            self._limiter.await_slot()
            result = self._transcriber.transcribe(
                audio_bytes,
                processed.upload_mime,
                session.mode.prompt,
                self._settings.get_active_model_id(),
                self._settings.get_active_api_key(),
                on_status=lambda message: self._emit(SessionState.PROCESSING, message),
            )
        except TranscriptionError as e:
            self._archive_session(session, processed, transcript=None)
            return Outcome(SessionState.FAILED, f"Error: {e.message}")

        if result.no_speech:
            self._archive_session(session, processed, transcript=NO_SPEECH_PLACEHOLDER)
            return Outcome(SessionState.NO_SPEECH, "No speech detected.")

        return self._deliver(session, processed, result)

    def _deliver(
        self,
        session: RecordingSession,
        processed: "ProcessedAudio",
        result: "TranscriptionResult",
    ) -> Outcome:
        try:
            self._clipboard.output(result.text)
        except Exception as e:
            logger.error("Clipboard write failed: %s", e)
            self._archive_session(session, processed, transcript=result.text)
            return Outcome(SessionState.FAILED, f"Transcribed, but clipboard failed: {e}")

        message = "Copied!"
        if self._settings.get_auto_paste_enabled():
            try:
                self._paster.paste()
            except Exception as e:
                logger.warning("Auto-paste failed: %s", e)
                message = "Copied! (auto-paste failed, press paste manually)"

        self._archive_session(session, processed, transcript=result.text)
        return Outcome(SessionState.DELIVERED, message)

    def _archive_session(
        self,
        session: RecordingSession,
        processed: "ProcessedAudio",
        transcript: str | None,
    ) -> None:
        """Best-effort archive write; failures are logged and never change the outcome."""
        handle: "ArchiveEntryHandle | None" = None
        try:
            handle = self._archive.begin_entry(session.started_at)
            self._archive.commit_audio(handle, processed.archive_path)
        except (ArchiveIOFailure, OSError) as e:
            logger.error("Failed to archive audio for session %s: %s", session.session_id, e)

        if handle is None or transcript is None:
            return
        try:
            self._archive.commit_transcript(handle, transcript)
        except (ArchiveIOFailure, OSError) as e:
            logger.error("Failed to archive transcript for session %s: %s", session.session_id, e)

    def _finish(self, outcome: Outcome) -> None:
        with self._lock:
            self._pipeline.state = outcome.state
        self._emit(outcome.state, outcome.message)
        self._notify(outcome)
        with self._lock:
            self._pipeline.session = None
            self._pipeline.completed_sessions += 1
            self._pipeline.state = SessionState.IDLE
        self._idle.set()

    def _notify(self, outcome: Outcome) -> None:
        if self._notifier is not None and self._settings.get_show_notifications():
            self._notifier.notify("Gemini Whisper", outcome.message)

    def _emit(self, state: SessionState, message: str) -> None:
        if self._on_status is None:
            return
        try:
            self._on_status(state, message)
        except Exception:
            logger.exception("Status callback failed")
