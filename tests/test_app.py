"""Tests for the hotkey application's status and shutdown handling."""

from __future__ import annotations

import threading
from unittest.mock import MagicMock

import pytest

try:
    from geminiwhisper.app import PIPELINE_JOIN_TIMEOUT_S, DictationApp
except OSError:
    # sounddevice raises OSError when the PortAudio library is missing
    pytest.skip("PortAudio not available", allow_module_level=True)

from geminiwhisper.session import SessionState


class FakeTones:
    def __init__(self) -> None:
        self.played: list[str] = []

    def play_start(self) -> None:
        self.played.append("start")

    def play_stop(self) -> None:
        self.played.append("stop")


def bare_app() -> DictationApp:
    """A DictationApp without devices, hotkeys or a network client."""
    app = DictationApp.__new__(DictationApp)
    app._stop_event = threading.Event()
    app._last_state = SessionState.IDLE
    app._tones = FakeTones()
    app._audio = MagicMock(is_recording=False)
    app._transcriber = MagicMock()
    app.session = MagicMock(state=SessionState.IDLE)
    return app


class TestStatusTones:
    """Tests for tone selection from status updates."""

    def test_one_tone_per_transition(self, capsys: pytest.CaptureFixture) -> None:
        app = bare_app()

        app._on_status(SessionState.RECORDING, "Listening...")
        app._on_status(SessionState.PROCESSING, "Transcribing...")
        app._on_status(SessionState.PROCESSING, "Transcribing (attempt 1/4)...")
        app._on_status(SessionState.PROCESSING, "Service unavailable, retrying in 2s...")
        app._on_status(SessionState.DELIVERED, "Copied!")

        assert app._tones.played == ["start", "stop"]
        assert "Copied!" in capsys.readouterr().out

    def test_stop_tone_ignores_message_text(self) -> None:
        app = bare_app()
        app._on_status(SessionState.RECORDING, "Listening...")
        app._on_status(SessionState.PROCESSING, "Working on it")
        assert app._tones.played == ["start", "stop"]

    def test_no_stop_tone_when_session_fails_at_stop(self) -> None:
        app = bare_app()
        app._on_status(SessionState.RECORDING, "Listening...")
        app._on_status(SessionState.FAILED, "Error: disk full")
        assert app._tones.played == ["start"]

    def test_each_session_gets_its_stop_tone(self) -> None:
        app = bare_app()
        for _ in range(2):
            app._on_status(SessionState.RECORDING, "Listening...")
            app._on_status(SessionState.PROCESSING, "Transcribing...")
            app._on_status(SessionState.DELIVERED, "Copied!")
        assert app._tones.played == ["start", "stop", "start", "stop"]


class TestShutdown:
    """Tests for DictationApp.shutdown."""

    def test_waits_for_processing_before_closing_client(self) -> None:
        app = bare_app()
        order: list[str] = []
        app.session.state = SessionState.PROCESSING
        app.session.wait_until_idle.side_effect = lambda timeout: order.append("wait") or True
        app._transcriber.close.side_effect = lambda: order.append("close")

        app.shutdown()

        app.session.wait_until_idle.assert_called_once_with(PIPELINE_JOIN_TIMEOUT_S)
        assert order == ["wait", "close"]

    def test_idle_closes_without_waiting(self) -> None:
        app = bare_app()
        app.shutdown()
        app.session.wait_until_idle.assert_not_called()
        app._transcriber.close.assert_called_once()

    def test_stops_active_recording(self) -> None:
        app = bare_app()
        app._audio.is_recording = True
        app.shutdown()
        app._audio.stop.assert_called_once()

    def test_second_call_is_noop(self) -> None:
        app = bare_app()
        app.shutdown()
        app.shutdown()
        app._transcriber.close.assert_called_once()
