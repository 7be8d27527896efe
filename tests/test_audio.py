"""Tests for the audio module."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import numpy as np
import pytest
from scipy.io.wavfile import read as wav_read

try:
    from geminiwhisper import audio
except OSError:
    # sounddevice raises OSError when the PortAudio library is missing
    pytest.skip("PortAudio not available", allow_module_level=True)

from geminiwhisper.config import AudioConfig, ToneConfig


class TestToInt16:
    """Tests for float to PCM conversion."""

    def test_empty(self) -> None:
        assert audio.to_int16([]).shape == (0,)

    def test_scales_and_clips(self) -> None:
        blocks = [np.array([0.0, 0.5], dtype=np.float32), np.array([2.0, -2.0], dtype=np.float32)]
        samples = audio.to_int16(blocks)
        assert samples.dtype == np.int16
        assert samples.tolist() == [0, 16383, 32767, -32767]


class TestAudioCapture:
    """Tests for AudioCapture with a mocked input stream."""

    @patch("geminiwhisper.audio.sd.InputStream")
    def test_records_and_saves(self, mock_stream: MagicMock, tmp_path: Path) -> None:
        capture = audio.AudioCapture(AudioConfig())
        capture.start()
        assert capture.is_recording

        block = np.full((480, 1), 0.25, dtype=np.float32)
        capture._on_block(block, 480, {}, None)
        capture._on_block(block, 480, {}, None)
        capture.stop()

        path = tmp_path / "raw.wav"
        assert capture.save_wav(path) == 960
        rate, samples = wav_read(path)
        assert rate == 16000
        assert len(samples) == 960
        mock_stream.return_value.start.assert_called_once()
        mock_stream.return_value.close.assert_called_once()

    @patch("geminiwhisper.audio.sd.InputStream")
    def test_blocks_after_stop_ignored(self, mock_stream: MagicMock, tmp_path: Path) -> None:
        capture = audio.AudioCapture(AudioConfig())
        capture.start()
        capture.stop()
        block = np.ones((480, 1), dtype=np.float32)
        capture._on_block(block, 480, {}, None)
        assert capture.save_wav(tmp_path / "raw.wav") == 0

    @patch("geminiwhisper.audio.sd.InputStream")
    def test_stream_error_resets_state(self, mock_stream: MagicMock) -> None:
        mock_stream.side_effect = RuntimeError("no device")
        capture = audio.AudioCapture(AudioConfig())
        with pytest.raises(RuntimeError):
            capture.start()
        assert capture.is_recording is False


class TestFeedbackTones:
    @patch("geminiwhisper.audio.sd.play")
    def test_disabled_tones_are_silent(self, mock_play: MagicMock) -> None:
        tones = audio.FeedbackTones(ToneConfig(enabled=False), 16000)
        tones.play_start()
        tones.play_stop()
        mock_play.assert_not_called()

    @patch("geminiwhisper.audio.sd.play")
    def test_plays_precomputed_tone(self, mock_play: MagicMock) -> None:
        audio.FeedbackTones(ToneConfig(), 16000).play_start()
        tone = mock_play.call_args.args[0]
        assert len(tone) == int(16000 * 0.04)
        assert tone.dtype == np.float32
        assert abs(tone[0]) < 1e-6

    def test_synthesized_tone_within_volume(self) -> None:
        tone = audio.synthesize_tone(440, 0.1, 0.15, 16000)
        assert np.max(np.abs(tone)) <= 0.15 + 1e-6
