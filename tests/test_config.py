"""Tests for the config module."""

from __future__ import annotations

import os
from pathlib import Path

from geminiwhisper.config import (
    DEFAULT_MODEL,
    AudioConfig,
    Config,
    GeminiConfig,
    KeybindConfig,
    PostProcessConfig,
    RateLimitConfig,
    ToneConfig,
)


class TestAudioConfig:
    """Tests for AudioConfig dataclass."""

    def test_default_values(self) -> None:
        """Test default configuration values."""
        config = AudioConfig()
        assert config.sample_rate == 16_000
        assert config.channels == 1
        assert config.block_ms == 30
        assert config.device_id is None

    def test_block_size_calculation(self) -> None:
        """Test block size is calculated correctly."""
        config = AudioConfig(sample_rate=16000, block_ms=30)
        assert config.block_size == 480

    def test_block_size_with_different_rates(self) -> None:
        config = AudioConfig(sample_rate=48000, block_ms=20)
        assert config.block_size == 960


class TestToneConfig:
    """Tests for ToneConfig dataclass."""

    def test_default_values(self) -> None:
        config = ToneConfig()
        assert config.enabled is True
        assert config.start_hz == 880
        assert config.stop_hz == 440


class TestGeminiConfig:
    """Tests for GeminiConfig dataclass."""

    def test_default_values(self) -> None:
        """Test default remote model configuration."""
        config = GeminiConfig()
        assert config.api_key == ""
        assert config.model == DEFAULT_MODEL
        assert config.base_url.startswith("https://generativelanguage.googleapis.com")
        assert config.max_retries == 3

    def test_max_attempts_includes_first_try(self) -> None:
        assert GeminiConfig(max_retries=3).max_attempts == 4
        assert GeminiConfig(max_retries=0).max_attempts == 1


class TestRateLimitAndPostProcessConfig:
    """Tests for limiter and ffmpeg defaults."""

    def test_rate_limit_defaults(self) -> None:
        config = RateLimitConfig()
        assert config.min_interval_s == 1.0
        assert config.max_interval_s == 60.0
        assert config.backoff_base_s == 2.0

    def test_postprocess_defaults(self) -> None:
        config = PostProcessConfig()
        assert config.ffmpeg_path == "ffmpeg"
        assert config.target_lufs == -16.0
        assert config.true_peak_db == -1.5


class TestConfig:
    """Tests for main Config dataclass."""

    def test_default_values(self) -> None:
        """Test default configuration."""
        config = Config()
        assert isinstance(config.audio, AudioConfig)
        assert isinstance(config.gemini, GeminiConfig)
        assert isinstance(config.keybinds, KeybindConfig)
        assert config.auto_paste is True
        assert config.show_notifications is True
        assert config.verbose is False
        assert config.data_dir == Path.home() / ".geminiwhisper"

    def test_derived_paths(self, tmp_path: Path) -> None:
        """Test archive, scratch and settings paths live under data_dir."""
        config = Config(data_dir=tmp_path)
        assert config.archive_dir == tmp_path / "recordings"
        assert config.scratch_dir == tmp_path / "scratch"
        assert config.settings_path == tmp_path / "settings.json"

    def test_from_env_audio_device(self, clean_env: None) -> None:
        """Test loading audio device from environment."""
        os.environ["GEMINIWHISPER_AUDIO_DEVICE"] = "3"
        config = Config.from_env()
        assert config.audio.device_id == 3

    def test_from_env_invalid_audio_device(self, clean_env: None) -> None:
        """Test invalid device index keeps default."""
        os.environ["GEMINIWHISPER_AUDIO_DEVICE"] = "usb-mic"
        config = Config.from_env()
        assert config.audio.device_id is None

    def test_from_env_api_key_and_model(self, clean_env: None) -> None:
        os.environ["GEMINI_API_KEY"] = "  secret  "
        os.environ["GEMINIWHISPER_MODEL"] = "gemini-2.0-flash"
        config = Config.from_env()
        assert config.gemini.api_key == "secret"
        assert config.gemini.model == "gemini-2.0-flash"

    def test_from_env_numbers(self, clean_env: None) -> None:
        os.environ["GEMINIWHISPER_TIMEOUT"] = "12.5"
        os.environ["GEMINIWHISPER_MIN_INTERVAL"] = "not-a-number"
        config = Config.from_env()
        assert config.gemini.request_timeout_s == 12.5
        assert config.rate_limit.min_interval_s == 1.0

    def test_from_env_data_dir(self, clean_env: None, tmp_path: Path) -> None:
        os.environ["GEMINIWHISPER_DATA_DIR"] = str(tmp_path / "gw")
        config = Config.from_env()
        assert config.data_dir == tmp_path / "gw"

    def test_from_env_hotkeys(self, clean_env: None) -> None:
        os.environ["GEMINIWHISPER_HOTKEY"] = "<ctrl>+<shift>+d"
        os.environ["GEMINIWHISPER_MODE_HOTKEY"] = "<ctrl>+<shift>+m"
        config = Config.from_env()
        assert config.keybinds.trigger == "<ctrl>+<shift>+d"
        assert config.keybinds.mode_switch == "<ctrl>+<shift>+m"

    def test_from_env_booleans(self, clean_env: None) -> None:
        """Test loading boolean settings from environment."""
        os.environ["GEMINIWHISPER_AUTO_PASTE"] = "false"
        os.environ["GEMINIWHISPER_NOTIFICATIONS"] = "0"
        os.environ["GEMINIWHISPER_VERBOSE"] = "yes"
        config = Config.from_env()
        assert config.auto_paste is False
        assert config.show_notifications is False
        assert config.verbose is True

    def test_from_env_empty_uses_defaults(self, clean_env: None) -> None:
        config = Config.from_env()
        assert config.gemini.api_key == ""
        assert config.gemini.model == DEFAULT_MODEL
        assert config.postprocess.ffmpeg_path == "ffmpeg"
