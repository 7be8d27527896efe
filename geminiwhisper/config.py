"""Configuration for the Gemini Whisper application."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


@dataclass
class AudioConfig:
    sample_rate: int = 16_000
    channels: int = 1
    block_ms: int = 30
    device_id: int | None = None

    @property
    def block_size(self) -> int:
        return int(self.sample_rate * (self.block_ms / 1000.0))


@dataclass
class ToneConfig:
    enabled: bool = True
    start_hz: int = 880
    stop_hz: int = 440
    duration_s: float = 0.04
    volume: float = 0.15


@dataclass
class GeminiConfig:
    api_key: str = ""
    model: str = DEFAULT_MODEL
    base_url: str = DEFAULT_BASE_URL
    request_timeout_s: float = 60.0
    max_retries: int = 3

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


@dataclass
class RateLimitConfig:
    min_interval_s: float = 1.0
    max_interval_s: float = 60.0
    backoff_base_s: float = 2.0


@dataclass
class PostProcessConfig:
    ffmpeg_path: str = "ffmpeg"
    target_lufs: float = -16.0
    true_peak_db: float = -1.5
    timeout_s: float = 30.0


@dataclass
class KeybindConfig:
    # pynput GlobalHotKeys syntax
    trigger: str = "<alt>+<space>"
    mode_switch: str = "<alt>+m"


@dataclass
class Config:
    audio: AudioConfig = field(default_factory=AudioConfig)
    tones: ToneConfig = field(default_factory=ToneConfig)
    gemini: GeminiConfig = field(default_factory=GeminiConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    postprocess: PostProcessConfig = field(default_factory=PostProcessConfig)
    keybinds: KeybindConfig = field(default_factory=KeybindConfig)
    data_dir: Path = field(default_factory=lambda: Path.home() / ".geminiwhisper")
    auto_paste: bool = True
    show_notifications: bool = True
    settle_delay_s: float = 0.5
    verbose: bool = False

    @property
    def archive_dir(self) -> Path:
        return self.data_dir / "recordings"

    @property
    def scratch_dir(self) -> Path:
        return self.data_dir / "scratch"

    @property
    def settings_path(self) -> Path:
        return self.data_dir / "settings.json"

    @classmethod
    def from_env(cls) -> "Config":
        config = cls()

        if device := os.environ.get("GEMINIWHISPER_AUDIO_DEVICE"):
            config.audio.device_id = _parse_number(device, int, config.audio.device_id)

        if api_key := os.environ.get("GEMINI_API_KEY"):
            config.gemini.api_key = api_key.strip()

        if model := os.environ.get("GEMINIWHISPER_MODEL"):
            config.gemini.model = model.strip()

        if timeout := os.environ.get("GEMINIWHISPER_TIMEOUT"):
            config.gemini.request_timeout_s = _parse_number(
                timeout, float, config.gemini.request_timeout_s
            )

        if interval := os.environ.get("GEMINIWHISPER_MIN_INTERVAL"):
            config.rate_limit.min_interval_s = _parse_number(
                interval, float, config.rate_limit.min_interval_s
            )

        if data_dir := os.environ.get("GEMINIWHISPER_DATA_DIR"):
            config.data_dir = Path(data_dir).expanduser()

        if ffmpeg := os.environ.get("GEMINIWHISPER_FFMPEG"):
            config.postprocess.ffmpeg_path = ffmpeg

        if hotkey := os.environ.get("GEMINIWHISPER_HOTKEY"):
            config.keybinds.trigger = hotkey

        if hotkey := os.environ.get("GEMINIWHISPER_MODE_HOTKEY"):
            config.keybinds.mode_switch = hotkey

        if auto_paste := os.environ.get("GEMINIWHISPER_AUTO_PASTE"):
            config.auto_paste = _parse_bool(auto_paste)

        if notifications := os.environ.get("GEMINIWHISPER_NOTIFICATIONS"):
            config.show_notifications = _parse_bool(notifications)

        if verbose := os.environ.get("GEMINIWHISPER_VERBOSE"):
            config.verbose = _parse_bool(verbose)

        return config


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _parse_number(value: str, kind: type, default):
    try:
        return kind(value)
    except ValueError:
        logger.warning("Ignoring invalid numeric setting %r", value)
        return default
