"""Pytest configuration and fixtures."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Generator

import numpy as np
import pytest

from geminiwhisper.config import Config
from geminiwhisper.modes import ModeRegistry
from geminiwhisper.settings import SettingsStore

if TYPE_CHECKING:
    from numpy.typing import NDArray


@pytest.fixture
def sample_audio_16k() -> NDArray[np.int16]:
    """Generate 1 second of sample audio at 16kHz."""
    sample_rate = 16000
    duration = 1.0
    t = np.linspace(0, duration, int(sample_rate * duration), dtype=np.float32)
    # Generate a 440Hz sine wave
    audio = np.sin(2 * np.pi * 440 * t) * 0.5
    return (audio * 32767).astype(np.int16)


@pytest.fixture
def temp_wav_file(sample_audio_16k: NDArray[np.int16]) -> Generator[str, None, None]:
    """Create a temporary WAV file with sample audio."""
    from scipy.io.wavfile import write as wav_write

    fd, path = tempfile.mkstemp(suffix=".wav")
    os.close(fd)
    wav_write(path, 16000, sample_audio_16k)
    yield path
    # Cleanup
    if os.path.exists(path):
        os.remove(path)


@pytest.fixture
def clean_env() -> Generator[None, None, None]:
    """Fixture to clean environment variables before/after tests."""
    env_vars = [
        "GEMINI_API_KEY",
        "GEMINIWHISPER_AUDIO_DEVICE",
        "GEMINIWHISPER_MODEL",
        "GEMINIWHISPER_TIMEOUT",
        "GEMINIWHISPER_DATA_DIR",
        "GEMINIWHISPER_FFMPEG",
        "GEMINIWHISPER_AUTO_PASTE",
        "GEMINIWHISPER_NOTIFICATIONS",
        "GEMINIWHISPER_VERBOSE",
        "GEMINIWHISPER_HOTKEY",
        "GEMINIWHISPER_MODE_HOTKEY",
        "GEMINIWHISPER_MIN_INTERVAL",
    ]
    original_values = {var: os.environ.get(var) for var in env_vars}

    for var in env_vars:
        os.environ.pop(var, None)

    yield

    for var, value in original_values.items():
        if value is not None:
            os.environ[var] = value
        else:
            os.environ.pop(var, None)


@pytest.fixture
def config(tmp_path: Path) -> Config:
    """Config rooted in a temporary data directory."""
    config = Config(data_dir=tmp_path / "data")
    config.gemini.api_key = "env-key"
    return config


@pytest.fixture
def settings(config: Config) -> SettingsStore:
    return SettingsStore(config.settings_path, defaults=config)


@pytest.fixture
def registry(settings: SettingsStore) -> ModeRegistry:
    return ModeRegistry(settings)
