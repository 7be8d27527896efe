"""Microphone capture to a scratch WAV file, plus start/stop feedback tones."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
import sounddevice as sd
from scipy.io.wavfile import write as wav_write

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from geminiwhisper.config import AudioConfig, ToneConfig

logger = logging.getLogger(__name__)

PCM16_FULL_SCALE = 32767.0
TONE_FADE_S = 0.008


@dataclass(frozen=True)
class InputDevice:
    index: int
    name: str
    is_default: bool = False

    def __str__(self) -> str:
        suffix = "  <- default" if self.is_default else ""
        return f"[{self.index}] {self.name}{suffix}"


def _default_input_index() -> int:
    # sd.default.device is an (input, output) pair
    return sd.default.device[0]


def list_input_devices() -> list[InputDevice]:
    default_index = _default_input_index()
    return [
        InputDevice(index=i, name=info["name"], is_default=i == default_index)
        for i, info in enumerate(sd.query_devices())
        if info["max_input_channels"] > 0
    ]


def get_device_name(device_id: int | None) -> str:
    index = _default_input_index() if device_id is None else device_id
    return sd.query_devices(index)["name"]


def to_int16(blocks: list["NDArray[np.float32]"]) -> "NDArray[np.int16]":
    """Concatenate float blocks in [-1, 1] into 16-bit PCM samples."""
    if not blocks:
        return np.zeros((0,), dtype=np.int16)
    merged = np.clip(np.concatenate(blocks), -1.0, 1.0)
    return (merged * PCM16_FULL_SCALE).astype(np.int16)


def synthesize_tone(frequency_hz: int, duration_s: float, volume: float, sample_rate: int) -> "NDArray[np.float32]":
    """Sine beep with short linear fades so it does not click."""
    n = int(sample_rate * duration_s)
    tone = volume * np.sin(2.0 * np.pi * frequency_hz * np.arange(n) / sample_rate)
    fade = int(TONE_FADE_S * sample_rate)
    if 0 < fade and 2 * fade < n:
        ramp = np.linspace(0.0, 1.0, fade)
        tone[:fade] *= ramp
        tone[-fade:] *= ramp[::-1]
    return tone.astype(np.float32)


class FeedbackTones:
    """Start and stop beeps, synthesized once and played without blocking."""

    def __init__(self, config: "ToneConfig", sample_rate: int) -> None:
        self._enabled = config.enabled
        self._sample_rate = sample_rate
        self._start = synthesize_tone(config.start_hz, config.duration_s, config.volume, sample_rate)
        self._stop = synthesize_tone(config.stop_hz, config.duration_s, config.volume, sample_rate)

    def play_start(self) -> None:
        self._play(self._start)

    def play_stop(self) -> None:
        self._play(self._stop)

    def _play(self, tone: "NDArray[np.float32]") -> None:
        if not self._enabled:
            return
        try:
            sd.play(tone, self._sample_rate, blocking=False)
        except sd.PortAudioError as e:
            logger.warning("Could not play feedback tone: %s", e)


class AudioCapture:
    """
    Microphone capture for one session at a time.

    Blocks are buffered in memory while recording; :meth:`save_wav` writes
    the buffered capture to a scratch file once recording has stopped.
    """

    def __init__(self, audio_config: "AudioConfig") -> None:
        self._cfg = audio_config
        self._stream: sd.InputStream | None = None
        self._active = False
        self._started_at: float | None = None
        self._frames: list["NDArray[np.float32]"] = []
        self._lock = threading.Lock()

    @property
    def is_recording(self) -> bool:
        with self._lock:
            return self._active

    @property
    def recording_duration(self) -> float:
        started_at = self._started_at
        if not self._active or started_at is None:
            return 0.0
        return time.monotonic() - started_at

    def start(self) -> None:
        with self._lock:
            if self._active:
                return
            self._frames = []
            self._active = True
            self._started_at = time.monotonic()

        try:
            self._stream = self._open_stream()
            self._stream.start()
        except Exception:
            with self._lock:
                self._active = False
            self._stream = None
            raise

    def stop(self) -> float:
        """Stop capturing and return the recording length in seconds."""
        with self._lock:
            if not self._active:
                return 0.0
            self._active = False
            elapsed = time.monotonic() - (self._started_at or time.monotonic())

        self._close_stream()
        return elapsed

    def save_wav(self, path: Path) -> int:
        """
        Write the captured audio as 16-bit mono WAV.

        Returns:
            Number of samples written (0 means nothing was captured).
        """
        with self._lock:
            frames, self._frames = self._frames, []
        samples = to_int16(frames)

        path.parent.mkdir(parents=True, exist_ok=True)
        wav_write(str(path), self._cfg.sample_rate, samples)
        logger.info("Saved capture %s (%.2fs)", path.name, len(samples) / self._cfg.sample_rate)
        return int(samples.shape[0])

    def _open_stream(self) -> sd.InputStream:
        return sd.InputStream(
            samplerate=self._cfg.sample_rate,
            channels=self._cfg.channels,
            dtype="float32",
            blocksize=self._cfg.block_size,
            device=self._cfg.device_id,
            callback=self._on_block,
        )

    def _close_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except sd.PortAudioError as e:
            logger.warning("Error closing input stream: %s", e)

    def _on_block(
        self,
        indata: "NDArray[np.float32]",
        frames: int,
        time_info: object,
        status: sd.CallbackFlags,
    ) -> None:
        if status:
            logger.warning("Input overflow/underflow: %s", status)
        # First channel only; the buffer is reused by PortAudio after return.
        mono = indata[:, 0].copy()
        with self._lock:
            if self._active:
                self._frames.append(mono)
