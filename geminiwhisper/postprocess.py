"""Loudness normalization and transcoding of raw captures with ffmpeg."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable

from geminiwhisper.errors import ToolInvocationFailure

logger = logging.getLogger(__name__)

TARGET_SAMPLE_RATE = 16000
MONO_CHANNELS = 1
WAV_MIME = "audio/wav"


class AudioFormat(str, Enum):
    OGG = "ogg"
    MP3 = "mp3"
    WAV = "wav"

    @property
    def suffix(self) -> str:
        return f".{self.value}"

    @property
    def mime_type(self) -> str:
        return _MIME_TYPES[self]

    @property
    def codec_args(self) -> list[str]:
        return list(_CODEC_ARGS[self])


_MIME_TYPES = {
    AudioFormat.OGG: "audio/ogg",
    AudioFormat.MP3: "audio/mp3",
    AudioFormat.WAV: WAV_MIME,
}

_CODEC_ARGS = {
    # Speech-tuned Opus, roughly a tenth of the PCM size.
    AudioFormat.OGG: ("-c:a", "libopus", "-b:a", "24k", "-application", "voip"),
    AudioFormat.MP3: ("-c:a", "libmp3lame", "-q:a", "5"),
    AudioFormat.WAV: ("-c:a", "pcm_s16le"),
}

FALLBACK_FORMATS = {
    AudioFormat.OGG: (AudioFormat.MP3,),
    AudioFormat.MP3: (AudioFormat.OGG,),
    AudioFormat.WAV: (),
}

UPLOAD_FORMAT = AudioFormat.OGG
ARCHIVE_FORMAT = AudioFormat.MP3


@dataclass
class ProcessedAudio:
    normalized_path: Path
    upload_path: Path
    upload_mime: str
    archive_path: Path


class AudioPostProcessor:
    """
    Prepares a raw capture for upload and archival.

    Every tool failure degrades to the best audio already available: a failed
    normalization copies the input, a failed transcode falls back to another
    format and finally to the untranscoded file. The raw capture is only read.
    """

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        target_lufs: float = -16.0,
        true_peak_db: float = -1.5,
        timeout_s: float = 30.0,
    ) -> None:
        self._ffmpeg_path = ffmpeg_path
        self._target_lufs = target_lufs
        self._true_peak_db = true_peak_db
        self._timeout_s = timeout_s

    def is_available(self) -> bool:
        return shutil.which(self._ffmpeg_path) is not None

    def prepare(self, raw_path: Path) -> ProcessedAudio:
        normalized = self.normalize(raw_path)

        upload = self.transcode(normalized, UPLOAD_FORMAT)
        if upload is None:
            logger.warning("Uploading untranscoded audio %s", normalized.name)
            upload_path, upload_mime = normalized, WAV_MIME
        else:
            upload_path, upload_mime = upload, _mime_for(upload)

        archive = self.transcode(normalized, ARCHIVE_FORMAT)
        if archive is None:
            logger.warning("Archiving raw capture %s", raw_path.name)
            archive = raw_path

        return ProcessedAudio(
            normalized_path=normalized,
            upload_path=upload_path,
            upload_mime=upload_mime,
            archive_path=archive,
        )

    def normalize(self, raw_path: Path) -> Path:
        """Loudness-normalize to 16 kHz mono PCM. Never fails; copies on tool error."""
        output = raw_path.with_name(f"{raw_path.stem}_normalized.wav")
        loudnorm = f"loudnorm=I={self._target_lufs:g}:TP={self._true_peak_db:g}:LRA=11"
        try:
            self._run_ffmpeg(
                [
                    "-i", str(raw_path),
                    "-af", loudnorm,
                    "-ar", str(TARGET_SAMPLE_RATE),
                    "-ac", str(MONO_CHANNELS),
                    *AudioFormat.WAV.codec_args,
                    str(output),
                ]
            )
        except ToolInvocationFailure as e:
            logger.warning("Normalization failed, using unmodified capture: %s", e)
            shutil.copyfile(raw_path, output)
        return output

    def transcode(self, input_path: Path, target: AudioFormat) -> Path | None:
        """
        Encode ``input_path`` as ``target``, then its fallbacks.

        Returns:
            Path of the first successful encoding, or None if all failed.
        """
        for fmt in (target, *FALLBACK_FORMATS[target]):
            output = input_path.with_name(f"{input_path.stem}_{fmt.value}{fmt.suffix}")
            try:
                self._run_ffmpeg(["-i", str(input_path), *fmt.codec_args, str(output)])
            except ToolInvocationFailure as e:
                logger.warning("Transcoding to %s failed: %s", fmt.value, e)
                _remove_quietly(output)
                continue
            return output
        return None

    def cleanup(self, paths: Iterable[Path]) -> None:
        for path in paths:
            _remove_quietly(path)

    def _run_ffmpeg(self, args: list[str]) -> None:
        cmd = [self._ffmpeg_path, "-y", "-hide_banner", "-loglevel", "error", *args]
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self._timeout_s,
            )
        except FileNotFoundError as e:
            raise ToolInvocationFailure(f"{self._ffmpeg_path} not found") from e
        except subprocess.TimeoutExpired as e:
            raise ToolInvocationFailure(f"ffmpeg timed out after {self._timeout_s:g}s") from e
        except OSError as e:
            raise ToolInvocationFailure(f"ffmpeg could not be started: {e}") from e

        if result.returncode != 0:
            raise ToolInvocationFailure(f"ffmpeg exited with {result.returncode}: {result.stderr.strip()}")


def _mime_for(path: Path) -> str:
    for fmt in AudioFormat:
        if path.suffix == fmt.suffix:
            return fmt.mime_type
    return WAV_MIME


def _remove_quietly(path: Path) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Failed to remove temp file %s: %s", path, e)
