"""Durable storage of recorded audio and transcripts."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from geminiwhisper.errors import ArchiveEntryNotFound, ArchiveIOFailure

logger = logging.getLogger(__name__)

AUDIO_EXTENSIONS = (".mp3", ".ogg", ".wav")
TRANSCRIPT_EXTENSION = ".txt"
TEMP_SUFFIX = ".part"
ENTRY_ID_FORMAT = "%Y%m%d-%H%M%S-%f"


@dataclass
class ArchiveEntryHandle:
    """Slot allocated for one session; audio path is known once committed."""

    id: str
    transcript_path: Path
    audio_path: Path | None = None


@dataclass(frozen=True)
class ArchiveEntry:
    id: str
    created_at: datetime
    size_bytes: int
    audio_path: Path | None
    transcript_path: Path | None
    transcript: str | None


def entry_id_for(started_at: datetime) -> str:
    """Timestamp-derived id with millisecond precision, e.g. 20260101-093000-123."""
    return started_at.strftime(ENTRY_ID_FORMAT)[:-3]


def _parse_entry_id(entry_id: str) -> datetime | None:
    try:
        return datetime.strptime(entry_id + "000", ENTRY_ID_FORMAT)
    except ValueError:
        return None


class RecordingArchive:
    """
    One audio file and one transcript file per session in a flat directory.

    Metadata (size, creation time) is derived from the filesystem. Files are
    written to hidden ``.part`` files first and renamed into place, so readers
    never see half-written entries; they may however see audio whose
    transcript has not been written yet.
    """

    def __init__(self, root: Path) -> None:
        self._root = root

    @property
    def root(self) -> Path:
        return self._root

    def begin_entry(self, started_at: datetime) -> ArchiveEntryHandle:
        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ArchiveIOFailure(f"Cannot create archive directory {self._root}: {e}") from e
        entry_id = entry_id_for(started_at)
        return ArchiveEntryHandle(
            id=entry_id,
            transcript_path=self._root / f"{entry_id}{TRANSCRIPT_EXTENSION}",
        )

    def commit_audio(self, handle: ArchiveEntryHandle, source: Path) -> Path:
        """Copy finished audio into the entry's slot, replacing earlier commits."""
        suffix = source.suffix.lower()
        if suffix not in AUDIO_EXTENSIONS:
            raise ArchiveIOFailure(f"Unsupported audio format for archive: {source.name}")

        target = self._root / f"{handle.id}{suffix}"
        try:
            for stale in self._audio_paths(handle.id):
                if stale != target:
                    stale.unlink()
            self._atomic_copy(source, target)
        except OSError as e:
            raise ArchiveIOFailure(f"Failed to archive audio {source}: {e}") from e

        handle.audio_path = target
        logger.info("Archived audio %s", target.name)
        return target

    def commit_transcript(self, handle: ArchiveEntryHandle, text: str) -> Path:
        try:
            self._atomic_write_text(handle.transcript_path, text)
        except OSError as e:
            raise ArchiveIOFailure(
                f"Failed to write transcript {handle.transcript_path}: {e}"
            ) from e
        logger.info("Archived transcript %s", handle.transcript_path.name)
        return handle.transcript_path

    def list(self) -> list[ArchiveEntry]:
        """All entries, most recent first. Missing transcripts surface as ``None``."""
        if not self._root.is_dir():
            return []

        ids: set[str] = set()
        for path in self._root.iterdir():
            if path.name.startswith(".") or not path.is_file():
                continue
            if path.suffix.lower() in AUDIO_EXTENSIONS or path.suffix == TRANSCRIPT_EXTENSION:
                ids.add(path.stem)

        entries = []
        for entry_id in sorted(ids, reverse=True):
            try:
                entry = self.get(entry_id)
            except ValueError:
                logger.warning("Skipping archive file with invalid id %r", entry_id)
                continue
            if entry is not None:
                entries.append(entry)
        return entries

    def get(self, entry_id: str) -> ArchiveEntry | None:
        self._validate_id(entry_id)
        audio_path = next(iter(self._audio_paths(entry_id)), None)
        transcript_path = self._root / f"{entry_id}{TRANSCRIPT_EXTENSION}"
        transcript = self._read_text(transcript_path)
        if audio_path is None and transcript is None:
            return None

        size = 0
        mtime = None
        if audio_path is not None:
            try:
                stat = audio_path.stat()
                size, mtime = stat.st_size, stat.st_mtime
            except FileNotFoundError:
                # Deleted between listing and stat.
                audio_path = None

        created_at = _parse_entry_id(entry_id)
        if created_at is None:
            created_at = datetime.fromtimestamp(mtime) if mtime else datetime.now()

        return ArchiveEntry(
            id=entry_id,
            created_at=created_at,
            size_bytes=size,
            audio_path=audio_path,
            transcript_path=transcript_path if transcript is not None else None,
            transcript=transcript,
        )

    def read(self, entry_id: str) -> bytes:
        self._validate_id(entry_id)
        for path in self._audio_paths(entry_id):
            try:
                return path.read_bytes()
            except FileNotFoundError:
                continue
            except OSError as e:
                raise ArchiveIOFailure(f"Failed to read {path}: {e}") from e
        raise ArchiveEntryNotFound(entry_id)

    def read_transcript(self, entry_id: str) -> str | None:
        self._validate_id(entry_id)
        return self._read_text(self._root / f"{entry_id}{TRANSCRIPT_EXTENSION}")

    def delete(self, entry_id: str) -> bool:
        """
        Remove an entry's audio and transcript.

        Returns:
            True if an audio file existed. A missing transcript is not an error.

        Raises:
            ArchiveIOFailure: If an existing file could not be removed. Every
                file is attempted before raising.
        """
        self._validate_id(entry_id)
        audio_paths = self._audio_paths(entry_id)
        transcript_path = self._root / f"{entry_id}{TRANSCRIPT_EXTENSION}"
        targets = audio_paths + ([transcript_path] if transcript_path.exists() else [])
        if not targets:
            return False

        failures = self._unlink_all(targets)
        if failures:
            raise ArchiveIOFailure(f"Could not fully delete {entry_id}: " + "; ".join(failures))
        logger.info("Deleted archive entry %s", entry_id)
        return bool(audio_paths)

    def clear_all(self) -> int:
        """Remove every archive file, including leftovers of interrupted writes."""
        if not self._root.is_dir():
            return 0

        targets = [
            path
            for path in self._root.iterdir()
            if path.is_file()
            and (
                path.name.endswith(TEMP_SUFFIX)
                or path.suffix.lower() in AUDIO_EXTENSIONS
                or path.suffix == TRANSCRIPT_EXTENSION
            )
        ]
        failures = self._unlink_all(targets)
        if failures:
            raise ArchiveIOFailure("Could not clear archive: " + "; ".join(failures))
        logger.info("Cleared %d archive files", len(targets))
        return len(targets)

    def total_size(self) -> int:
        return sum(entry.size_bytes for entry in self.list())

    def _audio_paths(self, entry_id: str) -> list[Path]:
        return [
            self._root / f"{entry_id}{ext}"
            for ext in AUDIO_EXTENSIONS
            if (self._root / f"{entry_id}{ext}").is_file()
        ]

    @staticmethod
    def _unlink_all(paths: list[Path]) -> list[str]:
        failures = []
        for path in paths:
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.error("Failed to delete %s: %s", path, e)
                failures.append(f"{path.name}: {e}")
        return failures

    @staticmethod
    def _validate_id(entry_id: str) -> None:
        if not entry_id or "/" in entry_id or "\\" in entry_id or entry_id.startswith("."):
            raise ValueError(f"Invalid archive entry id: {entry_id!r}")

    @staticmethod
    def _read_text(path: Path) -> str | None:
        try:
            with open(path, encoding="utf-8", newline="") as f:
                return f.read()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read transcript %s: %s", path, e)
            return None

    def _atomic_copy(self, source: Path, target: Path) -> None:
        fd, tmp = tempfile.mkstemp(dir=self._root, prefix=f".{target.name}.", suffix=TEMP_SUFFIX)
        os.close(fd)
        try:
            shutil.copyfile(source, tmp)
            os.replace(tmp, target)
        except OSError:
            _remove_quietly(tmp)
            raise

    def _atomic_write_text(self, target: Path, text: str) -> None:
        self._root.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self._root, prefix=f".{target.name}.", suffix=TEMP_SUFFIX)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(text)
            os.replace(tmp, target)
        except OSError:
            _remove_quietly(tmp)
            raise


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except OSError as e:
        logger.warning("Failed to remove temp file %s: %s", path, e)
