"""Transcription modes: named prompt profiles, built-in and user-defined."""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from geminiwhisper.errors import ModeNotFoundError
from geminiwhisper.settings import SettingsStore

logger = logging.getLogger(__name__)

NO_SPEECH_SENTINEL = "%NOSPEECHFOUND%"
DEFAULT_MODE_ID = "normal"

_ACTIVE_KEY = "active_mode"
_CUSTOM_KEY = "custom_modes"
_PATCHABLE_FIELDS = ("name", "prompt", "icon", "color")

_NO_SPEECH_INSTRUCTION = (
    "Only output the transcription. Never write labels like (clap), (hum), or "
    "anything describing background noise. If you cannot identify any speech, "
    f"output exactly {NO_SPEECH_SENTINEL}."
)


class ModeOrigin(str, Enum):
    BUILTIN = "builtin"
    CUSTOM = "custom"


@dataclass(frozen=True)
class Mode:
    id: str
    name: str
    prompt: str
    icon: str = ""
    color: str = ""
    origin: ModeOrigin = ModeOrigin.CUSTOM
    created_at: str | None = None

    @property
    def is_builtin(self) -> bool:
        return self.origin == ModeOrigin.BUILTIN

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["origin"] = self.origin.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Mode":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", data["id"])),
            prompt=str(data.get("prompt", "")),
            icon=str(data.get("icon") or ""),
            color=str(data.get("color") or ""),
            origin=ModeOrigin.CUSTOM,
            created_at=data.get("created_at"),
        )


BUILTIN_MODES: tuple[Mode, ...] = (
    Mode(
        id="normal",
        name="Normal",
        prompt=(
            "Transcribe the following audio, focusing on clear human speech. "
            "If there is background noise, do your best to ignore it, but "
            "include all intelligible speech. " + _NO_SPEECH_INSTRUCTION
        ),
        icon="🎙️",
        color="#4a90d9",
        origin=ModeOrigin.BUILTIN,
    ),
    Mode(
        id="email",
        name="Email",
        prompt=(
            "Transcribe the following audio as a professionally written email, "
            "including greetings, structure, and tone. Focus on clear human "
            "speech, and do your best to ignore background noise. "
            + _NO_SPEECH_INSTRUCTION
        ),
        icon="✉️",
        color="#d98c4a",
        origin=ModeOrigin.BUILTIN,
    ),
)


class ModeRegistry:
    """
    Registry of transcription modes backed by the settings store.

    Built-in modes are fixed in code. Custom modes and the active mode id are
    persisted; every mutation is a single settings write so the active id
    never points at a mode deleted by the same operation.
    """

    def __init__(self, store: SettingsStore) -> None:
        self._store = store

    def list_modes(self) -> list[Mode]:
        return list(BUILTIN_MODES) + self._custom_modes(self._store.read_all())

    def get_mode(self, mode_id: str) -> Mode:
        for mode in self.list_modes():
            if mode.id == mode_id:
                return mode
        raise ModeNotFoundError(mode_id)

    def get_active_mode(self) -> Mode:
        """
        Return the active mode.

        Raises:
            ModeNotFoundError: If the stored id matches no mode. Callers
                recover with :meth:`reset_active_mode`.
        """
        active_id = self._store.read_all().get(_ACTIVE_KEY, DEFAULT_MODE_ID)
        return self.get_mode(str(active_id))

    def set_active_mode(self, mode_id: str) -> Mode:
        mode = self.get_mode(mode_id)
        self._store.update(lambda data: data.__setitem__(_ACTIVE_KEY, mode.id))
        return mode

    def reset_active_mode(self) -> Mode:
        logger.info("Resetting active mode to %s", DEFAULT_MODE_ID)
        self._store.update(lambda data: data.__setitem__(_ACTIVE_KEY, DEFAULT_MODE_ID))
        return self.get_mode(DEFAULT_MODE_ID)

    def create_custom_mode(
        self,
        name: str,
        prompt: str,
        icon: str | None = None,
        color: str | None = None,
    ) -> Mode:
        if not prompt or not prompt.strip():
            raise ValueError("Mode prompt must not be empty")

        mode = Mode(
            id=f"custom-{uuid.uuid4().hex[:12]}",
            name=name.strip() or "Custom",
            prompt=prompt,
            icon=icon or "",
            color=color or "",
            origin=ModeOrigin.CUSTOM,
            created_at=datetime.now(timezone.utc).isoformat(),
        )

        def add(data: dict[str, Any]) -> None:
            data.setdefault(_CUSTOM_KEY, []).append(mode.to_dict())

        self._store.update(add)
        logger.info("Created custom mode %s (%s)", mode.id, mode.name)
        return mode

    def update_custom_mode(self, mode_id: str, **patch: Any) -> bool:
        unknown = set(patch) - set(_PATCHABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update mode fields: {', '.join(sorted(unknown))}")
        if "prompt" in patch and not str(patch["prompt"] or "").strip():
            raise ValueError("Mode prompt must not be empty")

        updated = False

        def apply(data: dict[str, Any]) -> None:
            nonlocal updated
            for raw in data.get(_CUSTOM_KEY, []):
                if raw.get("id") == mode_id:
                    merged = replace(Mode.from_dict(raw), **patch)
                    raw.update(merged.to_dict())
                    updated = True
                    return

        self._store.update(apply)
        return updated

    def delete_custom_mode(self, mode_id: str) -> None:
        if any(mode.id == mode_id for mode in BUILTIN_MODES):
            raise ValueError(f"Built-in mode {mode_id!r} cannot be deleted")

        def remove(data: dict[str, Any]) -> None:
            data[_CUSTOM_KEY] = [
                raw for raw in data.get(_CUSTOM_KEY, []) if raw.get("id") != mode_id
            ]
            if data.get(_ACTIVE_KEY) == mode_id:
                data[_ACTIVE_KEY] = DEFAULT_MODE_ID

        self._store.update(remove)

    def cycle_mode(self) -> Mode:
        """Advance the active mode to the next one in list order, wrapping."""
        result: Mode | None = None

        def advance(data: dict[str, Any]) -> None:
            nonlocal result
            modes = list(BUILTIN_MODES) + self._custom_modes(data)
            ids = [mode.id for mode in modes]
            try:
                index = ids.index(data.get(_ACTIVE_KEY, DEFAULT_MODE_ID))
            except ValueError:
                index = -1
            result = modes[(index + 1) % len(modes)]
            data[_ACTIVE_KEY] = result.id

        self._store.update(advance)
        if result is None:
            raise RuntimeError("Mode cycle did not select a mode")
        logger.info("Active mode is now %s", result.id)
        return result

    @staticmethod
    def _custom_modes(data: dict[str, Any]) -> list[Mode]:
        modes = []
        for raw in data.get(_CUSTOM_KEY, []):
            try:
                modes.append(Mode.from_dict(raw))
            except (KeyError, TypeError) as e:
                logger.warning("Skipping malformed custom mode %r: %s", raw, e)
        return modes
