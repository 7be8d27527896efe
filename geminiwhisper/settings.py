"""Persistent per-user settings stored as a JSON document."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Callable

from geminiwhisper.config import Config

logger = logging.getLogger(__name__)


class SettingsStore:
    """
    JSON-backed settings with config fallbacks.

    Values explicitly saved by the user win over the environment-derived
    ``Config``; keys that were never saved fall back to it. All mutations go
    through :meth:`update`, which performs a locked read-modify-write and
    replaces the file atomically.
    """

    def __init__(self, path: Path, defaults: Config | None = None) -> None:
        self._path = path
        self._defaults = defaults or Config()
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    def get_active_api_key(self) -> str:
        value = self.read_all().get("api_key")
        if value:
            return str(value)
        return self._defaults.gemini.api_key

    def set_api_key(self, key: str) -> None:
        self.update(lambda data: data.__setitem__("api_key", key.strip()))

    def get_active_model_id(self) -> str:
        value = self.read_all().get("model")
        if value:
            return str(value)
        return self._defaults.gemini.model

    def set_model_id(self, model: str) -> None:
        self.update(lambda data: data.__setitem__("model", model.strip()))

    def get_auto_paste_enabled(self) -> bool:
        return bool(self.read_all().get("auto_paste", self._defaults.auto_paste))

    def set_auto_paste_enabled(self, enabled: bool) -> None:
        self.update(lambda data: data.__setitem__("auto_paste", bool(enabled)))

    def get_show_notifications(self) -> bool:
        return bool(
            self.read_all().get("show_notifications", self._defaults.show_notifications)
        )

    def set_show_notifications(self, enabled: bool) -> None:
        self.update(lambda data: data.__setitem__("show_notifications", bool(enabled)))

    def read_all(self) -> dict[str, Any]:
        with self._lock:
            if not self._path.exists():
                return {}
            try:
                data = json.loads(self._path.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, OSError) as e:
                logger.warning("Could not read settings from %s: %s", self._path, e)
                return {}
            return data if isinstance(data, dict) else {}

    def update(self, mutate: Callable[[dict[str, Any]], None]) -> dict[str, Any]:
        """Apply ``mutate`` to the stored document and persist it in one write."""
        with self._lock:
            data = self.read_all()
            mutate(data)
            self._write_all(data)
            return data

    def _write_all(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=self._path.parent, prefix=".settings_", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self._path)
        except OSError:
            try:
                os.remove(tmp_path)
            except OSError:
                pass
            raise
