"""Delivery of transcripts: clipboard, simulated paste and notifications."""

from __future__ import annotations

import logging
import sys
import time
from abc import ABC, abstractmethod

import pyperclip
from plyer import notification

logger = logging.getLogger(__name__)

APP_NAME = "Gemini Whisper"
NOTIFICATION_TIMEOUT_S = 3


class OutputHandler(ABC):
    """Abstract base class for output handlers."""

    @abstractmethod
    def output(self, text: str) -> None:
        """Deliver the transcribed text."""
        ...


class ClipboardOutput(OutputHandler):
    """Outputs text to the system clipboard."""

    def output(self, text: str) -> None:
        """Copy text to clipboard."""
        pyperclip.copy(text)


class PasteSimulator:
    """Presses the platform paste shortcut in the focused window."""

    def __init__(self, delay_s: float = 0.05) -> None:
        from pynput.keyboard import Controller, Key

        self._controller = Controller()
        self._delay_s = delay_s
        self._modifier = Key.cmd if sys.platform == "darwin" else Key.ctrl

    def paste(self) -> None:
        # Give the clipboard owner a moment before the target reads it
        time.sleep(self._delay_s)
        try:
            with self._controller.pressed(self._modifier):
                self._controller.press("v")
                self._controller.release("v")
        except Exception as e:
            logger.error("Failed to simulate paste: %s", e)
            raise


class DesktopNotifier:
    """Shows a native toast notification."""

    def __init__(self, app_name: str = APP_NAME) -> None:
        self._app_name = app_name

    def notify(self, title: str, message: str) -> None:
        try:
            notification.notify(
                title=title,
                message=message,
                app_name=self._app_name,
                timeout=NOTIFICATION_TIMEOUT_S,
            )
        except Exception as e:
            # No notification backend on this desktop.
            logger.warning("Notification failed: %s", e)
