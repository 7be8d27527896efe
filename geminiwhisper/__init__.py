"""
Gemini Whisper - Push-to-Talk Voice Dictation

Records speech on a global hotkey, transcribes it with the Gemini API and
puts the text on the clipboard. The hotkey service lives in
``geminiwhisper.app.DictationApp``; it is not imported here because it pulls
in the audio and keyboard backends.
"""

__version__ = "1.0.0"

from geminiwhisper.config import Config

__all__ = ["Config", "__version__"]
