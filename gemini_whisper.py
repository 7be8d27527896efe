#!/usr/bin/env python3
"""
Gemini Whisper - Push-to-Talk Voice Dictation

Records speech on a global hotkey and transcribes it with the Gemini API.

Usage:
    python gemini_whisper.py [command] [options]

Environment Variables:
    GEMINI_API_KEY                  API key (overridden by `set-key`)
    GEMINIWHISPER_AUDIO_DEVICE      Audio input device index
    GEMINIWHISPER_MODEL             Gemini model id, e.g. 'gemini-2.5-flash'
    GEMINIWHISPER_DATA_DIR          Settings and recordings directory
    GEMINIWHISPER_HOTKEY            Record/transcribe hotkey, e.g. '<alt>+<space>'
    GEMINIWHISPER_MODE_HOTKEY       Mode switch hotkey
    GEMINIWHISPER_AUTO_PASTE        Paste after copying: '1' or 'true'
    GEMINIWHISPER_VERBOSE           Enable verbose logging: '1' or 'true'
"""

from geminiwhisper.__main__ import main

if __name__ == "__main__":
    raise SystemExit(main())
