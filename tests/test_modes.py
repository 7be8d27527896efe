"""Tests for the mode registry."""

from __future__ import annotations

import pytest

from geminiwhisper.errors import ModeNotFoundError
from geminiwhisper.modes import (
    BUILTIN_MODES,
    DEFAULT_MODE_ID,
    NO_SPEECH_SENTINEL,
    Mode,
    ModeOrigin,
    ModeRegistry,
)
from geminiwhisper.settings import SettingsStore


class TestBuiltinModes:
    """Tests for the built-in mode table."""

    def test_normal_and_email_present(self) -> None:
        ids = [mode.id for mode in BUILTIN_MODES]
        assert ids == ["normal", "email"]
        assert all(mode.is_builtin for mode in BUILTIN_MODES)

    def test_prompts_request_sentinel(self) -> None:
        """Test every built-in prompt tells the model how to report silence."""
        for mode in BUILTIN_MODES:
            assert NO_SPEECH_SENTINEL in mode.prompt

    def test_from_dict_is_custom(self) -> None:
        mode = Mode.from_dict({"id": "custom-1", "name": "Notes", "prompt": "p"})
        assert mode.origin == ModeOrigin.CUSTOM
        assert mode.icon == ""


class TestModeRegistry:
    """Tests for ModeRegistry."""

    def test_default_active_mode(self, registry: ModeRegistry) -> None:
        assert registry.get_active_mode().id == DEFAULT_MODE_ID

    def test_get_unknown_mode_raises(self, registry: ModeRegistry) -> None:
        with pytest.raises(ModeNotFoundError) as exc_info:
            registry.get_mode("nope")
        assert exc_info.value.mode_id == "nope"

    def test_create_custom_mode(self, registry: ModeRegistry) -> None:
        """Test created modes are listed after the built-ins."""
        mode = registry.create_custom_mode("Notes", "Summarize as notes.", icon="📝")
        assert mode.id.startswith("custom-")
        assert mode.created_at is not None
        assert [m.id for m in registry.list_modes()] == ["normal", "email", mode.id]
        assert registry.get_mode(mode.id).icon == "📝"

    def test_create_custom_mode_ids_unique(self, registry: ModeRegistry) -> None:
        first = registry.create_custom_mode("A", "a")
        second = registry.create_custom_mode("A", "a")
        assert first.id != second.id

    def test_create_requires_prompt(self, registry: ModeRegistry) -> None:
        with pytest.raises(ValueError):
            registry.create_custom_mode("Empty", "   ")

    def test_update_custom_mode(self, registry: ModeRegistry) -> None:
        mode = registry.create_custom_mode("Notes", "p1")
        assert registry.update_custom_mode(mode.id, name="Memo", prompt="p2") is True
        updated = registry.get_mode(mode.id)
        assert updated.name == "Memo"
        assert updated.prompt == "p2"
        assert updated.created_at == mode.created_at

    def test_update_rejects_unknown_fields(self, registry: ModeRegistry) -> None:
        mode = registry.create_custom_mode("Notes", "p1")
        with pytest.raises(ValueError):
            registry.update_custom_mode(mode.id, origin="builtin")

    def test_update_missing_mode_returns_false(self, registry: ModeRegistry) -> None:
        assert registry.update_custom_mode("custom-missing", name="x") is False

    def test_set_active_mode(self, registry: ModeRegistry) -> None:
        registry.set_active_mode("email")
        assert registry.get_active_mode().id == "email"

    def test_set_active_unknown_mode(self, registry: ModeRegistry) -> None:
        with pytest.raises(ModeNotFoundError):
            registry.set_active_mode("missing")
        assert registry.get_active_mode().id == DEFAULT_MODE_ID

    def test_delete_builtin_rejected(self, registry: ModeRegistry) -> None:
        with pytest.raises(ValueError):
            registry.delete_custom_mode("normal")

    def test_delete_active_custom_mode_resets(self, registry: ModeRegistry) -> None:
        """Test deleting the active mode falls back to the default mode."""
        mode = registry.create_custom_mode("Notes", "p")
        registry.set_active_mode(mode.id)

        registry.delete_custom_mode(mode.id)

        assert registry.get_active_mode().id == DEFAULT_MODE_ID
        assert mode.id not in [m.id for m in registry.list_modes()]

    def test_cycle_wraps_around(self, registry: ModeRegistry) -> None:
        custom = registry.create_custom_mode("Notes", "p")
        assert registry.cycle_mode().id == "email"
        assert registry.cycle_mode().id == custom.id
        assert registry.cycle_mode().id == "normal"

    def test_cycle_from_dangling_id(self, registry: ModeRegistry, settings: SettingsStore) -> None:
        settings.update(lambda data: data.__setitem__("active_mode", "custom-gone"))
        assert registry.cycle_mode().id == "normal"

    def test_dangling_active_id_raises_until_reset(
        self, registry: ModeRegistry, settings: SettingsStore
    ) -> None:
        settings.update(lambda data: data.__setitem__("active_mode", "custom-gone"))
        with pytest.raises(ModeNotFoundError):
            registry.get_active_mode()
        assert registry.reset_active_mode().id == DEFAULT_MODE_ID
        assert registry.get_active_mode().id == DEFAULT_MODE_ID

    def test_malformed_custom_entry_skipped(
        self, registry: ModeRegistry, settings: SettingsStore
    ) -> None:
        settings.update(lambda data: data.__setitem__("custom_modes", [{"name": "no id"}]))
        assert [m.id for m in registry.list_modes()] == ["normal", "email"]
