"""Тесты групп настроек и базового класса."""

from __future__ import annotations

import pytest

from podscope.settings.exceptions import SettingsNotFoundError, SettingsValidationError
from podscope.settings.groups import ComposeSettings, LoggingSettings, RuntimeSettings, StatsSettings


def test_runtime_settings_defaults_and_set() -> None:
    settings = RuntimeSettings()
    assert settings.get("preferred") == "auto"
    settings.set("preferred", "socket")
    assert settings.get("preferred") == "socket"


def test_runtime_settings_invalid_choice_raises() -> None:
    settings = RuntimeSettings()
    with pytest.raises(SettingsValidationError):
        settings.set("preferred", "kubernetes")


def test_stats_settings_ranges() -> None:
    settings = StatsSettings()
    settings.set("poll_interval_ms", 500)
    with pytest.raises(SettingsValidationError):
        settings.set("poll_interval_ms", 10)
    with pytest.raises(SettingsValidationError):
        settings.set("max_duration_sec", True)


def test_compose_templates_must_keep_command_field() -> None:
    settings = ComposeSettings()
    settings.set("list_services", "{{ .DockerCompose }} config --services --no-interpolate")
    with pytest.raises(SettingsValidationError):
        settings.set("list_services", "docker compose config --services")


def test_logging_settings_ranges() -> None:
    settings = LoggingSettings()
    settings.set("max_file_size_mb", 100)
    with pytest.raises(SettingsValidationError):
        settings.set("max_archived_files", 0)


def test_from_dict_skips_unknown_keys_and_reset() -> None:
    settings = StatsSettings()
    settings.from_dict({"enabled": False, "legacy_key": 1})
    assert settings.get("enabled") is False
    settings.reset_to_defaults()
    assert settings.get("enabled") is True


def test_unknown_key_raises_not_found() -> None:
    settings = RuntimeSettings()
    with pytest.raises(SettingsNotFoundError):
        settings.get("unknown")
