"""
Tests for the configuration system.
"""

import json
import pytest

from buildkernel.core.config import (
    ConfigManager,
    DictConfigSource,
    EnvConfigSource,
    FileConfigSource,
    KernelSettings,
    get_config_manager,
    get_kernel_settings,
    reset_config_manager,
)


def test_env_source(monkeypatch):
    """Test loading configuration from environment variables."""
    monkeypatch.setenv("BUILDKERNEL_LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("BUILDKERNEL_EVENT__MAX_HISTORY_SIZE", "500")
    monkeypatch.setenv("BUILDKERNEL_LOG_JSON", "yes")
    monkeypatch.setenv("BUILDKERNEL_ENABLED_MODULES", '{"portfolio": true}')
    monkeypatch.setenv("OTHER_SETTING", "ignored")

    config = EnvConfigSource().get_config()

    assert config["log_level"] == "DEBUG"
    assert config["event"] == {"max_history_size": 500}
    assert config["log_json"] is True
    assert config["enabled_modules"] == {"portfolio": True}
    assert "other_setting" not in config


def test_file_sources(tmp_path):
    """Test loading JSON, YAML and TOML files."""
    json_file = tmp_path / "kernel.json"
    json_file.write_text(json.dumps({"hook_default_priority": 20}))

    yaml_file = tmp_path / "kernel.yaml"
    yaml_file.write_text("event:\n  history_enabled: false\n")

    toml_file = tmp_path / "kernel.toml"
    toml_file.write_text("[enabled_modules]\ndebug = true\n")

    assert FileConfigSource(str(json_file)).get_config() == {"hook_default_priority": 20}
    assert FileConfigSource(str(yaml_file)).get_config() == {"event": {"history_enabled": False}}
    assert FileConfigSource(str(toml_file)).get_config() == {"enabled_modules": {"debug": True}}


def test_file_source_missing_or_invalid(tmp_path):
    """Test that unreadable files yield an empty configuration."""
    assert FileConfigSource(str(tmp_path / "missing.json")).get_config() == {}

    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    assert FileConfigSource(str(broken)).get_config() == {}

    unsupported = tmp_path / "kernel.ini"
    unsupported.write_text("[section]")
    assert FileConfigSource(str(unsupported)).get_config() == {}


def test_priority_merge():
    """Test that higher priority sources win and sections are merged."""
    manager = ConfigManager()
    manager.add_source(DictConfigSource({"log_level": "WARNING", "event": {"max_history_size": 10}}), priority=200)
    manager.add_source(DictConfigSource({"log_level": "DEBUG", "event": {"history_enabled": False}}), priority=50)

    config = manager.get_config()

    assert config["log_level"] == "WARNING"
    assert config["event"] == {"history_enabled": False, "max_history_size": 10}
    assert manager.get_config_section("event") == {"history_enabled": False, "max_history_size": 10}
    assert manager.get_config_section("event.max_history_size") == {}
    assert manager.get_config_section("missing") == {}


def test_typed_settings():
    """Test building kernel settings from flat and sectioned keys."""
    manager = ConfigManager()
    manager.add_source(DictConfigSource({
        "event": {"max_history_size": 25, "validate_payloads": False},
        "hook_default_priority": 30,
        "enabled_modules": {"portfolio": True, "debug": False},
    }))

    settings = manager.get_typed_config(KernelSettings)

    assert settings.event_max_history_size == 25
    assert settings.event_validate_payloads is False
    assert settings.event_history_enabled is True
    assert settings.hook_default_priority == 30
    assert settings.enabled_modules == {"portfolio": True, "debug": False}
    assert manager.get_typed_config(KernelSettings) is settings

    # Adding a source invalidates the cache
    manager.add_source(DictConfigSource({"hook_default_priority": 40}), priority=10)
    assert manager.get_typed_config(KernelSettings).hook_default_priority == 40


def test_default_settings():
    """Test the default kernel settings."""
    settings = KernelSettings()

    assert settings.event_history_enabled is True
    assert settings.event_max_history_size is None
    assert settings.hook_default_priority == 100
    assert settings.error_max_errors_per_module == 100
    assert settings.enabled_modules == {}
    assert settings.log_level == "INFO"


def test_global_config_manager(monkeypatch, tmp_path):
    """Test the global configuration manager with environment overrides."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("BUILDKERNEL_HOOK__DEFAULT_PRIORITY", "60")

    manager = get_config_manager()
    assert get_config_manager() is manager
    assert get_kernel_settings().hook_default_priority == 60

    reset_config_manager()
    assert get_config_manager() is not manager
