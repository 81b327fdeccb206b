"""
Configuration system for the buildkernel.

This module provides a layered configuration system that supports:
- Loading configuration from environment variables
- Loading configuration from files (JSON, YAML, TOML)
- Loading configuration from code
- Hierarchical configuration with overrides
- Typed kernel settings validated with Pydantic
"""

from typing import Dict, Any, Optional, List, Tuple, Type, TypeVar
import os
import json
import logging
from pathlib import Path
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

T = TypeVar('T', bound=BaseModel)


class KernelSettings(BaseModel):
    """Typed settings of the buildkernel."""

    event_history_enabled: bool = True
    event_max_history_size: Optional[int] = None
    event_validate_payloads: bool = True
    hook_default_priority: int = 100
    error_max_errors_per_module: int = 100
    enabled_modules: Dict[str, bool] = Field(default_factory=dict)
    log_level: str = "INFO"
    log_json: bool = False


class ConfigSource:
    """Base class for configuration sources."""

    def get_config(self) -> Dict[str, Any]:
        """Get the configuration from this source.

        Returns:
            The configuration as a dictionary
        """
        return {}


class EnvConfigSource(ConfigSource):
    """Configuration source that loads from environment variables."""

    def __init__(self, prefix: str = "BUILDKERNEL_", separator: str = "__"):
        """Initialize the environment configuration source.

        Args:
            prefix: The prefix for environment variables
            separator: The separator for nested keys
        """
        self.prefix = prefix
        self.separator = separator

    def get_config(self) -> Dict[str, Any]:
        """Get the configuration from environment variables.

        Keys are lower-cased, so BUILDKERNEL_EVENT__MAX_HISTORY_SIZE becomes
        {"event": {"max_history_size": ...}}.

        Returns:
            The configuration as a dictionary
        """
        config = {}

        for key, value in os.environ.items():
            if not key.startswith(self.prefix):
                continue

            parts = key[len(self.prefix):].lower().split(self.separator)

            # Build the nested dictionary
            current = config
            for part in parts[:-1]:
                if not isinstance(current.get(part), dict):
                    current[part] = {}
                current = current[part]

            current[parts[-1]] = self._parse_value(value)

        return config

    def _parse_value(self, value: str) -> Any:
        """Parse a string value into a Python object.

        Args:
            value: The string value

        Returns:
            The parsed value
        """
        # Try to parse as JSON
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            pass

        if value.lower() in ("true", "yes", "on"):
            return True
        if value.lower() in ("false", "no", "off"):
            return False

        return value


class FileConfigSource(ConfigSource):
    """Configuration source that loads from a file."""

    def __init__(self, file_path: str):
        """Initialize the file configuration source.

        Args:
            file_path: The path to the configuration file
        """
        self.file_path = file_path

    def get_config(self) -> Dict[str, Any]:
        """Get the configuration from the file.

        Returns:
            The configuration as a dictionary
        """
        path = Path(self.file_path)

        if not path.exists():
            logger.debug(f"Configuration file '{self.file_path}' does not exist")
            return {}

        try:
            if path.suffix.lower() == ".json":
                return self._load_json(path)
            elif path.suffix.lower() in (".yaml", ".yml"):
                return self._load_yaml(path)
            elif path.suffix.lower() == ".toml":
                return self._load_toml(path)
            else:
                logger.warning(f"Unsupported configuration file format: {path.suffix}")
                return {}

        except Exception as e:
            logger.error(f"Error loading configuration file '{self.file_path}': {str(e)}")
            return {}

    def _load_json(self, path: Path) -> Dict[str, Any]:
        with open(path, "r") as f:
            return json.load(f)

    def _load_yaml(self, path: Path) -> Dict[str, Any]:
        import yaml
        with open(path, "r") as f:
            return yaml.safe_load(f) or {}

    def _load_toml(self, path: Path) -> Dict[str, Any]:
        import tomli
        with open(path, "rb") as f:
            return tomli.load(f)


class DictConfigSource(ConfigSource):
    """Configuration source that loads from a dictionary."""

    def __init__(self, config: Dict[str, Any]):
        """Initialize the dictionary configuration source.

        Args:
            config: The configuration dictionary
        """
        self.config = config

    def get_config(self) -> Dict[str, Any]:
        return self.config


class ConfigManager:
    """Manager for configuration in the buildkernel."""

    def __init__(self):
        """Initialize the configuration manager."""
        self.sources: List[Tuple[int, ConfigSource]] = []
        self.config_cache: Dict[str, Any] = {}
        self.model_cache: Dict[Type[BaseModel], BaseModel] = {}

    def add_source(self, source: ConfigSource, priority: int = 0) -> None:
        """Add a configuration source.

        Args:
            source: The configuration source
            priority: The priority of the source (higher priority sources override lower priority sources)
        """
        self.sources.append((priority, source))
        self.sources.sort(key=lambda x: x[0])

        self.invalidate()

    def invalidate(self) -> None:
        """Drop cached configuration so the sources are read again."""
        self.config_cache = {}
        self.model_cache = {}

    def get_config(self) -> Dict[str, Any]:
        """Get the merged configuration from all sources.

        Sources are merged from lowest to highest priority, so higher
        priority sources win.

        Returns:
            The merged configuration as a dictionary
        """
        if not self.config_cache:
            config = {}
            for _, source in self.sources:
                self._merge_config(config, source.get_config())

            self.config_cache = config

        return self.config_cache

    def get_config_section(self, section: str) -> Dict[str, Any]:
        """Get a section of the configuration.

        Args:
            section: The section name, with dots separating nested sections

        Returns:
            The section as a dictionary
        """
        current = self.get_config()
        for part in section.split("."):
            if not isinstance(current, dict) or part not in current:
                return {}
            current = current[part]

        return current if isinstance(current, dict) else {}

    def get_typed_config(self, model_type: Type[T]) -> T:
        """Get a typed configuration.

        Each field is looked up either as a top-level key or inside a section
        named after its prefix, so "event_max_history_size" can be given as
        {"event": {"max_history_size": 10}}.

        Args:
            model_type: The Pydantic model type

        Returns:
            An instance of the model with the configuration values
        """
        if model_type in self.model_cache:
            return self.model_cache[model_type]

        config = self.get_config()

        model_dict = {}
        for field_name in model_type.model_fields:
            field_value = self._get_field_value(config, field_name)
            if field_value is not None:
                model_dict[field_name] = field_value

        model_instance = model_type(**model_dict)
        self.model_cache[model_type] = model_instance

        return model_instance

    def _merge_config(self, target: Dict[str, Any], source: Dict[str, Any]) -> None:
        for key, value in source.items():
            if isinstance(value, dict):
                # Copy sections so merging never mutates a source's dictionaries
                if not isinstance(target.get(key), dict):
                    target[key] = {}
                self._merge_config(target[key], value)
            else:
                target[key] = value

    def _get_field_value(self, config: Dict[str, Any], field_name: str) -> Any:
        """Get a field value from the configuration.

        Args:
            config: The configuration dictionary
            field_name: The field name

        Returns:
            The field value, or None if not found
        """
        if field_name in config:
            return config[field_name]

        # Check if the field is in a section
        parts = field_name.split("_")
        for i in range(len(parts) - 1):
            section = "_".join(parts[:i + 1])
            current = config.get(section)
            if isinstance(current, dict):
                remaining = "_".join(parts[i + 1:])
                if remaining in current:
                    return current[remaining]

        return None


def create_default_config_manager() -> ConfigManager:
    """Create a configuration manager with the default sources."""
    manager = ConfigManager()
    manager.add_source(EnvConfigSource(), priority=100)  # Environment variables have highest priority
    manager.add_source(FileConfigSource("buildkernel.json"), priority=50)
    manager.add_source(FileConfigSource("buildkernel.yaml"), priority=50)
    manager.add_source(FileConfigSource("buildkernel.toml"), priority=50)
    return manager


# Global configuration manager, created on first use
_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get the global configuration manager.

    Returns:
        The global configuration manager
    """
    global _config_manager
    if _config_manager is None:
        _config_manager = create_default_config_manager()
    return _config_manager


def reset_config_manager() -> None:
    """Discard the global configuration manager."""
    global _config_manager
    _config_manager = None


def get_config() -> Dict[str, Any]:
    """Get the merged configuration from all sources."""
    return get_config_manager().get_config()


def get_config_section(section: str) -> Dict[str, Any]:
    """Get a section of the configuration."""
    return get_config_manager().get_config_section(section)


def get_typed_config(model_type: Type[T]) -> T:
    """Get a typed configuration."""
    return get_config_manager().get_typed_config(model_type)


def get_kernel_settings() -> KernelSettings:
    """Get the kernel settings from the global configuration manager."""
    return get_typed_config(KernelSettings)
