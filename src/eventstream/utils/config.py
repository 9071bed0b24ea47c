"""
Configuration loader for the event stream client.

This module provides configuration management with:
- Multiple configuration sources (dicts, files, env vars)
- Schema validation
- Type coercion
- Configuration merging
"""

import os
import json
import yaml
import toml
from pathlib import Path
from typing import Optional, Dict, Any, List, Union
from pydantic import BaseModel, Field, field_validator, ValidationError, ConfigDict

from .logging import get_logger
from .errors import ConfigurationError


logger = get_logger("eventstream.config")

# The server sends a keep-alive at least this often on an open stream.
KEEPALIVE_INTERVAL = 12.0

ENV_PREFIX = "EVENTSTREAM_"

# Sources above this priority are applied after environment variables.
ENV_PRIORITY = 50


class ConfigSource(BaseModel):
    """Configuration source definition."""
    path: Optional[Path] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    priority: int = 0
    source_type: str = "dict"

    model_config = ConfigDict(arbitrary_types_allowed=True)


class StreamConfig(BaseModel):
    """Subscription target and connection timing."""
    uri: Optional[str] = None
    token: Optional[str] = Field(default=None, repr=False)
    reconnect_delay: float = 2.0  # seconds
    idle_timeout: float = 13.0  # seconds
    max_buffer_size: int = 1024 * 1024  # 1MB

    @field_validator('uri', 'token', mode='before')
    @classmethod
    def coerce_str(cls, v):
        """YAML and TOML load unquoted numeric tokens as numbers."""
        return v if v is None else str(v)

    @field_validator('reconnect_delay')
    @classmethod
    def validate_reconnect_delay(cls, v):
        if v < 0:
            raise ValueError("reconnect_delay must not be negative")
        return v

    @field_validator('idle_timeout')
    @classmethod
    def validate_idle_timeout(cls, v):
        """A stream is only dead after missing a keep-alive."""
        if v <= KEEPALIVE_INTERVAL:
            raise ValueError(
                f"idle_timeout must exceed the {KEEPALIVE_INTERVAL:g}s keep-alive interval"
            )
        return v

    @field_validator('max_buffer_size')
    @classmethod
    def validate_max_buffer_size(cls, v):
        if v <= 0:
            raise ValueError("max_buffer_size must be positive")
        return v

    @field_validator('uri')
    @classmethod
    def validate_uri(cls, v):
        if v is not None and not v.startswith(("http://", "https://")):
            raise ValueError(f"Unsupported stream uri: {v}")
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    json_format: bool = False
    directory: Optional[Path] = None
    max_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5
    enable_sentry: bool = False
    sentry_dsn: Optional[str] = None

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()


class EventStreamConfig(BaseModel):
    """Main client configuration."""
    app_name: str = "eventstream"
    stream: StreamConfig = Field(default_factory=StreamConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        validate_assignment=True
    )


class ConfigLoader:
    """Configuration loader with multiple source support."""

    def __init__(self, env_prefix: str = ENV_PREFIX):
        self._sources: List[ConfigSource] = []
        self._config: Optional[EventStreamConfig] = None
        self._env_prefix = env_prefix

    def add_source(
        self,
        source: Union[str, Path, Dict[str, Any]],
        priority: int = 0,
        source_type: Optional[str] = None
    ) -> None:
        """
        Add configuration source.

        Args:
            source: Configuration source (file path or dict)
            priority: Source priority (higher wins). Sources above
                ENV_PRIORITY also win over environment variables.
            source_type: Source type (auto-detected if None)
        """
        if isinstance(source, (str, Path)):
            path = Path(source)
            if not source_type:
                source_type = self._detect_source_type(path)

            self._sources.append(ConfigSource(
                path=path,
                priority=priority,
                source_type=source_type
            ))
        else:
            self._sources.append(ConfigSource(
                data=source,
                priority=priority,
                source_type="dict"
            ))

        self._sources.sort(key=lambda s: s.priority)

    def _detect_source_type(self, path: Path) -> str:
        """Detect configuration file type."""
        suffix = path.suffix.lower()
        if suffix == ".json":
            return "json"
        elif suffix in (".yaml", ".yml"):
            return "yaml"
        elif suffix == ".toml":
            return "toml"
        elif suffix == ".env" or path.name == ".env":
            return "env"
        else:
            raise ConfigurationError(f"Unknown config file type: {suffix}")

    def load(self) -> EventStreamConfig:
        """
        Load configuration from all sources.

        Sources are merged lowest priority first. Environment variables
        are applied after every source up to ENV_PRIORITY. Values from
        .env files and the environment stay strings until validation.

        Returns:
            Merged configuration
        """
        merged_data: Dict[str, Any] = {}

        env_applied = False
        for source in self._sources:
            if not env_applied and source.priority > ENV_PRIORITY:
                merged_data = self._deep_merge(merged_data, self._load_env_vars())
                env_applied = True

            try:
                data = self._load_source(source)
            except (OSError, ValueError, yaml.YAMLError) as e:
                raise ConfigurationError(
                    f"Failed to load config source {source.path or 'dict'}: {e}",
                    cause=e
                ) from e
            merged_data = self._deep_merge(merged_data, data)

        if not env_applied:
            merged_data = self._deep_merge(merged_data, self._load_env_vars())

        try:
            self._config = EventStreamConfig(**merged_data)
        except ValidationError as e:
            errors = []
            for error in e.errors():
                field = ".".join(str(x) for x in error["loc"])
                errors.append(f"{field}: {error['msg']}")

            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}"
            ) from e

        logger.debug("configuration_loaded", sources=len(self._sources))
        return self._config

    def _load_source(self, source: ConfigSource) -> Dict[str, Any]:
        """Load data from a configuration source."""
        if source.path is None:
            return source.data

        if not source.path.exists():
            logger.warning("config_file_not_found", path=str(source.path))
            return {}

        content = source.path.read_text()

        if source.source_type == "json":
            return json.loads(content)
        elif source.source_type == "yaml":
            return yaml.safe_load(content) or {}
        elif source.source_type == "toml":
            return toml.loads(content)
        elif source.source_type == "env":
            return self._parse_env_file(content)
        else:
            raise ConfigurationError(f"Unknown source type: {source.source_type}")

    def _parse_env_file(self, content: str) -> Dict[str, Any]:
        """Parse .env file format."""
        result: Dict[str, Any] = {}

        for line in content.splitlines():
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue

            key, value = line.split("=", 1)
            key = key.strip()
            if key.startswith(self._env_prefix):
                key = key[len(self._env_prefix):]
            value = value.strip().strip('"').strip("'")
            self._set_nested(result, key, value)

        return result

    def _load_env_vars(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        result: Dict[str, Any] = {}

        for key, value in os.environ.items():
            if key.startswith(self._env_prefix):
                self._set_nested(result, key[len(self._env_prefix):], value)

        return result

    @staticmethod
    def _set_nested(target: Dict[str, Any], key: str, value: Any) -> None:
        """Store EVENTSTREAM_STREAM__IDLE_TIMEOUT style keys as nested dicts."""
        parts = key.lower().split("__")
        current = target

        for part in parts[:-1]:
            current = current.setdefault(part, {})

        current[parts[-1]] = value

    def _deep_merge(self, base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in update.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def get_config(self) -> EventStreamConfig:
        """Get current configuration."""
        if self._config is None:
            raise ConfigurationError("Configuration not loaded")
        return self._config


def load_config(
    config_paths: Optional[List[Union[str, Path]]] = None,
    extra_config: Optional[Dict[str, Any]] = None
) -> EventStreamConfig:
    """
    Load configuration from standard locations.

    Args:
        config_paths: Additional configuration paths
        extra_config: Overrides that win over files and environment variables

    Returns:
        Loaded configuration
    """
    loader = ConfigLoader()

    default_paths = [
        Path.home() / ".eventstream" / "config.yaml",
        Path("./eventstream.yaml"),
        Path("./eventstream.toml"),
    ]

    for path in default_paths:
        if path.exists():
            loader.add_source(path, priority=10)

    if config_paths:
        for i, path in enumerate(config_paths):
            loader.add_source(path, priority=20 + i)

    if extra_config:
        loader.add_source(extra_config, priority=100)

    return loader.load()


__all__ = [
    'EventStreamConfig',
    'StreamConfig',
    'LoggingConfig',
    'ConfigLoader',
    'load_config',
    'KEEPALIVE_INTERVAL',
    'ENV_PRIORITY',
]
