"""
Configuration loader for kcl.

This module provides configuration management with:
- Multiple configuration sources (files, env vars, CLI)
- Schema validation through pydantic
- Configuration merging by priority
- Defaults management
"""

import os
import json
from pathlib import Path
from typing import Optional, Dict, Any, List, Union, Literal

import yaml
import toml
from pydantic import BaseModel, Field, field_validator, ValidationError, ConfigDict

from .logging import get_logger
from .errors import ConfigurationError
from ..streaming.tokenizer import DEFAULT_MAX_TOKEN_SIZE, DEFAULT_READ_SIZE


logger = get_logger("kcl.config")

ENV_PREFIX = "KCL_"
CONFIG_PATH_ENV = "KCL_CONFIG"

CompressionName = Literal["none", "gzip", "snappy", "lz4", "zstd"]
COMPRESSION_CHOICES = ("none", "gzip", "snappy", "lz4", "zstd")


class ConfigSource(BaseModel):
    """Configuration source definition."""
    path: Optional[Path] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    priority: int = 0
    source_type: str = "dict"

    model_config = ConfigDict(arbitrary_types_allowed=True)


class ProducerConfig(BaseModel):
    """Delivery client (Kafka producer) configuration."""
    brokers: List[str] = Field(default_factory=lambda: ["localhost:9092"])
    client_id: str = "kcl"
    compression: CompressionName = "snappy"
    acks: Literal["all", "0", "1"] = "all"
    linger_ms: int = Field(default=0, ge=0)
    max_batch_size: int = Field(default=16384, gt=0)
    request_timeout_ms: int = Field(default=40000, gt=0)
    shutdown_timeout: float = Field(default=1.0, ge=0)

    @field_validator('brokers', mode='before')
    @classmethod
    def parse_brokers(cls, v):
        """Accept a comma separated broker list."""
        if isinstance(v, str):
            return [b.strip() for b in v.split(",") if b.strip()]
        return v

    @field_validator('brokers')
    @classmethod
    def validate_brokers(cls, v):
        if not v:
            raise ValueError("at least one broker is required")
        return v

    @field_validator('acks', mode='before')
    @classmethod
    def normalize_acks(cls, v):
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator('compression', mode='before')
    @classmethod
    def normalize_compression(cls, v):
        if v is None:
            return "none"
        if isinstance(v, str):
            return v.strip().lower()
        return v


class ProduceConfig(BaseModel):
    """Settings of one produce run."""
    delim: str = "\n"
    keyed_delim: Optional[str] = None
    max_read_buf: int = Field(default=DEFAULT_MAX_TOKEN_SIZE, gt=0)
    read_size: int = Field(default=DEFAULT_READ_SIZE, gt=0)
    verbose: bool = False

    @field_validator('keyed_delim')
    @classmethod
    def empty_keyed_delim_is_unset(cls, v):
        return v or None

    @property
    def keyed(self) -> bool:
        """Whether tokens are paired into key and value."""
        return self.keyed_delim is not None

    @property
    def active_delimiter(self) -> str:
        """The delimiter spec in effect; the keyed delimiter wins."""
        return self.keyed_delim if self.keyed_delim is not None else self.delim


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "ERROR"
    format: Literal["console", "json"] = "console"
    directory: Optional[Path] = None
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

    @field_validator('directory', mode='before')
    @classmethod
    def expand_directory(cls, v):
        if isinstance(v, str):
            return Path(v).expanduser() if v else None
        return v


class KclConfig(BaseModel):
    """Main kcl configuration."""
    producer: ProducerConfig = Field(default_factory=ProducerConfig)
    produce: ProduceConfig = Field(default_factory=ProduceConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(validate_assignment=True)


class ConfigLoader:
    """Configuration loader with multiple source support."""

    def __init__(self, environ: Optional[Dict[str, str]] = None):
        """
        Initialize configuration loader.

        Args:
            environ: Environment mapping (defaults to os.environ)
        """
        self._sources: List[ConfigSource] = []
        self._environ = os.environ if environ is None else environ
        self._config: Optional[KclConfig] = None

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
            priority: Source priority (higher wins)
            source_type: Source type (auto-detected if None)
        """
        if isinstance(source, (str, Path)):
            path = Path(source).expanduser()
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
        else:
            raise ConfigurationError(f"Unknown config file type: {suffix or path.name}")

    def load(self, overrides: Optional[Dict[str, Any]] = None) -> KclConfig:
        """
        Load configuration from all sources.

        Sources merge in increasing priority, then KCL_* environment
        variables, then ``overrides``.

        Returns:
            Merged configuration
        """
        merged: Dict[str, Any] = {}

        for source in self._sources:
            data = self._load_source(source)
            merged = self._deep_merge(merged, data)

        merged = self._deep_merge(merged, self._load_env_vars())
        if overrides:
            merged = self._deep_merge(merged, overrides)

        try:
            self._config = KclConfig(**merged)
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

        try:
            content = source.path.read_text()
            if source.source_type == "json":
                data = json.loads(content)
            elif source.source_type == "yaml":
                data = yaml.safe_load(content) or {}
            elif source.source_type == "toml":
                data = toml.loads(content)
            else:
                raise ConfigurationError(f"Unknown source type: {source.source_type}")
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(
                f"Unable to load config file {source.path}: {e}", cause=e
            ) from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {source.path} must contain a mapping")
        return data

    def _load_env_vars(self) -> Dict[str, Any]:
        """
        Load configuration from KCL_<SECTION>_<FIELD> environment variables.

        Values stay strings; pydantic coerces them to the field types.
        """
        result: Dict[str, Any] = {}
        sections = set(KclConfig.model_fields)

        for key, value in self._environ.items():
            if not key.startswith(ENV_PREFIX) or key == CONFIG_PATH_ENV:
                continue
            section, _, field_name = key[len(ENV_PREFIX):].lower().partition("_")
            if section not in sections or not field_name:
                continue
            result.setdefault(section, {})[field_name] = value

        return result

    def _deep_merge(self, base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in update.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def get_config(self) -> KclConfig:
        """Get current configuration."""
        if self._config is None:
            raise ConfigurationError("Configuration not loaded")
        return self._config


def default_config_paths() -> List[Path]:
    """Standard config file locations, lowest priority first."""
    return [
        Path.home() / ".kcl" / "config.toml",
        Path.home() / ".kcl" / "config.json",
        Path.home() / ".kcl" / "config.yaml",
        Path("./kcl.yaml"),
    ]


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None,
    environ: Optional[Dict[str, str]] = None,
    search_defaults: bool = True
) -> KclConfig:
    """
    Load configuration from standard locations.

    Args:
        config_path: Explicit configuration file (falls back to $KCL_CONFIG)
        overrides: Values from the command line
        environ: Environment mapping (defaults to os.environ)
        search_defaults: Whether to look in the standard locations

    Returns:
        Loaded configuration
    """
    loader = ConfigLoader(environ)
    env = loader._environ

    if search_defaults:
        for i, path in enumerate(default_config_paths()):
            if path.exists():
                loader.add_source(path, priority=10 + i)

    explicit = config_path or env.get(CONFIG_PATH_ENV)
    if explicit:
        path = Path(explicit).expanduser()
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")
        loader.add_source(path, priority=50)

    return loader.load(overrides)


__all__ = [
    'KclConfig',
    'ProducerConfig',
    'ProduceConfig',
    'LoggingConfig',
    'ConfigLoader',
    'COMPRESSION_CHOICES',
    'default_config_paths',
    'load_config',
]
