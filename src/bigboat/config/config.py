"""Core configuration management for bigboat.

This module provides the configuration sections of the control plane and
loads them from YAML files and ``BIGBOAT_*`` environment variables.
"""

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError

from bigboat.catalog import DEFAULT_APPSTORE_URL


ENV_VARS = (
    "BIGBOAT_ENVIRONMENT",
    "BIGBOAT_DEBUG",
    "BIGBOAT_LOG_LEVEL",
    "BIGBOAT_METRICS_ENABLED",
    "BIGBOAT_METRICS_PORT",
    "BIGBOAT_OTLP_ENDPOINT",
    "BIGBOAT_DATABASE_URL",
    "BIGBOAT_AGENT_URL",
    "BIGBOAT_AGENT_TIMEOUT",
    "BIGBOAT_APPSTORE_URL",
    "BIGBOAT_BUS_MAX_PENDING",
    "BIGBOAT_WEB_HOST",
    "BIGBOAT_WEB_PORT",
)


class ConfigError(Exception):
    """Configuration-related errors."""

    pass


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    enable_redaction: bool = True


class MetricsConfig(BaseModel):
    """Metrics and tracing configuration."""

    enabled: bool = True
    port: int = 9100
    enable_tracing: bool = False
    otlp_endpoint: str | None = None


class DatabaseConfig(BaseModel):
    """Record store configuration.

    ``memory://`` keeps records in process; ``sqlite:///<path>`` persists them.
    """

    url: str = "sqlite:///bigboat.db"


class AgentConfig(BaseModel):
    """Agent command channel configuration.

    Without a URL commands are kept in memory and never leave the process.
    """

    url: str | None = None
    timeout_seconds: float = 10.0


class AppStoreConfig(BaseModel):
    """Remote app store configuration."""

    url: str = DEFAULT_APPSTORE_URL
    timeout_seconds: float = 10.0


class BusConfig(BaseModel):
    """Notification bus configuration."""

    max_pending: int = 8


class WebConfig(BaseModel):
    """HTTP transport configuration."""

    host: str = "127.0.0.1"
    port: int = 8080
    allowed_origins: list[str] = Field(default_factory=lambda: ["*"])


class Config(BaseModel):
    """Main configuration class for bigboat.

    This class combines all configuration sections and provides
    validation and environment variable loading.
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    appstore: AppStoreConfig = Field(default_factory=AppStoreConfig)
    bus: BusConfig = Field(default_factory=BusConfig)
    web: WebConfig = Field(default_factory=WebConfig)

    environment: Literal["development", "staging", "production", "testing"] = (
        "development"
    )
    debug: bool = False


def _read_file(config_path: Path) -> dict[str, Any]:
    try:
        with open(config_path) as f:
            config_data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Configuration file not found: {config_path}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in configuration file: {e}") from e

    if config_data is None:
        return {}
    if not isinstance(config_data, dict):
        raise ConfigError(f"Configuration file must contain a mapping: {config_path}")
    return config_data


def _env_number(name: str, kind: type[int] | type[float]) -> int | float | None:
    env_val = os.getenv(name)
    if not env_val:
        return None
    try:
        return kind(env_val)
    except ValueError as e:
        raise ConfigError(f"Invalid {name}: {env_val}") from e


def _env_flag(name: str) -> bool | None:
    env_val = os.getenv(name)
    if not env_val:
        return None
    return env_val.lower() in ("true", "1", "yes", "on")


def _read_env() -> dict[str, Any]:
    """Collect configuration values from environment variables.

    Environment variables are mapped as follows:
    - BIGBOAT_ENVIRONMENT: Environment name
    - BIGBOAT_DEBUG: Enable debug mode (true/false)
    - BIGBOAT_LOG_LEVEL: Logging level
    - BIGBOAT_METRICS_ENABLED / BIGBOAT_METRICS_PORT: Prometheus exporter
    - BIGBOAT_OTLP_ENDPOINT: OpenTelemetry collector, enables tracing
    - BIGBOAT_DATABASE_URL: Record store URL
    - BIGBOAT_AGENT_URL / BIGBOAT_AGENT_TIMEOUT: Agent command endpoint
    - BIGBOAT_APPSTORE_URL: App store manifest URL
    - BIGBOAT_BUS_MAX_PENDING: Snapshots queued per subscriber
    - BIGBOAT_WEB_HOST / BIGBOAT_WEB_PORT: HTTP transport bind address
    """
    sections: dict[str, dict[str, Any]] = {
        "logging": {},
        "metrics": {},
        "database": {},
        "agent": {},
        "appstore": {},
        "bus": {},
        "web": {},
    }
    config_data: dict[str, Any] = {}

    if env_val := os.getenv("BIGBOAT_ENVIRONMENT"):
        config_data["environment"] = env_val.lower()
    if (flag := _env_flag("BIGBOAT_DEBUG")) is not None:
        config_data["debug"] = flag

    if env_val := os.getenv("BIGBOAT_LOG_LEVEL"):
        sections["logging"]["level"] = env_val.upper()

    if (flag := _env_flag("BIGBOAT_METRICS_ENABLED")) is not None:
        sections["metrics"]["enabled"] = flag
    if (port := _env_number("BIGBOAT_METRICS_PORT", int)) is not None:
        sections["metrics"]["port"] = port
    if env_val := os.getenv("BIGBOAT_OTLP_ENDPOINT"):
        sections["metrics"]["otlp_endpoint"] = env_val
        sections["metrics"]["enable_tracing"] = True

    if env_val := os.getenv("BIGBOAT_DATABASE_URL"):
        sections["database"]["url"] = env_val

    if env_val := os.getenv("BIGBOAT_AGENT_URL"):
        sections["agent"]["url"] = env_val
    if (timeout := _env_number("BIGBOAT_AGENT_TIMEOUT", float)) is not None:
        sections["agent"]["timeout_seconds"] = timeout

    if env_val := os.getenv("BIGBOAT_APPSTORE_URL"):
        sections["appstore"]["url"] = env_val

    if (pending := _env_number("BIGBOAT_BUS_MAX_PENDING", int)) is not None:
        sections["bus"]["max_pending"] = pending

    if env_val := os.getenv("BIGBOAT_WEB_HOST"):
        sections["web"]["host"] = env_val
    if (port := _env_number("BIGBOAT_WEB_PORT", int)) is not None:
        sections["web"]["port"] = port

    config_data.update({name: values for name, values in sections.items() if values})
    return config_data


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _build(config_data: dict[str, Any], source: str) -> Config:
    try:
        return Config(**config_data)
    except ValidationError as e:
        raise ConfigError(f"{source} configuration validation failed: {e}") from e


def load_config_from_file(config_path: Path) -> Config:
    """Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        Loaded configuration

    Raises:
        ConfigError: If configuration is invalid or file cannot be read
    """
    return _build(_read_file(config_path), "File")


def load_config_from_env() -> Config:
    """Load configuration from ``BIGBOAT_*`` environment variables.

    Raises:
        ConfigError: If a variable holds an invalid value
    """
    return _build(_read_env(), "Environment")


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from file and environment variables.

    Configuration is loaded in the following order (later sources override earlier):
    1. Default values
    2. Configuration file (if provided)
    3. Environment variables

    Args:
        config_path: Optional path to configuration file

    Returns:
        Merged configuration
    """
    config_data: dict[str, Any] = {}
    if config_path and config_path.exists():
        config_data = _read_file(config_path)

    return _build(_merge(config_data, _read_env()), "Merged")


def validate_config(config: Config) -> None:
    """Validate configuration for consistency and correctness.

    Args:
        config: Configuration to validate

    Raises:
        ConfigError: If configuration is invalid
    """
    for name, port in (("metrics.port", config.metrics.port), ("web.port", config.web.port)):
        if port <= 0 or port > 65535:
            raise ConfigError(f"{name} must be between 1 and 65535")

    if config.metrics.enabled and config.metrics.port == config.web.port:
        raise ConfigError("metrics.port and web.port must differ")

    if config.bus.max_pending < 1:
        raise ConfigError("bus.max_pending must be at least 1")

    if config.agent.timeout_seconds <= 0:
        raise ConfigError("agent.timeout_seconds must be positive")

    if config.appstore.timeout_seconds <= 0:
        raise ConfigError("appstore.timeout_seconds must be positive")

    if not config.database.url.startswith(("memory://", "sqlite:///")):
        raise ConfigError(
            f"Unsupported database.url: {config.database.url}. "
            "Must start with memory:// or sqlite:///"
        )

    if config.agent.url and not config.agent.url.startswith(("http://", "https://")):
        raise ConfigError("agent.url must be an http(s) URL")

    # Environment-specific validations
    if config.environment == "production":
        if config.debug:
            raise ConfigError("Debug mode should not be enabled in production")

        if config.logging.level == "DEBUG":
            raise ConfigError("DEBUG logging should not be used in production")

        if not config.logging.enable_redaction:
            raise ConfigError("Log redaction should be enabled in production")

        if config.database.url.startswith("memory://"):
            raise ConfigError("An in-memory record store cannot be used in production")
