"""Configuration management for bigboat.

This module provides configuration loading and validation for the
dashboard control plane.
"""

from .config import (
    ENV_VARS,
    AgentConfig,
    AppStoreConfig,
    BusConfig,
    Config,
    ConfigError,
    DatabaseConfig,
    LoggingConfig,
    MetricsConfig,
    WebConfig,
    load_config,
    load_config_from_env,
    load_config_from_file,
    validate_config,
)
from .deployment import HealthChecker, HealthCheckConfig, HealthStatus
from .environment import Environment, get_config_file_path, get_environment

__all__ = [
    "ENV_VARS",
    "AgentConfig",
    "AppStoreConfig",
    "BusConfig",
    "Config",
    "ConfigError",
    "DatabaseConfig",
    "Environment",
    "HealthCheckConfig",
    "HealthChecker",
    "HealthStatus",
    "LoggingConfig",
    "MetricsConfig",
    "WebConfig",
    "get_config_file_path",
    "get_environment",
    "load_config",
    "load_config_from_env",
    "load_config_from_file",
    "validate_config",
]
