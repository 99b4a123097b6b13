"""Environment detection and configuration file lookup."""

import os
from enum import Enum
from pathlib import Path


class Environment(Enum):
    """Supported deployment environments."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


def get_environment() -> Environment:
    """Detect current environment.

    Environment is detected in the following order:
    1. BIGBOAT_ENVIRONMENT environment variable
    2. Presence of specific files (.env.production, etc.)
    3. Default to development

    Returns:
        Detected environment
    """
    env_str = os.getenv("BIGBOAT_ENVIRONMENT", "").lower()
    if env_str in {"prod", "production"}:
        return Environment.PRODUCTION
    elif env_str in {"stage", "staging"}:
        return Environment.STAGING
    elif env_str in {"test", "testing"}:
        return Environment.TESTING
    elif env_str in {"dev", "development"}:
        return Environment.DEVELOPMENT

    cwd = Path.cwd()
    if (cwd / ".env.production").exists():
        return Environment.PRODUCTION
    elif (cwd / ".env.staging").exists():
        return Environment.STAGING
    elif (cwd / ".env.testing").exists():
        return Environment.TESTING

    return Environment.DEVELOPMENT


def get_config_file_path(environment: Environment | None = None) -> Path | None:
    """Get the configuration file path for the given environment.

    Args:
        environment: Environment to get config for (defaults to current)

    Returns:
        Path to configuration file, or None if not found
    """
    if environment is None:
        environment = get_environment()

    config_paths = [
        Path(f"config/{environment.value}.yaml"),
        Path(f"config/{environment.value}.yml"),
        Path(f"bigboat.{environment.value}.yaml"),
        Path(f"bigboat.{environment.value}.yml"),
        Path("config/bigboat.yaml"),
        Path("bigboat.yaml"),
        Path("bigboat.yml"),
    ]

    for path in config_paths:
        if path.exists():
            return path

    return None
