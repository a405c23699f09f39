"""Config Loader - Loads server profiles from a YAML file.

Handles loading YAML config files with environment variable substitution
and picking the server profile a command should talk to.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml

from artifactory_cli.models import RuntimeConfig, ServerConfig


class ConfigError(Exception):
    """Raised when configuration loading fails."""


_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def load_runtime_config(config_path: Path) -> RuntimeConfig:
    """Load runtime configuration from YAML with ${ENV_VAR} substitution."""
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}") from e

    if not isinstance(raw_config, dict):
        raise ConfigError("Config file must be a YAML mapping")

    raw_config = _substitute_env_vars(raw_config)

    try:
        return RuntimeConfig.model_validate(raw_config)
    except Exception as e:
        raise ConfigError(f"Invalid config structure: {e}") from e


def select_server(config: RuntimeConfig, name: str | None = None) -> ServerConfig:
    """Pick a server profile: the named one, else default_server, else the only one."""
    available = ", ".join(config.servers.keys()) or "(none)"

    if name is None:
        name = config.default_server
    if name is None:
        if len(config.servers) == 1:
            return next(iter(config.servers.values()))
        raise ConfigError(
            f"Config defines {len(config.servers)} servers and no default_server. "
            f"Choose one with --server. Available: {available}"
        )

    if name not in config.servers:
        raise ConfigError(f"Server '{name}' not found in config. Available: {available}")
    return config.servers[name]


def _substitute_env_vars(data: Any) -> Any:
    """Recursively substitute ${ENV_VAR} patterns in strings within data."""
    if isinstance(data, str):
        return _substitute_string(data)
    elif isinstance(data, dict):
        return {k: _substitute_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars(item) for item in data]
    return data


def _substitute_string(s: str) -> str:
    """Substitute ${ENV_VAR} patterns. Raises ConfigError if env var is not set."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(f"Environment variable '{var_name}' is not set")
        return value

    return _ENV_VAR_PATTERN.sub(replacer, s)
