"""Config - Resolves the Books API base URL and loads runtime configuration.

The base URL comes from the first non-blank source in this order:

1. an explicit override (``--base-url`` / ``--api-base-url``)
2. the ``BASE_URL`` environment variable
3. ``api.base_url`` in the YAML config file
4. DEFAULT_BASE_URL

The config file is the path given by the caller, else ``$BOOKS_BDD_CONFIG``,
else ``./config.yaml``. String values may reference ``${ENV_VAR}``.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import ValidationError

from books_bdd.models import RuntimeConfig, TargetConfig

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://fakerestapi.azurewebsites.net"
BASE_URL_ENV_VAR = "BASE_URL"
CONFIG_PATH_ENV_VAR = "BOOKS_BDD_CONFIG"
DEFAULT_CONFIG_PATH = Path("config.yaml")


class ConfigError(Exception):
    """Raised when configuration loading fails."""


class BaseUrlSource(str, Enum):
    """Where a resolved base URL came from."""

    OVERRIDE = "override"
    ENVIRONMENT = "environment"
    CONFIG_FILE = "config_file"
    DEFAULT = "default"


@dataclass
class ResolvedBaseUrl:
    """A base URL and the source that supplied it."""

    url: str
    source: BaseUrlSource

    def __str__(self) -> str:
        return f"{self.url} ({self.source.value})"


def load_runtime_config(
    config_path: Path,
    environ: Mapping[str, str] | None = None,
) -> RuntimeConfig:
    """Load runtime configuration from YAML with ${ENV_VAR} substitution.

    Variables are looked up in environ, or os.environ when it is None.
    """
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}") from e
    except OSError as e:
        raise ConfigError(f"Could not read config file {config_path}: {e}") from e

    if raw_config is None:
        return RuntimeConfig()
    if not isinstance(raw_config, dict):
        raise ConfigError("Config file must be a YAML mapping")

    raw_config = _substitute_env_vars(raw_config, os.environ if environ is None else environ)

    try:
        return RuntimeConfig.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigError(f"Invalid config structure: {e}") from e


def find_runtime_config(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> RuntimeConfig | None:
    """Locate and load the config file, or return None if there is none.

    An explicitly named file (argument or $BOOKS_BDD_CONFIG) must exist; the
    default ./config.yaml is optional.
    """
    environ = os.environ if environ is None else environ

    if config_path is None and _non_blank(environ.get(CONFIG_PATH_ENV_VAR)):
        config_path = Path(environ[CONFIG_PATH_ENV_VAR].strip())

    if config_path is not None:
        return load_runtime_config(config_path, environ)

    if DEFAULT_CONFIG_PATH.exists():
        return load_runtime_config(DEFAULT_CONFIG_PATH, environ)
    return None


def resolve_base_url(
    override: str | None = None,
    environ: Mapping[str, str] | None = None,
    config: RuntimeConfig | None = None,
) -> ResolvedBaseUrl:
    """Pick the base URL from the first non-blank source."""
    environ = os.environ if environ is None else environ

    if _non_blank(override):
        resolved = ResolvedBaseUrl(override.strip(), BaseUrlSource.OVERRIDE)
    elif _non_blank(environ.get(BASE_URL_ENV_VAR)):
        resolved = ResolvedBaseUrl(environ[BASE_URL_ENV_VAR].strip(), BaseUrlSource.ENVIRONMENT)
    elif config is not None and _non_blank(config.api.base_url):
        resolved = ResolvedBaseUrl(config.api.base_url.strip(), BaseUrlSource.CONFIG_FILE)
    else:
        resolved = ResolvedBaseUrl(DEFAULT_BASE_URL, BaseUrlSource.DEFAULT)

    logger.info("Resolved base URL: %s", resolved)
    return resolved


def build_target_config(
    override: str | None = None,
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
    timeout: float | None = None,
) -> TargetConfig:
    """Resolve the full target: base URL plus headers and timeout from the config file.

    Raises:
        ConfigError: If the config file is missing (when named), unreadable or invalid.
    """
    config = find_runtime_config(config_path, environ)
    resolved = resolve_base_url(override, environ, config)

    headers: dict[str, str] = {}
    effective_timeout = 30.0
    if config is not None:
        headers = dict(config.api.headers)
        effective_timeout = config.api.timeout
    if timeout is not None:
        effective_timeout = timeout

    try:
        return TargetConfig(base_url=resolved.url, headers=headers, timeout=effective_timeout)
    except ValidationError as e:
        raise ConfigError(f"Invalid target configuration: {e}") from e


def _non_blank(value: str | None) -> bool:
    return value is not None and bool(value.strip())


def _substitute_env_vars(data: Any, environ: Mapping[str, str]) -> Any:
    """Recursively substitute ${ENV_VAR} patterns in strings within data."""
    if isinstance(data, str):
        return _substitute_string(data, environ)
    elif isinstance(data, dict):
        return {k: _substitute_env_vars(v, environ) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars(item, environ) for item in data]
    return data


def _substitute_string(s: str, environ: Mapping[str, str]) -> str:
    """Substitute ${ENV_VAR} patterns. Raises ConfigError if env var is not set."""
    pattern = re.compile(r"\$\{([^}]+)\}")

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        value = environ.get(var_name)
        if value is None:
            raise ConfigError(f"Environment variable '{var_name}' is not set")
        return value

    return pattern.sub(replacer, s)
