"""
Configuration management and loading.

Settings may come from the process environment or from a flat YAML file.
Both sources sit behind ``ConfigProvider`` so the API resolves a single
``GatewayConfig`` per request regardless of where it runs.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

DEFAULT_MODEL = "gemini-2.0-flash"
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"
DEFAULT_DAILY_LIMIT = 10
DEFAULT_TIMEOUT_SECONDS = 60.0
DEFAULT_ORGANISATION_ID = 1

# Recognised keys; shared by every provider
CONFIG_KEYS = {
    "GEMINI_API_KEY",
    "MAX_GEMINI_CALLS",
    "GEMINI_MODEL",
    "GEMINI_BASE_URL",
    "GEMINI_TIMEOUT_SECONDS",
    "AI_GATEWAY_DB_PATH",
    "ORGANISATION_ID",
}


@dataclass(frozen=True)
class GatewayConfig:
    """Resolved gateway settings for one request."""
    server_api_key: Optional[str]
    model: str = DEFAULT_MODEL
    base_url: str = DEFAULT_BASE_URL
    daily_limit: int = DEFAULT_DAILY_LIMIT
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    db_path: str = "cube_ai_gateway.db"
    organisation_id: int = DEFAULT_ORGANISATION_ID

    def __post_init__(self):
        """Validate limits and identifiers."""
        if self.daily_limit < 0:
            raise ValueError("daily_limit must be >= 0")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if not self.model or not self.model.strip():
            raise ValueError("model is required and cannot be empty")

    @property
    def has_server_key(self) -> bool:
        return bool(self.server_api_key)


class ConfigProvider:
    """Source of raw configuration values."""

    def get(self, key: str, fallback: Optional[str] = None) -> Optional[str]:
        raise NotImplementedError


class EnvironmentConfigProvider(ConfigProvider):
    """Reads configuration from environment variables.

    Empty strings are treated as unset, matching how deployment platforms
    render blank secrets.
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self._environ = environ if environ is not None else os.environ

    def get(self, key: str, fallback: Optional[str] = None) -> Optional[str]:
        value = self._environ.get(key)
        if value:
            return value
        return fallback


class YamlConfigProvider(ConfigProvider):
    """Reads configuration from a flat YAML mapping of the same keys."""

    def __init__(self, path: str):
        self._values = load_config_file(path)

    def get(self, key: str, fallback: Optional[str] = None) -> Optional[str]:
        value = self._values.get(key)
        if value is None or value == "":
            return fallback
        return value


def load_config_file(path: str) -> Dict[str, str]:
    """Load and validate a flat YAML configuration file.

    Unknown keys are rejected so a typo cannot silently leave the shared
    key unlimited or unconfigured.

    Args:
        path: Path to YAML configuration file

    Returns:
        Mapping of configuration key to string value

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Gateway config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration file must contain a mapping")

    unknown_keys = set(raw_config.keys()) - CONFIG_KEYS
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    values = {}
    for key, value in raw_config.items():
        if isinstance(value, (dict, list)):
            raise ValueError(f"'{key}' must be a scalar value")
        values[key] = "" if value is None else str(value)
    return values


def resolve_gateway_config(provider: ConfigProvider) -> GatewayConfig:
    """Build a validated GatewayConfig from a provider.

    Args:
        provider: Configuration source

    Returns:
        Validated GatewayConfig

    Raises:
        ValueError: If a numeric setting cannot be parsed or is out of range
    """
    return GatewayConfig(
        server_api_key=provider.get("GEMINI_API_KEY"),
        model=provider.get("GEMINI_MODEL", DEFAULT_MODEL),
        base_url=provider.get("GEMINI_BASE_URL", DEFAULT_BASE_URL),
        daily_limit=_parse_int(provider, "MAX_GEMINI_CALLS", DEFAULT_DAILY_LIMIT),
        timeout_seconds=_parse_float(provider, "GEMINI_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
        db_path=provider.get("AI_GATEWAY_DB_PATH", "cube_ai_gateway.db"),
        organisation_id=_parse_int(provider, "ORGANISATION_ID", DEFAULT_ORGANISATION_ID),
    )


def _parse_int(provider: ConfigProvider, key: str, default: int) -> int:
    raw = provider.get(key)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"'{key}' must be an integer, got {raw!r}")


def _parse_float(provider: ConfigProvider, key: str, default: float) -> float:
    raw = provider.get(key)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"'{key}' must be a number, got {raw!r}")
