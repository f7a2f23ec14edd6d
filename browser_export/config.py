"""Configuration loading with YAML support and environment overrides.

Settings come, in increasing order of precedence, from built-in defaults, an
optional YAML file (with per-environment overrides), and environment
variables. In production the authorized URL pattern and the export timeout
have no default and must be provided.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .export.browser_factory import BrowserConfig

logger = logging.getLogger(__name__)

ENVIRONMENTS = ("production", "development", "test")

LOG_LEVELS = ("critical", "error", "warning", "info", "debug")

ENVIRONMENT_VARIABLES: Dict[str, Dict[str, Any]] = {
    "BROWSER_EXPORT_ENV": {
        "description": "Deployment environment, one of production, development or test.",
        "default": "production",
    },
    "CHROMIUM_EXECUTABLE_PATH": {
        "description": (
            "The path to the Chromium executable to launch to perform the export. "
            "Playwright's bundled Chromium is used when unset."
        ),
    },
    "LOG_LEVEL": {
        "description": "Logging level, one of " + ", ".join(LOG_LEVELS) + ".",
        "default": "info",
        "dev_default": "debug",
    },
    "PDF_EXPORT_AUTHORIZED_URL_PATTERN": {
        "description": "The regular expression pattern that the URL to export has to match to be authorized.",
        "dev_default": ".",
    },
    "PDF_EXPORT_TIMEOUT_IN_SECONDS": {
        "description": "The maximum amount of seconds that the export is allowed to take before being aborted.",
        "dev_default": 30,
    },
    "PORT": {
        "description": "The port on which the server will listen.",
        "dev_default": 5000,
    },
    "AUTHORIZED_URL_PATTERN": {
        "description": "The regular expression pattern that URLs exported by the function handler have to match.",
    },
}


class ConfigurationError(Exception):
    """Exception raised when configuration loading fails."""
    pass


class BrowserSettings(BaseModel):
    """Chromium launch settings."""

    executable_path: Optional[str] = Field(default=None, description="Chromium executable")
    headless: bool = Field(default=True)
    args: List[str] = Field(default_factory=list, description="Extra Chromium arguments")
    ignore_https_errors: bool = Field(default=False)

    def to_browser_config(self) -> BrowserConfig:
        return BrowserConfig(
            headless=self.headless,
            executable_path=Path(self.executable_path) if self.executable_path else None,
            args=list(self.args),
            ignore_https_errors=self.ignore_https_errors,
        )


class ServerSettings(BaseModel):
    """HTTP server settings."""

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=5000, ge=0, le=65535)
    log_level: str = Field(default="info")
    authorized_url_pattern: str = Field(description="Regex the URL to export has to match")
    timeout_in_seconds: float = Field(gt=0, description="Budget of one export")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        value = value.lower()
        if value not in LOG_LEVELS:
            raise ValueError(f"log level must be one of {', '.join(LOG_LEVELS)}")
        return value

    @field_validator("authorized_url_pattern")
    @classmethod
    def validate_pattern(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"invalid regular expression: {e}")
        return value


class ExportConfig(BaseModel):
    """Complete Browser Export configuration."""

    environment: str = Field(default="production")
    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    server: ServerSettings

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, value: str) -> str:
        if value not in ENVIRONMENTS:
            raise ValueError(f"environment must be one of {', '.join(ENVIRONMENTS)}")
        return value

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def authorized_url_regex(self) -> "re.Pattern[str]":
        return re.compile(self.server.authorized_url_pattern)


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def _development_defaults() -> Dict[str, Any]:
    return {
        "server": {
            "port": ENVIRONMENT_VARIABLES["PORT"]["dev_default"],
            "log_level": ENVIRONMENT_VARIABLES["LOG_LEVEL"]["dev_default"],
            "authorized_url_pattern": ENVIRONMENT_VARIABLES["PDF_EXPORT_AUTHORIZED_URL_PATTERN"]["dev_default"],
            "timeout_in_seconds": ENVIRONMENT_VARIABLES["PDF_EXPORT_TIMEOUT_IN_SECONDS"]["dev_default"],
        },
    }


def _read_yaml(config_path: Path) -> Dict[str, Any]:
    if not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    try:
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse YAML config: {e}")
    except IOError as e:
        raise ConfigurationError(f"Failed to read config file: {e}")

    if not isinstance(config_data, dict):
        raise ConfigurationError("Config file must contain a YAML dictionary")

    return config_data


def _environment_overrides(env: Mapping[str, str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {"browser": {}, "server": {}}

    if env.get("CHROMIUM_EXECUTABLE_PATH"):
        overrides["browser"]["executable_path"] = env["CHROMIUM_EXECUTABLE_PATH"]
    if env.get("LOG_LEVEL"):
        overrides["server"]["log_level"] = env["LOG_LEVEL"]
    if env.get("PDF_EXPORT_AUTHORIZED_URL_PATTERN"):
        overrides["server"]["authorized_url_pattern"] = env["PDF_EXPORT_AUTHORIZED_URL_PATTERN"]
    if env.get("PDF_EXPORT_TIMEOUT_IN_SECONDS"):
        overrides["server"]["timeout_in_seconds"] = env["PDF_EXPORT_TIMEOUT_IN_SECONDS"]
    if env.get("PORT"):
        overrides["server"]["port"] = env["PORT"]

    return overrides


def load_config(
    config_path: Optional[str] = None,
    environment: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    overrides: Optional[Dict[str, Any]] = None
) -> ExportConfig:
    """Load configuration from defaults, an optional YAML file and the environment.

    Args:
        config_path: Path to a YAML config file (optional)
        environment: Environment name. If None, uses BROWSER_EXPORT_ENV.
        env: Environment variables (defaults to os.environ)
        overrides: Additional configuration overrides to apply last

    Returns:
        Validated ExportConfig

    Raises:
        ConfigurationError: If a file cannot be read or a setting is missing or invalid

    Example:
        >>> config = load_config(environment="development", env={})
        >>> config.server.port
        5000
    """
    env = os.environ if env is None else env

    if environment is None:
        environment = env.get("BROWSER_EXPORT_ENV", ENVIRONMENT_VARIABLES["BROWSER_EXPORT_ENV"]["default"])

    config_data: Dict[str, Any] = {"environment": environment}
    if environment != "production":
        config_data = _deep_merge(config_data, _development_defaults())

    if config_path is not None:
        file_data = _read_yaml(Path(config_path))
        environments = file_data.pop("environments", None) or {}
        config_data = _deep_merge(config_data, file_data)
        if environment in environments:
            config_data = _deep_merge(config_data, environments[environment])
            logger.info(f"Applied environment overrides for: {environment}")

    config_data = _deep_merge(config_data, _environment_overrides(env))

    if overrides:
        config_data = _deep_merge(config_data, overrides)
        logger.debug("Applied additional configuration overrides")

    server = config_data.get("server", {})
    missing = [
        name for name, key in (
            ("PDF_EXPORT_AUTHORIZED_URL_PATTERN", "authorized_url_pattern"),
            ("PDF_EXPORT_TIMEOUT_IN_SECONDS", "timeout_in_seconds"),
        )
        if server.get(key) in (None, "")
    ]
    if missing:
        raise ConfigurationError(
            f"Missing required environment variables for {environment}: {', '.join(missing)}"
        )

    try:
        return ExportConfig(**config_data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}")


def load_handler_settings(env: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Settings of the function handler, read from the environment.

    Raises:
        ConfigurationError: If AUTHORIZED_URL_PATTERN is missing or invalid
    """
    env = os.environ if env is None else env

    pattern = env.get("AUTHORIZED_URL_PATTERN")
    if not pattern:
        raise ConfigurationError("Missing required environment variable: AUTHORIZED_URL_PATTERN")
    try:
        regex = re.compile(pattern)
    except re.error as e:
        raise ConfigurationError(f"Invalid AUTHORIZED_URL_PATTERN: {e}")

    return {
        "authorized_url_regex": regex,
        "executable_path": env.get("CHROMIUM_EXECUTABLE_PATH") or None,
    }


def configure_logging(level: str = "info") -> None:
    """Configure root logging for an application entry point."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
