"""Configuration for tripweave.

Settings are layered: environment variables (``TRIPWEAVE_*``, nested with
``__``) win over the YAML config file, which wins over in-code defaults.

The Gemini credential is never part of the settings object. It is looked up
separately by :class:`APIKeyManager` (environment, then system keyring) so
that it cannot end up in a dumped config or a log line.

Example:
    >>> from tripweave.config import load_config
    >>> cfg = load_config()
    >>> cfg.ai.timeout_seconds
    60

Config File Format (YAML):
    ```yaml
    ai:
      mode: enabled        # enabled | disabled
      model_name: gemini-1.5-flash
      vision_model: gemini-1.5-flash
      temperature: 0.7
      max_output_tokens: 2048
      timeout_seconds: 60

    batch:
      batch_size: 3
      delay_seconds: 1.0

    paths:
      config_dir: ~/.tripweave
      uploads_dir: ./uploads

    log_level: INFO
    ```
"""

from __future__ import annotations

import functools
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any

import keyring
import keyring.errors
import yaml
from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, EnvSettingsSource

logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================


class ConfigError(Exception):
    """Base exception for configuration errors."""


class ConfigFileError(ConfigError):
    """Config file exists but cannot be read or has an unusable structure."""


class APIKeyError(ConfigError):
    """Base exception for API key problems."""


class APIKeyNotFoundError(APIKeyError):
    """No API key in any configured source."""


class APIKeyInvalidError(APIKeyError):
    """API key fails basic format checks (length, whitespace)."""


# =============================================================================
# Enums
# =============================================================================


class AIMode(str, Enum):
    """Whether pipelines may call the remote model.

    DISABLED forces every pipeline onto its fallback path without touching the
    network. ENABLED calls Gemini whenever a credential is configured.
    """

    DISABLED = "disabled"
    ENABLED = "enabled"


class KeySource(str, Enum):
    """Where the API key was found."""

    ENVIRONMENT = "environment"
    KEYRING = "keyring"
    NONE = "none"


# =============================================================================
# Configuration Models
# =============================================================================


class AIConfig(BaseModel):
    """Remote model settings.

    Attributes:
        mode: Whether remote generation is attempted at all.
        model_name: Gemini model used for text generation.
        vision_model: Gemini model used when an image part is attached.
        temperature: Sampling temperature.
        max_output_tokens: Default response budget; pipelines may lower it.
        timeout_seconds: Deadline for a single remote call.
    """

    mode: AIMode = Field(default=AIMode.ENABLED, description="Remote generation mode.")
    model_name: str = Field(default="gemini-1.5-flash", description="Text generation model.")
    vision_model: str = Field(default="gemini-1.5-flash", description="Multimodal model.")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_output_tokens: int = Field(default=2048, ge=64, le=32000)
    timeout_seconds: float = Field(default=60.0, ge=5.0, le=600.0)

    def is_enabled(self) -> bool:
        """Return True unless the mode is DISABLED."""
        return self.mode != AIMode.DISABLED


class BatchConfig(BaseModel):
    """Limits for bulk photo analysis.

    Attributes:
        batch_size: Number of photos analyzed concurrently in one group.
        delay_seconds: Pause between two consecutive groups.
    """

    batch_size: int = Field(default=3, ge=1, le=32)
    delay_seconds: float = Field(default=1.0, ge=0.0, le=60.0)


class PathsConfig(BaseModel):
    """Filesystem locations.

    Attributes:
        config_dir: Base directory for user configuration. Default ~/.tripweave
        uploads_dir: Directory that relative photo URLs (``/uploads/x.jpg``)
            are resolved against when images are attached to prompts.
        log_dir: Directory for log files. Default: config_dir/logs
    """

    config_dir: Path = Field(default_factory=lambda: Path.home() / ".tripweave")
    uploads_dir: Path = Field(default_factory=lambda: Path.cwd() / "uploads")
    log_dir: Path | None = None

    @field_validator("config_dir", "uploads_dir", mode="before")
    @classmethod
    def expand_path(cls, v: Any) -> Any:
        """Expand ~ in user-supplied paths."""
        if isinstance(v, (str, Path)):
            return Path(v).expanduser()
        return v

    @model_validator(mode="after")
    def resolve_defaults(self) -> "PathsConfig":
        if self.log_dir is None:
            self.log_dir = self.config_dir / "logs"
        else:
            self.log_dir = Path(self.log_dir).expanduser()
        return self


class AppConfig(BaseSettings):
    """Top-level application configuration.

    Attributes:
        ai: Remote model settings.
        batch: Bulk analysis limits.
        paths: Filesystem locations.
        log_level: Console log level used by the CLI.
        debug: Enable debug output.
        verbose: Enable verbose output.
    """

    ai: AIConfig = Field(default_factory=AIConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    log_level: str = Field(default="INFO")
    debug: bool = False
    verbose: bool = False

    model_config = {
        "env_prefix": "TRIPWEAVE_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.upper()
        return v

    def is_ai_available(self) -> bool:
        """True when AI is enabled and a key can be found."""
        if not self.ai.is_enabled():
            return False
        return APIKeyManager().get_key() is not None


# =============================================================================
# API Key Management
# =============================================================================


class APIKeyManager:
    """Look up the Gemini API key.

    Sources, in order: ``GEMINI_API_KEY``, ``GOOGLE_API_KEY``, then the system
    keyring. The key is wrapped in SecretStr and cached after the first hit.

    Example:
        >>> manager = APIKeyManager()
        >>> key = manager.get_key()
        >>> if key:
        ...     print(manager.get_key_source())
    """

    KEYRING_SERVICE = "tripweave"
    KEYRING_USERNAME = "gemini_api_key"
    ENV_VAR_NAMES = ("GEMINI_API_KEY", "GOOGLE_API_KEY")

    def __init__(self) -> None:
        self._cached_key: SecretStr | None = None
        self._key_source: KeySource = KeySource.NONE

    def get_key(self) -> SecretStr | None:
        """Return the first valid key found, or None."""
        if self._cached_key is not None:
            return self._cached_key

        key = self._read_from_environment()
        if key and self.validate_key_format(key):
            self._cached_key = SecretStr(key)
            self._key_source = KeySource.ENVIRONMENT
            logger.debug("API key loaded from environment variable")
            return self._cached_key

        key = self._read_from_keyring()
        if key and self.validate_key_format(key):
            self._cached_key = SecretStr(key)
            self._key_source = KeySource.KEYRING
            logger.debug("API key loaded from system keyring")
            return self._cached_key

        self._key_source = KeySource.NONE
        logger.debug("No API key found in any source")
        return None

    def get_key_source(self) -> KeySource:
        return self._key_source

    def store_key(self, key: str) -> None:
        """Store the key in the system keyring.

        Raises:
            APIKeyInvalidError: If the key fails format validation.
            ConfigError: If the keyring rejects the write.
        """
        key = key.strip()
        if not self.validate_key_format(key):
            raise APIKeyInvalidError(
                "API key format validation failed. "
                "Key must be 20-100 characters with no whitespace."
            )
        try:
            keyring.set_password(self.KEYRING_SERVICE, self.KEYRING_USERNAME, key)
        except keyring.errors.KeyringError as e:
            raise ConfigError(f"Failed to store key in keyring: {type(e).__name__}") from e

        self._cached_key = None
        self._key_source = KeySource.NONE
        logger.info("API key stored in system keyring")

    def delete_key(self) -> None:
        """Remove the key from the system keyring (no-op if absent)."""
        try:
            keyring.delete_password(self.KEYRING_SERVICE, self.KEYRING_USERNAME)
        except keyring.errors.PasswordDeleteError:
            return
        except keyring.errors.KeyringError as e:
            raise ConfigError(f"Failed to delete key from keyring: {type(e).__name__}") from e

        self._cached_key = None
        self._key_source = KeySource.NONE
        logger.info("API key deleted from system keyring")

    def validate_key_format(self, key: str) -> bool:
        """Cheap local sanity check; says nothing about whether Gemini accepts it."""
        if not key:
            return False
        key = key.strip()
        if len(key) < 20 or len(key) > 100:
            return False
        return not any(c.isspace() for c in key)

    def _read_from_environment(self) -> str | None:
        for name in self.ENV_VAR_NAMES:
            value = os.environ.get(name)
            if value and value.strip():
                return value.strip()
        return None

    def _read_from_keyring(self) -> str | None:
        try:
            return keyring.get_password(self.KEYRING_SERVICE, self.KEYRING_USERNAME)
        except keyring.errors.KeyringError as e:
            # Headless machines often have no backend at all
            logger.debug(f"Keyring access failed: {type(e).__name__}")
            return None


# =============================================================================
# Module-Level Functions
# =============================================================================

DEFAULT_CONFIG_PATHS = (
    Path("./tripweave.yaml"),
    Path("./tripweave.yml"),
    Path.home() / ".tripweave" / "config.yaml",
)

_SECTIONS = {"ai": AIConfig, "batch": BatchConfig, "paths": PathsConfig}


def _read_config_file(path: Path | None) -> dict[str, Any]:
    candidates = [path, *DEFAULT_CONFIG_PATHS] if path is not None else list(DEFAULT_CONFIG_PATHS)
    config_file = next((p for p in candidates if p is not None and p.exists()), None)
    if config_file is None:
        return {}

    try:
        loaded = yaml.safe_load(config_file.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        logger.warning(f"Failed to parse config file {config_file}: {e}. Using defaults.")
        return {}
    except OSError as e:
        logger.warning(
            f"Failed to read config file {config_file}: {type(e).__name__}. Using defaults."
        )
        return {}

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        logger.warning(f"Config file {config_file} has unexpected format. Using defaults.")
        return {}

    logger.debug(f"Loaded configuration from {config_file}")
    return loaded


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from file, environment, and defaults.

    Environment variables are layered over the file section by section, so
    ``TRIPWEAVE_AI__MODE=disabled`` still applies when the file has an
    ``ai:`` block. A file section with invalid values is dropped with a
    warning instead of failing the whole load.

    Args:
        path: Optional explicit config file. Default locations are searched
            when it is None or does not exist.

    Returns:
        Fully-populated AppConfig.
    """
    data = _read_config_file(path)
    file_values: dict[str, Any] = {}

    for name, model in _SECTIONS.items():
        section = data.get(name)
        if section is None:
            continue
        if not isinstance(section, dict):
            logger.warning(f"Config section '{name}' must be a mapping. Using defaults.")
            continue
        try:
            model(**section)
        except ValidationError as e:
            logger.warning(f"Invalid values in config section '{name}': {e.error_count()} error(s). Using defaults.")
            continue
        file_values[name] = section

    for name in ("log_level", "debug", "verbose"):
        if name in data:
            file_values[name] = data[name]

    # Init kwargs outrank the environment in pydantic-settings, so the
    # environment is read here and merged over the file values.
    env_values = EnvSettingsSource(AppConfig)()

    try:
        return AppConfig(**_deep_merge(file_values, env_values))
    except ValidationError as e:
        logger.warning(f"Error parsing config values: {e}. Using defaults.")
        return AppConfig()


@functools.lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Cached configuration for the command-line entry point."""
    return load_config()


def get_api_key() -> SecretStr:
    """Return the Gemini API key.

    Raises:
        APIKeyNotFoundError: If no key is configured in any source.
    """
    key = APIKeyManager().get_key()
    if key is None:
        raise APIKeyNotFoundError(
            "No API key found. Set GEMINI_API_KEY or run 'tripweave config set-key'."
        )
    return key


def reset_config() -> None:
    """Clear the get_config() cache."""
    get_config.cache_clear()
