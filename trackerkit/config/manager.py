"""Configuration manager for trackerkit.

Loads settings from the global config file and environment variables.

Configuration Precedence (highest to lowest):
1. Environment Variables - CI/CD, temporary overrides
2. Global Config (~/.trackerkit-config) - User defaults
3. Built-in Defaults - Fallback values
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

from trackerkit.config.client_config import ClientConfig, ConfigValidationError
from trackerkit.config.settings import CONFIG_FILE, Settings
from trackerkit.integrations.auth import AuthScheme, Credentials
from trackerkit.integrations.errors import CredentialValidationError, NotConfiguredError
from trackerkit.utils.env_utils import expand_env_vars, is_sensitive_key

logger = logging.getLogger(__name__)

_LINE_PATTERN = re.compile(r"^([a-zA-Z_][a-zA-Z0-9_]*)=(.*)$")


class ConfigManager:
    """Loads configuration from file and environment.

    Security features:
    - Safe line-by-line parsing (no eval/exec)
    - Key name validation
    - Secret values never logged

    Attributes:
        settings: Current settings instance
        config_path: Path to the config file
    """

    def __init__(self, config_path: Path | None = None) -> None:
        self.config_path = config_path or CONFIG_FILE
        self.settings = Settings()
        self._raw_values: dict[str, str] = {}
        self._config_sources: dict[str, str] = {}

    def load(self) -> Settings:
        """Load configuration from all sources with cascading precedence.

        Each call starts from clean defaults, so repeated loads never keep
        stale values.
        """
        self.settings = Settings()
        self._raw_values = {}
        self._config_sources = {}

        if self.config_path.exists():
            logger.info(f"Loading configuration from {self.config_path}")
            self._load_file(self.config_path, source="file")

        # Environment variables override everything
        self._load_environment()

        for key, value in self._raw_values.items():
            self._apply_value_to_settings(key, value)

        logger.info(f"Configuration loaded ({len(self._raw_values)} keys)")
        return self.settings

    def _load_file(self, path: Path, source: str = "file") -> None:
        """Load KEY=VALUE pairs from a config file."""
        with path.open() as f:
            for line in f:
                line = line.strip()

                # Skip empty lines and comments
                if not line or line.startswith("#"):
                    continue

                match = _LINE_PATTERN.match(line)
                if not match:
                    logger.debug(f"Ignoring malformed config line in {path}")
                    continue

                key, value = match.groups()
                # Double quotes support escapes; single quotes are literal
                if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
                    value = self._unescape_value(value[1:-1])
                elif len(value) >= 2 and value.startswith("'") and value.endswith("'"):
                    value = value[1:-1]

                self._raw_values[key] = value
                self._config_sources[key] = source

    def _load_environment(self) -> None:
        """Override config with environment variables for known keys only."""
        for key in Settings.get_config_keys():
            env_value = os.environ.get(key)
            if env_value is not None:
                self._raw_values[key] = env_value
                self._config_sources[key] = "environment"

    def _apply_value_to_settings(self, key: str, value: str) -> None:
        """Apply a raw config value to the settings object."""
        attr = self.settings.get_attribute_for_key(key)
        if attr is None:
            return  # Unknown key, ignore

        current_value = getattr(self.settings, attr)

        if isinstance(current_value, bool):
            setattr(self.settings, attr, value.strip().lower() in ("true", "1", "yes"))
        elif isinstance(current_value, int | float):
            converter = int if isinstance(current_value, int) else float
            try:
                setattr(self.settings, attr, converter(value))
            except ValueError:
                logger.warning(f"Invalid value for {key}, keeping default {current_value}")
        else:
            setattr(self.settings, attr, value.strip())

    @staticmethod
    def _unescape_value(value: str) -> str:
        """Unescape a double-quoted value (\\" and \\\\)."""
        return re.sub(r"\\(.)", r"\1", value)

    def get(self, key: str, default: str = "") -> str:
        """Raw configuration value for a key."""
        return self._raw_values.get(key, default)

    def get_source(self, key: str) -> str | None:
        """Where a key's value came from ("file" or "environment")."""
        return self._config_sources.get(key)

    def client_config(self) -> ClientConfig:
        """Build a ClientConfig from the loaded settings.

        Raises:
            NotConfiguredError: If no base URL is configured
            ConfigValidationError: If a configured value is unusable
        """
        if not self.settings.base_url:
            raise NotConfiguredError(
                "No tracker URL configured. Set TRACKER_BASE_URL in "
                f"{self.config_path} or the environment."
            )
        return self.settings.to_client_config()

    def credentials(self, strict: bool = True) -> Credentials:
        """Build credentials, expanding ${VAR} references in their values.

        Args:
            strict: If True, an unset referenced variable raises
                    EnvVarExpansionError

        Raises:
            ConfigValidationError: If the auth scheme is unknown
            CredentialValidationError: If a required value is empty
        """
        try:
            scheme = AuthScheme.from_string(self.settings.auth_scheme)
        except ValueError as e:
            raise ConfigValidationError(str(e)) from e

        raw = {
            "username": expand_env_vars(
                self.settings.username, strict=strict, context="TRACKER_USERNAME"
            ),
            "token": expand_env_vars(self.settings.token, strict=strict, context="TRACKER_TOKEN"),
        }
        credentials = Credentials.from_mapping(scheme, raw)
        missing = credentials.missing_keys()
        if missing:
            raise CredentialValidationError(scheme=scheme.value, missing_keys=missing)
        return credentials

    def describe(self) -> list[tuple[str, str, str]]:
        """List (key, display value, source) for every known key; secrets masked."""
        rows: list[tuple[str, str, str]] = []
        for key in Settings.get_config_keys():
            attr = self.settings.get_attribute_for_key(key)
            value = str(getattr(self.settings, attr)) if attr else ""
            if is_sensitive_key(key) and value:
                value = "********"
            rows.append((key, value, self._config_sources.get(key, "default")))
        return rows


__all__ = ["ConfigManager"]
