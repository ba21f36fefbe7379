"""Configuration: settings file and environment loading, client config."""

from trackerkit.config.client_config import ClientConfig, ConfigValidationError, Deployment
from trackerkit.config.settings import CONFIG_FILE, Settings

__all__ = [
    "CONFIG_FILE",
    "ClientConfig",
    "ConfigValidationError",
    "Deployment",
    "Settings",
]
