"""Settings dataclass for trackerkit configuration.

Settings hold the raw values read from ``~/.trackerkit-config`` and the
environment. ``to_client_config`` turns them into a validated ClientConfig.
Secrets stay as written (possibly ``${VAR}`` references); ConfigManager
expands them only when building credentials.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from trackerkit.config.client_config import (
    DEFAULT_MAX_ITEMS,
    DEFAULT_PAGE_SIZE,
    ClientConfig,
    Deployment,
)


@dataclass
class Settings:
    """Configuration settings for trackerkit.

    Attributes:
        base_url: Site URL (e.g. https://example.atlassian.net)
        deployment: "cloud", "server" or empty to detect from the URL
        auth_scheme: "basic", "pat" or "bearer"
        username: Account email or username (basic auth)
        token: API token, password or PAT; may be a ${VAR} reference
        default_project: Project key used when a command omits one
        timeout_seconds: Per-HTTP-call timeout
        max_retries: Retry attempts for transient failures
        retry_delay_seconds: Base delay for exponential backoff
        page_size: Items requested per page
        max_items: Pagination safety ceiling
        cache_enabled: Whether idempotent reads are cached
        cache_max_size: LRU bound for the response cache
    """

    # Connection settings
    base_url: str = ""
    deployment: str = ""
    auth_scheme: str = "basic"
    username: str = ""
    token: str = ""
    default_project: str = ""

    # Performance settings
    timeout_seconds: float = 30.0
    max_retries: int = 3
    retry_delay_seconds: float = 1.0
    page_size: int = DEFAULT_PAGE_SIZE
    max_items: int = DEFAULT_MAX_ITEMS

    # Cache settings
    cache_enabled: bool = True
    cache_max_size: int = 200

    # Config key to attribute mapping
    _key_mapping: dict[str, str] = field(
        default_factory=lambda: {
            "TRACKER_BASE_URL": "base_url",
            "TRACKER_DEPLOYMENT": "deployment",
            "TRACKER_AUTH_SCHEME": "auth_scheme",
            "TRACKER_USERNAME": "username",
            "TRACKER_TOKEN": "token",
            "TRACKER_DEFAULT_PROJECT": "default_project",
            "TRACKER_TIMEOUT_SECONDS": "timeout_seconds",
            "TRACKER_MAX_RETRIES": "max_retries",
            "TRACKER_RETRY_DELAY_SECONDS": "retry_delay_seconds",
            "TRACKER_PAGE_SIZE": "page_size",
            "TRACKER_MAX_ITEMS": "max_items",
            "TRACKER_CACHE_ENABLED": "cache_enabled",
            "TRACKER_CACHE_MAX_SIZE": "cache_max_size",
        },
        repr=False,
    )

    def get_attribute_for_key(self, key: str) -> str | None:
        """Get the attribute name for a config key."""
        return self._key_mapping.get(key)

    def get_key_for_attribute(self, attr: str) -> str | None:
        for key, value in self._key_mapping.items():
            if value == attr:
                return key
        return None

    @classmethod
    def get_config_keys(cls) -> list[str]:
        """Get list of all valid configuration keys."""
        temp = cls()
        return list(temp._key_mapping.keys())

    def get_deployment(self) -> Deployment:
        """Configured deployment, or one detected from the base URL."""
        if self.deployment:
            return Deployment.from_string(self.deployment)
        return Deployment.detect(self.base_url)

    def to_client_config(self) -> ClientConfig:
        """Build a validated ClientConfig.

        Raises:
            ConfigValidationError: If the base URL or deployment is unusable
        """
        return ClientConfig(
            base_url=self.base_url,
            deployment=self.get_deployment(),
            timeout_seconds=self.timeout_seconds,
            max_retries=self.max_retries,
            retry_delay_seconds=self.retry_delay_seconds,
            page_size=self.page_size,
            max_items=self.max_items,
            cache_enabled=self.cache_enabled,
            cache_max_size=self.cache_max_size,
        )


# Default configuration file path
CONFIG_FILE = Path.home() / ".trackerkit-config"
