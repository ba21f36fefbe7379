"""Client configuration for tracker API access.

This module provides:
- Deployment enum (cloud vs. server/data-center REST flavours)
- ClientConfig dataclass with bounds clamping for performance settings
- ConfigValidationError for unusable configuration
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

# Upper bounds prevent configurations that can block or hang
MAX_TIMEOUT_SECONDS = 300.0
MAX_RETRIES = 10
MAX_RETRY_DELAY_SECONDS = 30.0
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
DEFAULT_MAX_ITEMS = 1000


class ConfigValidationError(Exception):
    """Raised when configuration cannot be used to build a client."""

    pass


class Deployment(Enum):
    """Remote deployment flavour.

    CLOUD speaks REST v3 with rich-text document bodies and cursor search.
    SERVER speaks REST v2 with plain string bodies and offset search.
    """

    CLOUD = "cloud"
    SERVER = "server"

    @property
    def api_version(self) -> str:
        return "3" if self is Deployment.CLOUD else "2"

    @classmethod
    def from_string(cls, value: str) -> Deployment:
        """Parse a deployment name; 'datacenter' and 'dc' are accepted for SERVER."""
        normalized = value.strip().lower()
        if normalized in ("datacenter", "data_center", "dc"):
            return cls.SERVER
        try:
            return cls(normalized)
        except ValueError:
            valid = ", ".join(d.value for d in cls)
            raise ConfigValidationError(
                f"Unknown deployment '{value}'. Valid options: {valid}"
            ) from None

    @classmethod
    def detect(cls, base_url: str) -> Deployment:
        """Guess the deployment from the site host (*.atlassian.net is cloud)."""
        host = urlparse(base_url).hostname or ""
        if host.endswith(".atlassian.net") or host.endswith(".jira.com"):
            return cls.CLOUD
        return cls.SERVER


@dataclass
class ClientConfig:
    """Connection and performance settings for one tracker site.

    Attributes:
        base_url: Site URL (e.g. https://example.atlassian.net)
        deployment: Cloud or server REST flavour
        timeout_seconds: Per-HTTP-call timeout (max: 300s)
        max_retries: Retry attempts for transient failures (max: 10)
        retry_delay_seconds: Base delay for exponential backoff (max: 30s)
        page_size: Items requested per page (1-100)
        max_items: Pagination safety ceiling (>= page_size)
        cache_enabled: Whether idempotent reads are cached
        cache_max_size: LRU bound for the response cache

    Values are clamped in __post_init__ using simple assignment (not frozen).
    """

    base_url: str
    deployment: Deployment = Deployment.CLOUD
    timeout_seconds: float = 30.0
    max_retries: int = 3
    retry_delay_seconds: float = 1.0
    page_size: int = DEFAULT_PAGE_SIZE
    max_items: int = DEFAULT_MAX_ITEMS
    cache_enabled: bool = True
    cache_max_size: int = 200

    def __post_init__(self) -> None:
        """Validate the base URL and clamp values to safe bounds."""
        parsed = urlparse(self.base_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigValidationError(
                f"base_url must be an absolute http(s) URL, got '{self.base_url}'"
            )
        self.base_url = self.base_url.rstrip("/")

        if self.timeout_seconds <= 0:
            logger.warning(
                f"timeout_seconds ({self.timeout_seconds}) must be positive, clamping to 1"
            )
            self.timeout_seconds = 1.0
        elif self.timeout_seconds > MAX_TIMEOUT_SECONDS:
            logger.warning(
                f"timeout_seconds ({self.timeout_seconds}) exceeds max "
                f"({MAX_TIMEOUT_SECONDS}), clamping to max"
            )
            self.timeout_seconds = MAX_TIMEOUT_SECONDS

        if self.max_retries < 0:
            logger.warning(f"max_retries ({self.max_retries}) is negative, clamping to 0")
            self.max_retries = 0
        elif self.max_retries > MAX_RETRIES:
            logger.warning(
                f"max_retries ({self.max_retries}) exceeds max ({MAX_RETRIES}), clamping to max"
            )
            self.max_retries = MAX_RETRIES

        if self.retry_delay_seconds < 0:
            logger.warning(
                f"retry_delay_seconds ({self.retry_delay_seconds}) is negative, clamping to 0"
            )
            self.retry_delay_seconds = 0.0
        elif self.retry_delay_seconds > MAX_RETRY_DELAY_SECONDS:
            logger.warning(
                f"retry_delay_seconds ({self.retry_delay_seconds}) exceeds max "
                f"({MAX_RETRY_DELAY_SECONDS}), clamping to max"
            )
            self.retry_delay_seconds = MAX_RETRY_DELAY_SECONDS

        if not 1 <= self.page_size <= MAX_PAGE_SIZE:
            clamped = min(max(self.page_size, 1), MAX_PAGE_SIZE)
            logger.warning(f"page_size ({self.page_size}) out of range, clamping to {clamped}")
            self.page_size = clamped

        if self.max_items < self.page_size:
            logger.warning(
                f"max_items ({self.max_items}) is below page_size, raising to {self.page_size}"
            )
            self.max_items = self.page_size

        if self.cache_max_size < 0:
            self.cache_max_size = 0

    @property
    def api_base(self) -> str:
        """Root of the core REST API."""
        return f"{self.base_url}/rest/api/{self.deployment.api_version}"

    @property
    def agile_base(self) -> str:
        """Root of the optional agile (boards/sprints) API."""
        return f"{self.base_url}/rest/agile/1.0"

    def browse_url(self, issue_key: str) -> str:
        return f"{self.base_url}/browse/{issue_key}"


__all__ = [
    "DEFAULT_MAX_ITEMS",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "MAX_RETRIES",
    "MAX_RETRY_DELAY_SECONDS",
    "MAX_TIMEOUT_SECONDS",
    "ClientConfig",
    "ConfigValidationError",
    "Deployment",
]
