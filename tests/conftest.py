"""Shared pytest fixtures for trackerkit tests."""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

import httpx
import pytest

from tests.fakes import FakeTracker
from tests.helpers import BASE_URL
from trackerkit.config.client_config import ClientConfig, Deployment
from trackerkit.integrations.auth import AuthContext, AuthScheme, Credentials
from trackerkit.integrations.cache import ResponseCache
from trackerkit.integrations.client import TicketPlatformClient
from trackerkit.integrations.transport import TransportCore

# Enable pytest-asyncio for async test support
pytest_plugins = ("pytest_asyncio",)


class RecordingSleeper:
    """Async sleeper that records requested delays instead of sleeping."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def fake_tracker() -> FakeTracker:
    return FakeTracker()


@pytest.fixture
def sleeper() -> RecordingSleeper:
    return RecordingSleeper()


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(scheme=AuthScheme.BASIC, secret="api-token", username="user@example.com")


@pytest.fixture
def cloud_config() -> ClientConfig:
    return ClientConfig(
        base_url=BASE_URL,
        deployment=Deployment.CLOUD,
        max_retries=2,
        retry_delay_seconds=1.0,
        page_size=2,
    )


@pytest.fixture
def server_config() -> ClientConfig:
    return ClientConfig(
        base_url="https://jira.example.com",
        deployment=Deployment.SERVER,
        max_retries=2,
        retry_delay_seconds=1.0,
        page_size=2,
    )


@pytest.fixture
async def http_client(fake_tracker: FakeTracker) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(fake_tracker)) as client:
        yield client


@pytest.fixture
def transport(
    cloud_config: ClientConfig,
    credentials: Credentials,
    http_client: httpx.AsyncClient,
    sleeper: RecordingSleeper,
) -> TransportCore:
    return TransportCore(
        cloud_config,
        AuthContext(credentials),
        ResponseCache(),
        http_client=http_client,
        sleeper=sleeper,
        jitter_generator=lambda max_jitter: 0.0,
    )


@pytest.fixture
def client(
    cloud_config: ClientConfig,
    credentials: Credentials,
    http_client: httpx.AsyncClient,
    sleeper: RecordingSleeper,
) -> TicketPlatformClient:
    return TicketPlatformClient(
        cloud_config,
        credentials,
        http_client=http_client,
        sleeper=sleeper,
        jitter_generator=lambda max_jitter: 0.0,
    )


@pytest.fixture
def server_client(
    server_config: ClientConfig,
    credentials: Credentials,
    http_client: httpx.AsyncClient,
    sleeper: RecordingSleeper,
) -> TicketPlatformClient:
    return TicketPlatformClient(
        server_config,
        credentials,
        http_client=http_client,
        sleeper=sleeper,
        jitter_generator=lambda max_jitter: 0.0,
    )


@pytest.fixture
def temp_config_file(tmp_path: Path) -> Path:
    """Create a temporary config file with sample values."""
    config_file = tmp_path / ".trackerkit-config"
    config_file.write_text(
        """# trackerkit configuration
TRACKER_BASE_URL="https://example.atlassian.net/"
TRACKER_AUTH_SCHEME=basic
TRACKER_USERNAME='user@example.com'
TRACKER_TOKEN="${TRACKER_TEST_TOKEN}"
TRACKER_DEFAULT_PROJECT=PROJ
TRACKER_MAX_RETRIES=5
TRACKER_TIMEOUT_SECONDS=12.5
TRACKER_CACHE_ENABLED=false
"""
    )
    return config_file
