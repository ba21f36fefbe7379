"""Tests for trackerkit.integrations.transport module.

Tests cover:
- URL construction and auth headers
- Response caching for idempotent reads
- Retry policy (5xx, 429 with Retry-After, network errors)
- Error classification (HttpError, NetworkError, DecodeError)
- Cancellation before and during a request
"""

import asyncio

import httpx
import pytest

from tests.helpers import AGILE_API, CLOUD_API
from trackerkit.integrations.auth import AuthContext, AuthScheme, Credentials
from trackerkit.integrations.cache import TTLTier
from trackerkit.integrations.errors import (
    Cancelled,
    DecodeError,
    HttpError,
    NetworkError,
)
from trackerkit.integrations.transport import (
    ApiRoot,
    CancellationToken,
    RequestOptions,
    TransportCore,
)


class TestRequests:
    """Basic request construction."""

    async def test_get_decodes_json(self, transport, fake_tracker):
        fake_tracker.add("GET", f"{CLOUD_API}/myself", {"accountId": "acc-1"})

        result = await transport.execute("GET", "/myself")

        assert result == {"accountId": "acc-1"}
        request = fake_tracker.requests[0]
        assert str(request.url) == "https://example.atlassian.net/rest/api/3/myself"
        assert request.headers["Authorization"].startswith("Basic ")
        assert request.headers["Accept"] == "application/json"

    async def test_agile_root(self, transport, fake_tracker):
        fake_tracker.add("GET", f"{AGILE_API}/board", {"values": []})

        await transport.execute("GET", "/board", options=RequestOptions(api=ApiRoot.AGILE))

        assert fake_tracker.count("GET", f"{AGILE_API}/board") == 1

    async def test_none_params_are_dropped(self, transport, fake_tracker):
        fake_tracker.add("GET", f"{CLOUD_API}/user/search", [])

        await transport.execute("GET", "/user/search", params={"query": "jo", "project": None})

        assert dict(fake_tracker.requests[0].url.params) == {"query": "jo"}

    async def test_json_body_is_sent(self, transport, fake_tracker):
        fake_tracker.add("POST", f"{CLOUD_API}/issue", {"id": "1", "key": "PROJ-1"})

        await transport.execute("POST", "/issue", body={"fields": {"summary": "x"}})

        assert fake_tracker.body(fake_tracker.requests[0]) == {"fields": {"summary": "x"}}

    async def test_empty_response_returns_none(self, transport, fake_tracker):
        fake_tracker.add("PUT", f"{CLOUD_API}/issue/PROJ-1", status=204)

        assert await transport.execute("PUT", "/issue/PROJ-1", body={}) is None

    async def test_non_json_success_raises_decode_error(self, transport, fake_tracker):
        fake_tracker.add("GET", f"{CLOUD_API}/myself", text="<html>login</html>")

        with pytest.raises(DecodeError):
            await transport.execute("GET", "/myself")


class TestCaching:
    """Reads are cached; writes are not."""

    async def test_second_read_served_from_cache(self, transport, fake_tracker):
        fake_tracker.add("GET", f"{CLOUD_API}/priority", [{"id": "1", "name": "High"}])

        first = await transport.execute("GET", "/priority")
        second = await transport.execute("GET", "/priority")

        assert first == second
        assert fake_tracker.count("GET", f"{CLOUD_API}/priority") == 1

    async def test_skip_cache(self, transport, fake_tracker):
        fake_tracker.add("GET", f"{CLOUD_API}/priority", [])

        await transport.execute("GET", "/priority")
        await transport.execute("GET", "/priority", options=RequestOptions(skip_cache=True))

        assert fake_tracker.count("GET", f"{CLOUD_API}/priority") == 2

    async def test_ttl_none_is_not_cached(self, transport, fake_tracker):
        fake_tracker.add("GET", f"{CLOUD_API}/myself", {})

        await transport.execute("GET", "/myself", options=RequestOptions(ttl=TTLTier.NONE))

        assert transport.cache.size() == 0

    async def test_post_not_cached_unless_cacheable(self, transport, fake_tracker):
        fake_tracker.add("POST", f"{CLOUD_API}/search/jql", {"issues": []})
        body = {"jql": "project = PROJ"}

        await transport.execute("POST", "/search/jql", body=body)
        await transport.execute("POST", "/search/jql", body=body)
        assert fake_tracker.count("POST", f"{CLOUD_API}/search/jql") == 2

        options = RequestOptions(cacheable=True, tags=frozenset({"search"}))
        await transport.execute("POST", "/search/jql", body=body, options=options)
        await transport.execute("POST", "/search/jql", body=body, options=options)
        assert fake_tracker.count("POST", f"{CLOUD_API}/search/jql") == 3

    async def test_errors_are_not_cached(self, transport, fake_tracker):
        fake_tracker.add("GET", f"{CLOUD_API}/issue/PROJ-1", {"errorMessages": ["x"]}, status=404)

        for _ in range(2):
            with pytest.raises(HttpError):
                await transport.execute("GET", "/issue/PROJ-1")

        assert fake_tracker.count("GET", f"{CLOUD_API}/issue/PROJ-1") == 2

    async def test_reconfigure_clears_cache(self, transport, fake_tracker):
        fake_tracker.add("GET", f"{CLOUD_API}/myself", {"accountId": "acc-1"})
        await transport.execute("GET", "/myself")

        transport.reconfigure(AuthContext(Credentials(scheme=AuthScheme.BEARER, secret="new")))
        await transport.execute("GET", "/myself")

        assert fake_tracker.count("GET", f"{CLOUD_API}/myself") == 2
        assert fake_tracker.requests[-1].headers["Authorization"] == "Bearer new"

    async def test_empty_body_is_not_cached(self, transport, fake_tracker):
        fake_tracker.add("GET", f"{CLOUD_API}/issue/PROJ-1/watchers", status=204)

        assert await transport.execute("GET", "/issue/PROJ-1/watchers") is None
        assert await transport.execute("GET", "/issue/PROJ-1/watchers") is None

        assert transport.cache.size() == 0
        assert fake_tracker.count("GET", f"{CLOUD_API}/issue/PROJ-1/watchers") == 2

    async def test_api_roots_do_not_share_entries(self, transport, fake_tracker):
        fake_tracker.add("GET", f"{CLOUD_API}/board", {"root": "core"})
        fake_tracker.add("GET", f"{AGILE_API}/board", {"root": "agile"})

        core = await transport.execute("GET", "/board")
        agile = await transport.execute("GET", "/board", options=RequestOptions(api=ApiRoot.AGILE))

        assert core == {"root": "core"}
        assert agile == {"root": "agile"}
        assert transport.cache.size() == 2


class TestRetryPolicy:
    """Transient failures are retried with backoff."""

    async def test_not_found_is_not_retried(self, transport, fake_tracker, sleeper):
        fake_tracker.add(
            "GET",
            f"{CLOUD_API}/issue/PROJ-9",
            {"errorMessages": ["Issue does not exist"], "errors": {}},
            status=404,
        )

        with pytest.raises(HttpError) as exc_info:
            await transport.execute("GET", "/issue/PROJ-9")

        error = exc_info.value
        assert error.is_not_found
        assert error.error_messages() == ["Issue does not exist"]
        assert "Issue does not exist" in str(error)
        assert fake_tracker.count("GET", f"{CLOUD_API}/issue/PROJ-9") == 1
        assert sleeper.delays == []

    async def test_server_error_then_success(self, transport, fake_tracker, sleeper):
        fake_tracker.add("GET", f"{CLOUD_API}/myself", {"message": "oops"}, status=502)
        fake_tracker.add("GET", f"{CLOUD_API}/myself", {"accountId": "acc-1"})

        result = await transport.execute("GET", "/myself")

        assert result == {"accountId": "acc-1"}
        assert sleeper.delays == [1.0]

    async def test_retries_exhausted(self, transport, fake_tracker, sleeper):
        fake_tracker.add("GET", f"{CLOUD_API}/myself", status=503)

        with pytest.raises(HttpError) as exc_info:
            await transport.execute("GET", "/myself")

        assert exc_info.value.status_code == 503
        assert fake_tracker.count("GET", f"{CLOUD_API}/myself") == 3
        assert sleeper.delays == [1.0, 2.0]

    async def test_rate_limit_honours_retry_after(self, transport, fake_tracker, sleeper):
        fake_tracker.add("GET", f"{CLOUD_API}/myself", status=429, headers={"Retry-After": "5"})
        fake_tracker.add("GET", f"{CLOUD_API}/myself", {"accountId": "acc-1"})

        await transport.execute("GET", "/myself")

        assert sleeper.delays == [5.0]

    async def test_rate_limit_exhausted(self, transport, fake_tracker, sleeper):
        fake_tracker.add("GET", f"{CLOUD_API}/myself", status=429, headers={"Retry-After": "1"})

        with pytest.raises(HttpError) as exc_info:
            await transport.execute("GET", "/myself")

        assert exc_info.value.status_code == 429
        assert sleeper.delays == [1.0, 1.0]

    async def test_network_error(self, transport, fake_tracker, sleeper):
        fake_tracker.add("GET", f"{CLOUD_API}/myself", error=httpx.ConnectError("refused"))

        with pytest.raises(NetworkError) as exc_info:
            await transport.execute("GET", "/myself")

        assert isinstance(exc_info.value.original_error, httpx.ConnectError)
        assert fake_tracker.count("GET", f"{CLOUD_API}/myself") == 3
        assert len(sleeper.delays) == 2

    async def test_timeout_is_network_error(self, transport, fake_tracker):
        fake_tracker.add("GET", f"{CLOUD_API}/myself", error=httpx.ReadTimeout("slow"))

        with pytest.raises(NetworkError):
            await transport.execute("GET", "/myself")


class TestCancellation:
    """Cancellation aborts requests and skips caching."""

    async def test_pre_cancelled_token(self, transport, fake_tracker):
        token = CancellationToken()
        token.cancel()

        with pytest.raises(Cancelled):
            await transport.execute("GET", "/myself", options=RequestOptions(cancel_token=token))

        assert fake_tracker.requests == []

    async def test_cancel_in_flight(self, transport, fake_tracker):
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow(request: httpx.Request) -> httpx.Response:
            started.set()
            await release.wait()
            return httpx.Response(200, json={"accountId": "acc-1"}, request=request)

        fake_tracker.add_handler("GET", f"{CLOUD_API}/myself", slow)
        token = CancellationToken()

        task = asyncio.create_task(
            transport.execute("GET", "/myself", options=RequestOptions(cancel_token=token))
        )
        await started.wait()
        token.cancel()

        with pytest.raises(Cancelled):
            await task
        assert transport.cache.size() == 0

    async def test_token_unused_when_request_completes(self, transport, fake_tracker):
        fake_tracker.add("GET", f"{CLOUD_API}/myself", {"accountId": "acc-1"})
        token = CancellationToken()

        result = await transport.execute(
            "GET", "/myself", options=RequestOptions(cancel_token=token)
        )

        assert result == {"accountId": "acc-1"}
        assert not token.is_cancelled


class TestLifecycle:
    async def test_close_leaves_injected_client_open(self, cloud_config, credentials, http_client):
        transport = TransportCore(cloud_config, AuthContext(credentials), http_client=http_client)

        await transport.close()

        assert not http_client.is_closed

    async def test_owned_client_is_closed(self, cloud_config, credentials):
        async with TransportCore(cloud_config, AuthContext(credentials)) as transport:
            client = await transport._get_http_client()
        assert client.is_closed
