"""HTTP transport for the tracker REST API.

TransportCore issues requests with AuthContext headers, consults the
ResponseCache for idempotent reads, retries transient failures and
classifies everything else into the error taxonomy:

- non-2xx status          -> HttpError(status, body)
- connect/DNS/timeout     -> NetworkError
- 2xx with non-JSON body  -> DecodeError
- cancellation token set  -> Cancelled (nothing is cached)

Resource Management:
    TransportCore manages a shared HTTP client for connection pooling.
    Use as an async context manager, or call close() explicitly:

        async with TransportCore(config, auth) as transport:
            data = await transport.execute("GET", "/myself")

Testability:
    Inject an httpx.AsyncClient (e.g. backed by httpx.MockTransport), a
    no-op sleeper and a zero jitter generator for deterministic tests.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any

import httpx

from trackerkit.config.client_config import MAX_RETRY_DELAY_SECONDS, ClientConfig
from trackerkit.integrations.auth import AuthContext
from trackerkit.integrations.cache import CacheKey, ResponseCache, TTLTier
from trackerkit.integrations.errors import (
    HTTP_TOO_MANY_REQUESTS,
    Cancelled,
    DecodeError,
    HttpError,
    NetworkError,
    truncate_body,
)

logger = logging.getLogger(__name__)

# Type alias for async sleep functions (for dependency injection in tests)
AsyncSleeper = Callable[[float], Awaitable[None]]

MUTATING_METHODS = frozenset({"POST", "PUT", "DELETE", "PATCH"})


def _default_jitter_generator(max_jitter: float) -> float:
    """Generate random jitter between 0 and max_jitter."""
    return random.uniform(0, max_jitter)


class CancellationToken:
    """Cooperative cancellation signal supplied by the caller.

    Calling cancel() aborts any in-flight request that was given this token.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class ApiRoot(Enum):
    """Which REST root a path is relative to."""

    CORE = "core"
    AGILE = "agile"


@dataclass(frozen=True)
class RequestOptions:
    """Per-request behaviour.

    Attributes:
        ttl: Cache tier for a successful read
        skip_cache: Bypass the cache for this read
        cacheable: Allow caching of a POST that is a read (e.g. JQL search)
        tags: Extra invalidation tags stored with the cached entry
        cancel_token: Caller-supplied cancellation signal
        api: REST root the path is relative to
    """

    ttl: TTLTier = TTLTier.DEFAULT
    skip_cache: bool = False
    cacheable: bool = False
    tags: frozenset[str] = field(default_factory=frozenset)
    cancel_token: CancellationToken | None = None
    api: ApiRoot = ApiRoot.CORE


class TransportCore:
    """Execute API requests with caching, retries and error classification.

    Retry Policy:
        - Retries network errors and 500/502/503/504
        - Retries 429 Too Many Requests (respects Retry-After header)
        - Does NOT retry other client errors (4xx)
        - Exponential backoff capped at MAX_RETRY_DELAY_SECONDS, plus jitter

    Timeouts apply per HTTP call, so a multi-page operation may take up to
    the sum of its per-page timeouts.
    """

    def __init__(
        self,
        config: ClientConfig,
        auth: AuthContext,
        cache: ResponseCache | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        sleeper: AsyncSleeper | None = None,
        jitter_generator: Callable[[float], float] | None = None,
    ) -> None:
        self._config = config
        self._auth = auth
        self._cache = cache

        # Shared HTTP client (created lazily on first request unless injected)
        self._http_client = http_client
        self._owns_client = http_client is None
        self._client_lock = asyncio.Lock()

        self._sleeper: AsyncSleeper = sleeper if sleeper is not None else asyncio.sleep
        self._jitter_generator = (
            jitter_generator if jitter_generator is not None else _default_jitter_generator
        )

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def cache(self) -> ResponseCache | None:
        return self._cache

    async def __aenter__(self) -> TransportCore:
        await self._get_http_client()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client if this transport created it. Safe to call twice."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    def reconfigure(self, auth: AuthContext) -> None:
        """Swap credentials; cached reads made under the old identity are dropped."""
        self._auth = auth
        if self._cache is not None:
            self._cache.clear()
        logger.info("Transport credentials replaced (%r)", auth)

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client (double-checked locking)."""
        if self._http_client is None:
            async with self._client_lock:
                if self._http_client is None:
                    self._http_client = httpx.AsyncClient(
                        timeout=httpx.Timeout(self._config.timeout_seconds)
                    )
                    self._owns_client = True
        return self._http_client

    def _url_for(self, path: str, api: ApiRoot) -> str:
        root = self._config.agile_base if api is ApiRoot.AGILE else self._config.api_base
        return f"{root}{path}"

    async def execute(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        body: Any = None,
        options: RequestOptions | None = None,
    ) -> Any:
        """Execute one logical request.

        Args:
            method: HTTP verb
            path: Path relative to the selected REST root (starts with "/")
            params: Query parameters (None values are dropped)
            body: JSON request body
            options: Caching, cancellation and API-root options

        Returns:
            Decoded JSON body, or None for empty (e.g. 204) responses

        Raises:
            HttpError, NetworkError, DecodeError, Cancelled
        """
        method = method.upper()
        options = options or RequestOptions()
        token = options.cancel_token
        if token is not None and token.is_cancelled:
            raise Cancelled(method, path)

        use_cache = (
            self._cache is not None
            and not options.skip_cache
            and options.ttl is not TTLTier.NONE
            and (method not in MUTATING_METHODS or (options.cacheable and method == "POST"))
        )
        clean_params = {k: v for k, v in (params or {}).items() if v is not None}

        key: CacheKey | None = None
        if use_cache:
            key = CacheKey.for_request(method, path, clean_params, body, api=options.api.value)
            cached = self._cache.get(key)
            if cached is not None:
                return cached

        value = await self._request_with_retry(method, path, clean_params, body, options)

        # Empty bodies are not cached; a cached None would read as a miss
        if key is not None and value is not None:
            self._cache.set(key, value, ttl=options.ttl, tags=options.tags)
        return value

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        params: Mapping[str, Any],
        body: Any,
        options: RequestOptions,
    ) -> Any:
        max_retries = self._config.max_retries
        log_context = {"method": method, "path": path}
        last_error: Exception | None = None

        for attempt in range(max_retries + 1):
            try:
                response = await self._send(method, path, params, body, options)
            except httpx.TimeoutException as e:
                last_error = NetworkError(method, path, original_error=e)
                logger.warning(
                    "Timeout on %s %s (attempt %d/%d): %s",
                    method,
                    path,
                    attempt + 1,
                    max_retries + 1,
                    e,
                    extra=log_context,
                )
            except httpx.TransportError as e:
                last_error = NetworkError(method, path, original_error=e)
                logger.warning(
                    "Network error on %s %s (attempt %d/%d): %s",
                    method,
                    path,
                    attempt + 1,
                    max_retries + 1,
                    e,
                    extra=log_context,
                )
            else:
                if response.is_success:
                    return self._decode(response, path)

                error = HttpError(
                    response.status_code,
                    body=self._error_body(response),
                    method=method,
                    path=path,
                )
                if response.status_code == HTTP_TOO_MANY_REQUESTS:
                    last_error = error
                    retry_delay = self._get_retry_after_delay(response, attempt)
                    logger.warning(
                        "Rate limited (attempt %d/%d), waiting %.1fs",
                        attempt + 1,
                        max_retries + 1,
                        retry_delay,
                        extra=log_context,
                    )
                    if attempt < max_retries:
                        await self._sleep(retry_delay, method, path, options)
                    continue

                if not error.is_retryable:
                    logger.debug(
                        "API error response for %s %s: %s",
                        method,
                        path,
                        truncate_body(error.body, 1000),
                    )
                    raise error

                last_error = error
                logger.warning(
                    "HTTP error (attempt %d/%d): status=%d",
                    attempt + 1,
                    max_retries + 1,
                    response.status_code,
                    extra=log_context,
                )

            if attempt < max_retries:
                calculated_delay = self._config.retry_delay_seconds * (2**attempt)
                capped_delay = min(calculated_delay, MAX_RETRY_DELAY_SECONDS)
                jitter = self._jitter_generator(capped_delay * 0.1)
                await self._sleep(capped_delay + jitter, method, path, options)

        assert last_error is not None
        raise last_error

    async def _sleep(
        self, seconds: float, method: str, path: str, options: RequestOptions
    ) -> None:
        await self._sleeper(seconds)
        if options.cancel_token is not None and options.cancel_token.is_cancelled:
            raise Cancelled(method, path)

    async def _send(
        self,
        method: str,
        path: str,
        params: Mapping[str, Any],
        body: Any,
        options: RequestOptions,
    ) -> httpx.Response:
        """Send one HTTP request, racing it against the cancellation token."""
        client = await self._get_http_client()
        request = client.request(
            method,
            self._url_for(path, options.api),
            params=params or None,
            json=body,
            headers=self._auth.headers(),
            timeout=httpx.Timeout(self._config.timeout_seconds),
        )
        token = options.cancel_token
        if token is None:
            return await request

        request_task = asyncio.ensure_future(request)
        cancel_task = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait(
                {request_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            request_task.cancel()
            raise
        finally:
            cancel_task.cancel()

        if request_task in done:
            return request_task.result()

        request_task.cancel()
        try:
            await request_task
        except asyncio.CancelledError:
            logger.debug("Aborted in-flight %s %s", method, path)
        raise Cancelled(method, path)

    @staticmethod
    def _decode(response: httpx.Response, path: str) -> Any:
        if response.status_code == 204 or not response.content.strip():
            return None
        try:
            return response.json()
        except ValueError as e:
            raise DecodeError(path, body_preview=response.text) from e

    @staticmethod
    def _error_body(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def _get_retry_after_delay(self, response: httpx.Response, attempt: int) -> float:
        """Extract Retry-After delay (seconds or HTTP-date), or fall back to backoff."""
        retry_after = response.headers.get("Retry-After")
        if retry_after:
            try:
                return min(float(retry_after), MAX_RETRY_DELAY_SECONDS)
            except ValueError:
                pass

            try:
                retry_date = parsedate_to_datetime(retry_after)
                http_date_delay: float = (retry_date - datetime.now(UTC)).total_seconds()
                return min(max(0.0, http_date_delay), MAX_RETRY_DELAY_SECONDS)
            except (ValueError, TypeError) as e:
                logger.warning(
                    "Failed to parse Retry-After header '%s': %s. "
                    "Falling back to exponential backoff.",
                    retry_after,
                    e,
                )

        default_delay: float = self._config.retry_delay_seconds * (2**attempt)
        return min(default_delay, MAX_RETRY_DELAY_SECONDS)


__all__ = [
    "MUTATING_METHODS",
    "ApiRoot",
    "AsyncSleeper",
    "CancellationToken",
    "RequestOptions",
    "TransportCore",
]
