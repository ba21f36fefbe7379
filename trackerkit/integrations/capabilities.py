"""Lazy detection of optional API subsystems.

Some deployments lack an optional subsystem (for example the agile
boards/sprints API is missing on instances without the software product,
or hidden by plan tier). CapabilityProbe issues one minimal request per
capability and memoizes the answer for the lifetime of the probe, which the
client keeps for the lifetime of the process.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType

from trackerkit.integrations.cache import TTLTier
from trackerkit.integrations.errors import DecodeError, HttpError, NetworkError
from trackerkit.integrations.transport import ApiRoot, RequestOptions, TransportCore

logger = logging.getLogger(__name__)


class Capability(Enum):
    """Optional subsystems that may be absent on a deployment."""

    AGILE = "agile"


class UnavailableReason(Enum):
    DEPLOYMENT = "deployment"
    PLAN_OR_PERMISSION = "plan_or_permission"


@dataclass(frozen=True)
class ProbeRequest:
    path: str
    api: ApiRoot
    params: Mapping[str, str]


PROBE_REQUESTS: Mapping[Capability, ProbeRequest] = MappingProxyType(
    {
        Capability.AGILE: ProbeRequest(
            path="/board", api=ApiRoot.AGILE, params=MappingProxyType({"maxResults": "1"})
        ),
    }
)


@dataclass(frozen=True)
class CapabilityStatus:
    """Outcome of a capability probe."""

    available: bool
    reason: UnavailableReason | None = None
    detail: str = ""


class CapabilityProbe:
    """Memoized one-shot probes for optional subsystems.

    Concurrent callers asking about the same capability share one probe.
    A 2xx or non-retryable 4xx answer is definitive and memoized, including a
    2xx whose body is not JSON. Network errors and retryable statuses report
    unavailable without memoizing, so the next call probes again. Caller
    cancellation propagates.
    """

    def __init__(self, transport: TransportCore) -> None:
        self._transport = transport
        self._results: dict[Capability, CapabilityStatus] = {}
        self._locks: dict[Capability, asyncio.Lock] = {}
        self.probe_count = 0

    def _lock_for(self, capability: Capability) -> asyncio.Lock:
        lock = self._locks.get(capability)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[capability] = lock
        return lock

    async def is_available(self, capability: Capability | str) -> bool:
        status = await self.status(capability)
        return status.available

    async def status(self, capability: Capability | str) -> CapabilityStatus:
        """Return the (memoized) availability of a capability."""
        capability = Capability(capability)
        cached = self._results.get(capability)
        if cached is not None:
            return cached

        async with self._lock_for(capability):
            cached = self._results.get(capability)
            if cached is not None:
                return cached

            result, definitive = await self._probe(capability)
            if definitive:
                self._results[capability] = result
                if result.available:
                    logger.info("Capability %s is available", capability.value)
                else:
                    logger.info(
                        "Capability %s is unavailable (%s)",
                        capability.value,
                        result.reason.value if result.reason else "unknown",
                    )
            return result

    async def _probe(self, capability: Capability) -> tuple[CapabilityStatus, bool]:
        request = PROBE_REQUESTS[capability]
        self.probe_count += 1
        try:
            await self._transport.execute(
                "GET",
                request.path,
                params=request.params,
                options=RequestOptions(skip_cache=True, ttl=TTLTier.NONE, api=request.api),
            )
        except HttpError as e:
            if e.status_code == 404:
                return CapabilityStatus(False, UnavailableReason.DEPLOYMENT, str(e)), True
            if e.is_auth_error:
                return CapabilityStatus(False, UnavailableReason.PLAN_OR_PERMISSION, str(e)), True
            if 400 <= e.status_code < 500 and not e.is_retryable:
                return CapabilityStatus(False, UnavailableReason.DEPLOYMENT, str(e)), True
            logger.warning("Capability probe for %s failed transiently: %s", capability.value, e)
            return CapabilityStatus(False, None, str(e)), False
        except DecodeError as e:
            # A proxy or login page answering in place of the API
            return CapabilityStatus(False, UnavailableReason.DEPLOYMENT, str(e)), True
        except NetworkError as e:
            logger.warning("Capability probe for %s failed transiently: %s", capability.value, e)
            return CapabilityStatus(False, None, str(e)), False
        return CapabilityStatus(True), True

    def reset(self) -> None:
        """Forget memoized results (e.g. after switching credentials)."""
        self._results.clear()


__all__ = [
    "PROBE_REQUESTS",
    "Capability",
    "CapabilityProbe",
    "CapabilityStatus",
    "UnavailableReason",
]
