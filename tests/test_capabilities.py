"""Tests for trackerkit.integrations.capabilities module."""

import asyncio

import httpx
import pytest

from tests.helpers import AGILE_API
from trackerkit.integrations.capabilities import (
    Capability,
    CapabilityProbe,
    UnavailableReason,
)

BOARD_PATH = f"{AGILE_API}/board"


@pytest.fixture
def probe(transport):
    return CapabilityProbe(transport)


class TestCapabilityProbe:
    async def test_available_is_memoized(self, probe, fake_tracker):
        fake_tracker.add("GET", BOARD_PATH, {"values": [], "isLast": True})

        assert await probe.is_available(Capability.AGILE) is True
        assert await probe.is_available("agile") is True

        assert probe.probe_count == 1
        assert fake_tracker.count("GET", BOARD_PATH) == 1
        assert fake_tracker.requests[0].url.params["maxResults"] == "1"

    async def test_not_found_means_deployment_lacks_it(self, probe, fake_tracker):
        fake_tracker.add("GET", BOARD_PATH, {"errorMessages": ["nope"]}, status=404)

        status = await probe.status(Capability.AGILE)
        assert status.available is False
        assert status.reason == UnavailableReason.DEPLOYMENT

        await probe.status(Capability.AGILE)
        assert probe.probe_count == 1

    @pytest.mark.parametrize("code", [401, 403])
    async def test_forbidden_means_plan_or_permission(self, probe, fake_tracker, code):
        fake_tracker.add("GET", BOARD_PATH, {"errorMessages": ["denied"]}, status=code)

        status = await probe.status(Capability.AGILE)
        assert status.available is False
        assert status.reason == UnavailableReason.PLAN_OR_PERMISSION

    async def test_server_error_is_not_memoized(self, probe, fake_tracker, sleeper):
        fake_tracker.add("GET", BOARD_PATH, {"errorMessages": ["boom"]}, status=500)

        status = await probe.status(Capability.AGILE)
        assert status.available is False
        assert status.reason is None

        assert await probe.is_available(Capability.AGILE) is False
        assert probe.probe_count == 2
        # Each probe retried the 5xx before giving up
        assert sleeper.delays == [1.0, 2.0, 1.0, 2.0]

    async def test_network_error_is_not_memoized(self, probe, fake_tracker):
        fake_tracker.add("GET", BOARD_PATH, error=httpx.ConnectError("refused"))

        assert await probe.is_available(Capability.AGILE) is False
        assert await probe.is_available(Capability.AGILE) is False
        assert probe.probe_count == 2

    async def test_concurrent_callers_share_one_probe(self, probe, fake_tracker):
        async def slow_board(request):
            await asyncio.sleep(0.01)
            return httpx.Response(200, json={"values": []}, request=request)

        fake_tracker.add_handler("GET", BOARD_PATH, slow_board)

        results = await asyncio.gather(*(probe.is_available(Capability.AGILE) for _ in range(5)))

        assert results == [True] * 5
        assert probe.probe_count == 1
        assert fake_tracker.count("GET", BOARD_PATH) == 1

    async def test_reset_forgets_results(self, probe, fake_tracker):
        fake_tracker.add("GET", BOARD_PATH, {"values": []})

        await probe.is_available(Capability.AGILE)
        probe.reset()
        await probe.is_available(Capability.AGILE)

        assert probe.probe_count == 2

    async def test_unknown_capability_rejected(self, probe):
        with pytest.raises(ValueError):
            await probe.status("time-travel")


class TestDefinitiveFailures:
    """Answers that will not change on retry are memoized as unavailable."""

    async def test_html_page_means_deployment_lacks_it(self, probe, fake_tracker):
        fake_tracker.add(
            "GET",
            BOARD_PATH,
            text="<html><body>Sign in</body></html>",
            headers={"Content-Type": "text/html"},
        )

        status = await probe.status(Capability.AGILE)
        assert status.available is False
        assert status.reason == UnavailableReason.DEPLOYMENT

        assert await probe.is_available(Capability.AGILE) is False
        assert probe.probe_count == 1

    @pytest.mark.parametrize("code", [400, 405, 410])
    async def test_other_client_errors_are_memoized(self, probe, fake_tracker, sleeper, code):
        fake_tracker.add("GET", BOARD_PATH, {"errorMessages": ["no"]}, status=code)

        status = await probe.status(Capability.AGILE)
        await probe.status(Capability.AGILE)

        assert status.reason == UnavailableReason.DEPLOYMENT
        assert probe.probe_count == 1
        assert fake_tracker.count("GET", BOARD_PATH) == 1
        assert sleeper.delays == []

    async def test_rate_limit_is_not_memoized(self, probe, fake_tracker):
        fake_tracker.add(
            "GET",
            BOARD_PATH,
            {"errorMessages": ["slow down"]},
            status=429,
            headers={"Retry-After": "0"},
        )

        assert await probe.is_available(Capability.AGILE) is False
        assert await probe.is_available(Capability.AGILE) is False
        assert probe.probe_count == 2

    async def test_agile_getters_return_empty_behind_login_page(self, client, fake_tracker):
        fake_tracker.add("GET", BOARD_PATH, text="<html>login</html>")

        assert await client.get_boards() == []
        assert await client.get_sprints(1) == []
