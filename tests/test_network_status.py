"""Tests for NetworkStatusService and network error recognition."""

from __future__ import annotations

import httpx
import pytest

from depsentinel.engines.connectivity import NetworkStatusService, is_network_error
from depsentinel.engines.connectivity.network_status import MAX_ERRORS
from depsentinel.engines.scan_coordinator.models import NetworkStatus


def _service(handler) -> NetworkStatusService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return NetworkStatusService("https://registry.example/", client=client)


class TestCheckConnectivity:
    async def test_any_response_is_online(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.method)
            return httpx.Response(503)

        async with _service(handler) as svc:
            assert await svc.check_connectivity()
            assert seen == ["HEAD"]
            assert not svc.has_issues()

    async def test_connect_error_is_offline(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("getaddrinfo ENOTFOUND", request=request)

        async with _service(handler) as svc:
            assert not await svc.check_connectivity()
            status = svc.snapshot()
            assert not status.is_online
            assert status.degraded_features == ["registry"]
            assert status.errors == ["Unable to reach package registry"]

    async def test_timeout_is_offline(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        async with _service(handler) as svc:
            assert not await svc.check_connectivity()
            assert svc.snapshot().errors == ["Connection to package registry timed out"]

    async def test_simulated_offline_skips_request(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        async with _service(handler) as svc:
            svc.simulate_offline = True
            assert not await svc.check_connectivity()
            assert "registry" in svc.snapshot().degraded_features


class TestChannels:
    async def test_reset_clears_state(self):
        svc = NetworkStatusService(client=httpx.AsyncClient())
        svc.mark_degraded("osv", "down")
        svc.reset()

        assert svc.snapshot() == NetworkStatus()
        assert svc.last_checked is not None
        await svc.close()

    async def test_mark_healthy_restores_online(self):
        svc = NetworkStatusService(client=httpx.AsyncClient())
        svc.mark_degraded("registry", "down")
        svc.mark_degraded("osv", "down")

        svc.mark_healthy("registry")
        assert not svc.snapshot().is_online
        svc.mark_healthy("osv")
        assert svc.snapshot().is_online
        await svc.close()

    async def test_errors_capped(self):
        svc = NetworkStatusService(client=httpx.AsyncClient())
        for i in range(MAX_ERRORS + 3):
            svc.mark_degraded("registry", f"failure {i}")

        status = svc.snapshot()
        assert len(status.errors) == MAX_ERRORS
        assert status.degraded_features == ["registry"]
        await svc.close()

    async def test_user_message(self):
        svc = NetworkStatusService(client=httpx.AsyncClient())
        assert svc.user_message() == ""

        svc.mark_degraded("registry", "down")
        assert svc.user_message() == "Package registry is unavailable due to network issues."

        svc.mark_degraded("osv", "down")
        assert svc.user_message() == (
            "Package registry and OSV vulnerability database are unavailable due to network issues."
        )
        await svc.close()


class TestIsNetworkError:
    @pytest.mark.parametrize(
        "exc",
        [
            httpx.ConnectError("refused"),
            ConnectionResetError(),
            TimeoutError(),
            RuntimeError("request failed: getaddrinfo ENOTFOUND registry.npmjs.org"),
            RuntimeError("ECONNREFUSED 127.0.0.1:443"),
        ],
    )
    def test_recognized(self, exc):
        assert is_network_error(exc)
        assert NetworkStatusService.is_network_error(exc)

    @pytest.mark.parametrize("exc", [None, ValueError("bad version"), KeyError("name")])
    def test_not_network(self, exc):
        assert not is_network_error(exc)
