"""Tests for ProbeExecutor — URL building, classification, fault handling."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from src.core.config import ProbeConfig
from src.core.types import ProbeClassification, ServerState, ServerTarget
from src.probes.executor import TIMEOUT_ERROR, ProbeExecutor, classify_response


# ── Helpers ─────────────────────────────────────────────────────


def _config(**overrides: object) -> ProbeConfig:
    return ProbeConfig(**{"timeout_secs": 5.0, **overrides})  # type: ignore[arg-type]


def _response(
    status_code: int = 200,
    json_data: object | None = None,
    text: str | None = None,
) -> httpx.Response:
    """Build a mock httpx.Response."""
    kwargs: dict[str, object] = {}
    if json_data is not None:
        kwargs["json"] = json_data
    elif text is not None:
        kwargs["text"] = text
    return httpx.Response(
        status_code=status_code,
        request=httpx.Request("GET", "http://10.0.0.5:8080/health"),
        **kwargs,  # type: ignore[arg-type]
    )


def _executor(handler: object, **config: object) -> ProbeExecutor:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))  # type: ignore[arg-type]
    return ProbeExecutor(_config(**config), client=client, clock=lambda: 1000.0)


# ── URL building ────────────────────────────────────────────────


class TestHealthUrl:
    def test_default_url(self) -> None:
        executor = ProbeExecutor(_config())
        assert executor.health_url("10.0.0.5", 8080) == "http://10.0.0.5:8080/health"

    def test_ipv6_bracketed(self) -> None:
        executor = ProbeExecutor(_config())
        assert executor.health_url("::1", 9000) == "http://[::1]:9000/health"

    def test_custom_scheme_and_path(self) -> None:
        executor = ProbeExecutor(_config(scheme="https", health_path="status"))
        assert executor.health_url("host", 443) == "https://host:443/status"


# ── Response classification ─────────────────────────────────────


class TestClassifyResponse:
    def test_2xx_is_healthy_with_payload(self) -> None:
        outcome = classify_response("s1", _response(200, {"ok": True}), 0.1, 1000.0)
        assert outcome.classification == ProbeClassification.HEALTHY
        assert outcome.response == {"ok": True}
        assert outcome.error is None
        assert outcome.status_code == 200

    def test_204_is_healthy_without_payload(self) -> None:
        outcome = classify_response("s1", _response(204), 0.1, 1000.0)
        assert outcome.classification == ProbeClassification.HEALTHY
        assert outcome.response is None

    def test_non_json_body_kept_as_text(self) -> None:
        outcome = classify_response("s1", _response(200, text="OK"), 0.1, 1000.0)
        assert outcome.response == "OK"

    def test_503_is_unhealthy(self) -> None:
        outcome = classify_response("s1", _response(503), 0.1, 1000.0)
        assert outcome.classification == ProbeClassification.UNHEALTHY
        assert outcome.error == "HTTP 503: Service Unavailable"

    def test_404_is_unhealthy(self) -> None:
        outcome = classify_response("s1", _response(404), 0.1, 1000.0)
        assert outcome.classification == ProbeClassification.UNHEALTHY
        assert outcome.error == "HTTP 404: Not Found"

    def test_redirect_is_unhealthy(self) -> None:
        outcome = classify_response("s1", _response(302), 0.1, 1000.0)
        assert outcome.classification == ProbeClassification.UNHEALTHY


# ── Probing ─────────────────────────────────────────────────────


class TestProbe:
    async def test_healthy_probe(self) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, json={"status": "up"})

        executor = _executor(handler)
        outcome = await executor.probe("s1", "10.0.0.5", 8080)

        assert seen == ["http://10.0.0.5:8080/health"]
        assert outcome.server_id == "s1"
        assert outcome.classification == ProbeClassification.HEALTHY
        assert outcome.response == {"status": "up"}
        assert outcome.observed_at == 1000.0
        assert outcome.latency_secs >= 0.0

    async def test_unhealthy_status_does_not_raise(self) -> None:
        executor = _executor(lambda request: httpx.Response(500))
        outcome = await executor.probe("s1", "10.0.0.5", 8080)
        assert outcome.classification == ProbeClassification.UNHEALTHY
        assert outcome.error == "HTTP 500: Internal Server Error"

    async def test_connection_refused_is_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused")

        executor = _executor(handler)
        outcome = await executor.probe("s1", "10.0.0.5", 8080)
        assert outcome.classification == ProbeClassification.ERROR
        assert outcome.error == "connection refused"

    async def test_transport_timeout_is_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out")

        executor = _executor(handler)
        outcome = await executor.probe("s1", "10.0.0.5", 8080)
        assert outcome.classification == ProbeClassification.TIMEOUT
        assert outcome.error == TIMEOUT_ERROR

    async def test_slow_server_hits_budget(self) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200)

        executor = _executor(handler)
        outcome = await executor.probe("s1", "10.0.0.5", 8080, timeout=0.05)
        assert outcome.classification == ProbeClassification.TIMEOUT
        assert outcome.latency_secs < 1.0

    async def test_os_error_is_error(self) -> None:
        executor = ProbeExecutor(_config(), client=httpx.AsyncClient())
        with patch.object(executor._http, "get", new_callable=AsyncMock) as mock_get:  # type: ignore[union-attr]
            mock_get.side_effect = OSError("network unreachable")
            outcome = await executor.probe("s1", "10.0.0.5", 8080)
        assert outcome.classification == ProbeClassification.ERROR
        assert outcome.error == "network unreachable"

    async def test_empty_error_message_uses_type_name(self) -> None:
        executor = ProbeExecutor(_config(), client=httpx.AsyncClient())
        with patch.object(executor._http, "get", new_callable=AsyncMock) as mock_get:  # type: ignore[union-attr]
            mock_get.side_effect = httpx.RemoteProtocolError("")
            outcome = await executor.probe("s1", "10.0.0.5", 8080)
        assert outcome.classification == ProbeClassification.ERROR
        assert outcome.error == "RemoteProtocolError"

    async def test_probe_target(self) -> None:
        executor = _executor(lambda request: httpx.Response(200))
        target = ServerTarget(id="s9", address="host", port=81, state=ServerState.ONLINE)
        outcome = await executor.probe_target(target)
        assert outcome.server_id == "s9"
        assert outcome.healthy


# ── Lifecycle ───────────────────────────────────────────────────


class TestLifecycle:
    async def test_connect_creates_client(self) -> None:
        executor = ProbeExecutor(_config())
        assert not executor.connected
        await executor.connect()
        assert executor.connected
        await executor.close()
        assert not executor.connected

    async def test_connect_returns_active_client(self) -> None:
        client = httpx.AsyncClient()
        executor = ProbeExecutor(_config(), client=client)
        assert await executor.connect() is client
        await client.aclose()

    async def test_probe_after_close_reconnects(self) -> None:
        executor = ProbeExecutor(_config())
        first = await executor.connect()
        await executor.close()
        with patch.object(
            httpx.AsyncClient, "get", new_callable=AsyncMock, return_value=_response(200),
        ):
            outcome = await executor.probe("srv-1", "10.0.0.5", 8080)
        assert outcome.healthy
        assert executor.connected
        assert await executor.connect() is not first
        await executor.close()

    async def test_injected_client_not_closed(self) -> None:
        client = httpx.AsyncClient()
        executor = ProbeExecutor(_config(), client=client)
        await executor.close()
        assert not client.is_closed
        await client.aclose()

    async def test_context_manager(self) -> None:
        async with ProbeExecutor(_config()) as executor:
            assert executor.connected
        assert not executor.connected

    @pytest.mark.parametrize("timeout", [1.0, 2.5])
    def test_timeout_property(self, timeout: float) -> None:
        assert ProbeExecutor(_config(timeout_secs=timeout)).timeout_secs == timeout
