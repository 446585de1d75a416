"""ProbeExecutor — one bounded-time HTTP health check, classified.

A probe never raises for network trouble: timeouts, refused connections, DNS
and TLS failures all come back as a ``ProbeOutcome`` carrying the fault.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from types import TracebackType
from typing import Any

import httpx
import structlog

from src.core.config import ProbeConfig, get_settings
from src.core.types import ProbeClassification, ProbeOutcome, ServerTarget

logger = structlog.stdlib.get_logger()

TIMEOUT_ERROR = "connection timeout"


def _format_host(address: str) -> str:
    """Bracket bare IPv6 literals for use in a URL authority."""
    if ":" in address and not address.startswith("["):
        return f"[{address}]"
    return address


def _decode_payload(response: httpx.Response) -> Any:
    """Return the JSON body when it parses, otherwise the raw text."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def classify_response(
    server_id: str,
    response: httpx.Response,
    latency_secs: float,
    observed_at: float,
) -> ProbeOutcome:
    """Classify a completed HTTP exchange as HEALTHY or UNHEALTHY."""
    if response.is_success:
        return ProbeOutcome(
            server_id=server_id,
            classification=ProbeClassification.HEALTHY,
            latency_secs=latency_secs,
            response=_decode_payload(response),
            status_code=response.status_code,
            observed_at=observed_at,
        )
    return ProbeOutcome(
        server_id=server_id,
        classification=ProbeClassification.UNHEALTHY,
        latency_secs=latency_secs,
        error=f"HTTP {response.status_code}: {response.reason_phrase}",
        status_code=response.status_code,
        observed_at=observed_at,
    )


class ProbeExecutor:
    """Executes health probes against ``<scheme>://<address>:<port><path>``.

    The executor shares one ``httpx.AsyncClient`` (connection pool) across
    probes. Any status code is accepted without raising; classification
    happens on the response.

    Usage::

        async with ProbeExecutor(config) as executor:
            outcome = await executor.probe("srv-1", "10.0.0.5", 8080)
    """

    def __init__(
        self,
        config: ProbeConfig | None = None,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or get_settings().probe
        self._http = client
        self._owns_client = client is None
        self._clock = clock

    @property
    def timeout_secs(self) -> float:
        return self._config.timeout_secs

    @property
    def connected(self) -> bool:
        """Whether the HTTP client is active."""
        return self._http is not None and not self._http.is_closed

    def health_url(self, address: str, port: int) -> str:
        path = self._config.health_path
        if not path.startswith("/"):
            path = "/" + path
        return f"{self._config.scheme}://{_format_host(address)}:{port}{path}"

    async def connect(self) -> httpx.AsyncClient:
        """Return the active client, creating the pooled one when needed."""
        if self._http is not None and not self._http.is_closed:
            return self._http
        client = httpx.AsyncClient(
            timeout=httpx.Timeout(self._config.timeout_secs),
            limits=httpx.Limits(max_connections=self._config.max_connections),
            verify=self._config.verify_tls,
            follow_redirects=False,
        )
        self._http = client
        self._owns_client = True
        return client

    async def close(self) -> None:
        """Close the httpx client (only when this executor created it)."""
        if self._http is not None and self._owns_client:
            await self._http.aclose()
            self._http = None

    async def probe_target(
        self, target: ServerTarget, timeout: float | None = None
    ) -> ProbeOutcome:
        return await self.probe(target.id, target.address, target.port, timeout)

    async def probe(
        self,
        server_id: str,
        address: str,
        port: int,
        timeout: float | None = None,
    ) -> ProbeOutcome:
        """Run one health probe and classify the result.

        Args:
            server_id: Id stamped on the outcome.
            address: Host name or IP literal.
            port: TCP port.
            timeout: Time budget in seconds. Defaults to the configured one.

        Returns:
            A ProbeOutcome. Network faults are reported, never raised.
        """
        budget = self._config.timeout_secs if timeout is None else timeout
        http = await self.connect()

        url = self.health_url(address, port)
        started = time.monotonic()
        try:
            response = await asyncio.wait_for(
                http.get(url, timeout=httpx.Timeout(budget)),
                timeout=budget,
            )
        except (TimeoutError, httpx.TimeoutException):
            outcome = ProbeOutcome(
                server_id=server_id,
                classification=ProbeClassification.TIMEOUT,
                latency_secs=time.monotonic() - started,
                error=TIMEOUT_ERROR,
                observed_at=self._clock(),
            )
        except (httpx.HTTPError, httpx.InvalidURL, OSError) as exc:
            outcome = ProbeOutcome(
                server_id=server_id,
                classification=ProbeClassification.ERROR,
                latency_secs=time.monotonic() - started,
                error=str(exc) or type(exc).__name__,
                observed_at=self._clock(),
            )
        else:
            outcome = classify_response(
                server_id,
                response,
                latency_secs=time.monotonic() - started,
                observed_at=self._clock(),
            )

        logger.debug(
            "probe_completed",
            server_id=server_id,
            url=url,
            classification=outcome.classification,
            latency_secs=round(outcome.latency_secs, 4),
            error=outcome.error,
        )
        return outcome

    async def __aenter__(self) -> ProbeExecutor:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
