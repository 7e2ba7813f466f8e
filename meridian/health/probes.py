"""
Meridian - HTTP Health Probes
=============================

Async HTTP probing of workload health endpoints with httpx. Transport
errors (connect failures, timeouts) are retried with exponential backoff;
once retries run out the probe reports failure instead of raising.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from ..resilience.retry_manager import async_retry

logger = logging.getLogger(__name__)


@dataclass
class ProbeResult:
    ok: bool
    status_code: int | None = None
    latency_ms: float | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "status_code": self.status_code,
            "latency_ms": self.latency_ms,
            "error": self.error,
        }


class HttpProber:
    """
    Probes health endpoints over a shared httpx.AsyncClient.

    Usage:
        async with HttpProber() as prober:
            result = await prober.probe("http://api.internal/healthz")
    """

    def __init__(
        self,
        timeout: float | None = None,
        retries: int | None = None,
        retry_delay: float = 0.5,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if timeout is None or retries is None:
            from ..config import get_settings
            settings = get_settings()
            timeout = settings.HEALTH_PROBE_TIMEOUT_SECONDS if timeout is None else timeout
            retries = settings.HEALTH_PROBE_RETRIES if retries is None else retries
        self.timeout = timeout
        self.retries = retries
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._send_with_retry = async_retry(
            max_retries=retries,
            initial_delay=retry_delay,
            max_delay=max(retry_delay, 5.0),
            exceptions=(httpx.TransportError,),
        )(self._send)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
                follow_redirects=True,
                headers={"User-Agent": "meridian-health-probe"},
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
        return False

    async def _send(self, url: str, timeout: float) -> tuple[httpx.Response, float]:
        client = await self._get_client()
        started = time.perf_counter()
        response = await client.get(url, timeout=timeout)
        return response, round((time.perf_counter() - started) * 1000, 2)

    async def probe(self, url: str, expected_status: int = 200, timeout: float | None = None) -> ProbeResult:
        """GET url and compare the status code with expected_status."""
        try:
            response, latency_ms = await self._send_with_retry(url, timeout or self.timeout)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.info(f"Probe of {url} failed: {type(e).__name__}: {e}")
            return ProbeResult(ok=False, error=f"{type(e).__name__}: {e}" if str(e) else type(e).__name__)

        if response.status_code != expected_status:
            return ProbeResult(
                ok=False,
                status_code=response.status_code,
                latency_ms=latency_ms,
                error=f"expected HTTP {expected_status}, got {response.status_code}",
            )
        return ProbeResult(ok=True, status_code=response.status_code, latency_ms=latency_ms)
