"""Prober service - performs one HTTP health probe against a site."""
import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import httpx

from ..errors import ProbeFailure
from ..models import HealthCheck, Site
from ..models.enums import CheckStatus, ComponentStatus, SslStatus
from ..utils.clock import system_clock

logger = logging.getLogger(__name__)


@dataclass
class CheckResult:
    """Result of a health probe, not yet recorded."""
    site_id: int
    status: str  # online, offline, timeout, error, unknown
    checked_at: datetime
    http_status: Optional[int] = None
    response_time_ms: Optional[int] = None
    error_rate: Optional[float] = None
    database_status: Optional[str] = None
    cache_status: Optional[str] = None
    ssl_status: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def is_online(self) -> bool:
        return self.status == CheckStatus.ONLINE

    def to_model(self) -> HealthCheck:
        return HealthCheck(
            site_id=self.site_id,
            status=self.status,
            http_status=self.http_status,
            response_time_ms=self.response_time_ms,
            error_rate=self.error_rate,
            database_status=self.database_status,
            cache_status=self.cache_status,
            ssl_status=self.ssl_status,
            error_message=self.error_message,
            checked_at=self.checked_at,
        )


def _component(value, allowed, default: str) -> str:
    """Normalize a component status reported by the site."""
    if isinstance(value, str) and value in allowed:
        return value
    return default


def _as_float(value) -> float:
    try:
        return float(value) if value is not None else 0.0
    except (TypeError, ValueError):
        return 0.0


class ProberService:
    """Executes health probes. Never raises on probe failure."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None, clock=system_clock):
        self._transport = transport
        self._clock = clock

    async def probe(self, site: Site) -> CheckResult:
        """Probe site.endpoint_health and classify the outcome.

        - non-2xx -> error (HTTP code captured)
        - 2xx with body status != "ok" or malformed body -> error
        - 2xx with body status == "ok" -> online
        - deadline exceeded -> timeout
        - transport failure -> offline
        """
        checked_at = self._clock.now()
        timeout = float(site.timeout)
        start = time.monotonic()

        try:
            response = await self._fetch(site, timeout)
        except ProbeFailure as e:
            logger.debug(f"Probe of {site.name} failed: {e.status} ({e})")
            return CheckResult(
                site_id=site.id,
                status=e.status,
                checked_at=checked_at,
                # A timed out probe took at least the full deadline
                response_time_ms=int(timeout * 1000) if e.status == CheckStatus.TIMEOUT else None,
                error_message=str(e),
            )
        except Exception as e:
            logger.error(f"Unexpected error probing {site.name}: {type(e).__name__}: {e}")
            return CheckResult(
                site_id=site.id,
                status=CheckStatus.UNKNOWN.value,
                checked_at=checked_at,
                error_message=str(e),
            )

        response_time = int((time.monotonic() - start) * 1000)
        return self._classify(site, response, response_time, checked_at)

    async def _fetch(self, site: Site, timeout: float) -> httpx.Response:
        """GET the health endpoint with a hard deadline, translating failures to ProbeFailure."""
        headers = {"Accept": "application/json"}
        if site.api_key:
            headers["Authorization"] = f"Bearer {site.api_key}"

        async def request() -> httpx.Response:
            async with httpx.AsyncClient(
                timeout=timeout,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                return await client.get(site.endpoint_health, headers=headers)

        try:
            # wait_for cancels the in-flight request when the deadline passes
            return await asyncio.wait_for(request(), timeout=timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            raise ProbeFailure(CheckStatus.TIMEOUT.value, f"Request timeout after {timeout:g}s")
        except httpx.TransportError as e:
            raise ProbeFailure(CheckStatus.OFFLINE.value, f"Connection error: {e}")
        except httpx.InvalidURL as e:
            raise ProbeFailure(CheckStatus.OFFLINE.value, f"Invalid health endpoint: {e}")

    def _classify(
        self,
        site: Site,
        response: httpx.Response,
        response_time: int,
        checked_at: datetime,
    ) -> CheckResult:
        if not response.is_success:
            return CheckResult(
                site_id=site.id,
                status=CheckStatus.ERROR.value,
                checked_at=checked_at,
                http_status=response.status_code,
                response_time_ms=response_time,
                error_message=f"HTTP {response.status_code}",
            )

        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            return CheckResult(
                site_id=site.id,
                status=CheckStatus.ERROR.value,
                checked_at=checked_at,
                http_status=response.status_code,
                response_time_ms=response_time,
                error_message="Malformed health response",
            )

        metrics = data.get("metrics") if isinstance(data.get("metrics"), dict) else {}
        reported = data.get("status")
        is_ok = reported == "ok"

        return CheckResult(
            site_id=site.id,
            status=CheckStatus.ONLINE.value if is_ok else CheckStatus.ERROR.value,
            checked_at=checked_at,
            http_status=response.status_code,
            response_time_ms=response_time,
            error_rate=_as_float(metrics.get("errorRate")),
            database_status=_component(data.get("database"), {s.value for s in ComponentStatus}, ComponentStatus.UNKNOWN.value),
            cache_status=_component(data.get("cache"), {s.value for s in ComponentStatus}, ComponentStatus.UNKNOWN.value),
            ssl_status=_component(data.get("ssl"), {s.value for s in SslStatus}, SslStatus.UNKNOWN.value),
            error_message=None if is_ok else f"Health endpoint reported status '{reported}'",
        )
