"""Check recorder - persists probe outcomes and answers history queries."""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, List, Optional

from ..models import HealthCheck
from ..models.enums import CheckStatus, ReportPeriod
from ..repositories.base import CheckRepository
from ..utils.clock import system_clock
from .prober import CheckResult

logger = logging.getLogger(__name__)


@dataclass
class SiteMetrics:
    """Aggregated probe metrics over a trailing window."""
    uptime: float
    average_response_time_ms: float
    average_error_rate: float
    total: int
    online: int
    offline: int


def uptime_of(checks: List[HealthCheck]) -> float:
    """Percentage of online checks, 0 for an empty list."""
    if not checks:
        return 0.0
    online = sum(1 for c in checks if c.status == CheckStatus.ONLINE)
    return (online / len(checks)) * 100


class CheckRecorder:
    """Service over the check repository used by sweeps and the admin API."""

    def __init__(self, checks: CheckRepository, clock=system_clock):
        self._checks = checks
        self._clock = clock

    async def record(self, result: CheckResult) -> HealthCheck:
        check = await self._checks.insert(result.to_model())
        logger.debug(f"Recorded {check.status} for site {check.site_id}")
        return check

    async def latest(self, site_id: int) -> Optional[HealthCheck]:
        return await self._checks.latest(site_id)

    async def history(self, site_id: int, hours: float = 24, limit: Optional[int] = None) -> List[HealthCheck]:
        """Checks in the trailing window, most recent first."""
        return await self._checks.history(site_id, hours, now=self._clock.now(), limit=limit)

    async def uptime_percent(self, site_id: int, hours: float = 24) -> float:
        return uptime_of(await self.history(site_id, hours))

    async def purge(self, older_than: timedelta) -> int:
        """Remove checks recorded before the retention window."""
        return await self._checks.delete_older_than(self._clock.now() - older_than)

    async def metrics(self, site_id: int, period: ReportPeriod = ReportPeriod.DAY) -> SiteMetrics:
        checks = await self.history(site_id, ReportPeriod(period).hours)
        if not checks:
            return SiteMetrics(
                uptime=0.0,
                average_response_time_ms=0.0,
                average_error_rate=0.0,
                total=0,
                online=0,
                offline=0,
            )

        online = sum(1 for c in checks if c.status == CheckStatus.ONLINE)
        return SiteMetrics(
            uptime=round(uptime_of(checks), 2),
            average_response_time_ms=round(sum(c.response_time_ms or 0 for c in checks) / len(checks), 0),
            average_error_rate=round(sum(c.error_rate or 0 for c in checks) / len(checks), 2),
            total=len(checks),
            online=online,
            offline=len(checks) - online,
        )

    def _by_hour(self, checks: List[HealthCheck]) -> Dict[str, List[HealthCheck]]:
        """Group checks per clock hour, oldest hour first."""
        buckets: Dict[str, List[HealthCheck]] = {}
        for check in sorted(checks, key=lambda c: (c.checked_at, c.id)):
            buckets.setdefault(check.checked_at.strftime("%Y-%m-%dT%H:00"), []).append(check)
        return buckets

    async def hourly_uptime(self, site_id: int, period: ReportPeriod = ReportPeriod.DAY) -> List[Dict]:
        """Uptime per clock hour, oldest hour first, for charting."""
        checks = await self.history(site_id, ReportPeriod(period).hours)
        return [
            {"hour": hour, "uptime": round(uptime_of(items), 2), "checks": len(items)}
            for hour, items in self._by_hour(checks).items()
        ]

    async def hourly_response_times(self, site_id: int, period: ReportPeriod = ReportPeriod.DAY) -> List[Dict]:
        """Average, min and max response time per clock hour.

        Checks without a response time (offline probes) are ignored; an hour
        with none of them is left out.
        """
        checks = await self.history(site_id, ReportPeriod(period).hours)

        points = []
        for hour, items in self._by_hour(checks).items():
            times = [c.response_time_ms for c in items if c.response_time_ms is not None]
            if not times:
                continue
            points.append({
                "hour": hour,
                "average_ms": round(sum(times) / len(times)),
                "min_ms": min(times),
                "max_ms": max(times),
            })
        return points

    async def status_distribution(self, site_id: int, period: ReportPeriod = ReportPeriod.DAY) -> Dict[str, int]:
        """Number of checks per status in the period, every status included."""
        counts = {status.value: 0 for status in CheckStatus}
        for check in await self.history(site_id, ReportPeriod(period).hours):
            counts[check.status] = counts.get(check.status, 0) + 1
        return counts
