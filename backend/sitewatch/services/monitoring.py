"""Monitoring facade - the operations offered to the admin API."""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from ..errors import NotFound
from ..models import Alert, HealthCheck, Site
from ..models.enums import CheckStatus, ReportPeriod, Severity
from ..repositories.base import AlertRepository, SiteRepository
from ..utils.clock import system_clock
from .alert_manager import AlertLifecycleManager, AlertReport, ResolutionTimes
from .prober import CheckResult, ProberService
from .recorder import CheckRecorder, SiteMetrics

logger = logging.getLogger(__name__)

DEGRADED_STATUSES = (CheckStatus.ERROR, CheckStatus.TIMEOUT)


@dataclass
class SiteStatus:
    """Latest known state of one site."""
    id: int
    name: str
    url: str
    status: str
    uptime_24h: float
    response_time_ms: Optional[int] = None
    error_rate: Optional[float] = None
    checked_at: Optional[datetime] = None


@dataclass
class StatusSummary:
    """Fleet overview for the dashboard."""
    total: int
    online: int
    offline: int
    degraded: int
    sites: List[SiteStatus] = field(default_factory=list)


@dataclass
class SiteComparison:
    """One row of a side-by-side site comparison."""
    id: int
    name: str
    uptime: float
    average_response_time_ms: float
    average_error_rate: float
    total: int


class MonitoringService:
    """Site registry, status and alert operations for the admin API."""

    def __init__(
        self,
        sites: SiteRepository,
        alerts: AlertRepository,
        recorder: CheckRecorder,
        prober: ProberService,
        alert_manager: AlertLifecycleManager,
        clock=system_clock,
    ):
        self._sites = sites
        self._alerts = alerts
        self._recorder = recorder
        self._prober = prober
        self._alert_manager = alert_manager
        self._clock = clock

    # Sites

    async def list_sites(self) -> List[Site]:
        return await self._sites.list_all()

    async def get_site(self, site_id: int) -> Site:
        site = await self._sites.get_by_id(site_id)
        if site is None:
            raise NotFound("site", site_id)
        return site

    async def create_site(self, **fields) -> Site:
        return await self._sites.create(**fields)

    async def update_site(self, site_id: int, **changes) -> Site:
        return await self._sites.update(site_id, **changes)

    async def delete_site(self, site_id: int) -> None:
        await self._sites.soft_delete(site_id, self._clock.now())
        logger.info(f"Site {site_id} deleted")

    async def test_site_now(self, site_id: int) -> CheckResult:
        """Probe a site immediately, outside the schedule. The result is not recorded."""
        site = await self.get_site(site_id)
        return await self._prober.probe(site)

    # Status

    async def get_site_status_summary(self) -> StatusSummary:
        statuses = []
        for site in await self._sites.list_all():
            latest = await self._recorder.latest(site.id)
            uptime = await self._recorder.uptime_percent(site.id, 24)
            statuses.append(SiteStatus(
                id=site.id,
                name=site.name,
                url=site.url,
                status=latest.status if latest else CheckStatus.UNKNOWN.value,
                uptime_24h=round(uptime, 2),
                response_time_ms=latest.response_time_ms if latest else None,
                error_rate=latest.error_rate if latest else None,
                checked_at=latest.checked_at if latest else None,
            ))

        return StatusSummary(
            total=len(statuses),
            online=sum(1 for s in statuses if s.status == CheckStatus.ONLINE),
            offline=sum(1 for s in statuses if s.status == CheckStatus.OFFLINE),
            degraded=sum(1 for s in statuses if s.status in DEGRADED_STATUSES),
            sites=statuses,
        )

    async def get_site_history(self, site_id: int, hours: float = 24, limit: Optional[int] = None) -> List[HealthCheck]:
        await self.get_site(site_id)
        return await self._recorder.history(site_id, hours, limit=limit)

    async def get_site_metrics(self, site_id: int, period: ReportPeriod = ReportPeriod.DAY) -> SiteMetrics:
        await self.get_site(site_id)
        return await self._recorder.metrics(site_id, period)

    async def get_uptime_chart(self, site_id: int, period: ReportPeriod = ReportPeriod.DAY) -> List[Dict]:
        await self.get_site(site_id)
        return await self._recorder.hourly_uptime(site_id, period)

    async def get_response_time_chart(self, site_id: int, period: ReportPeriod = ReportPeriod.DAY) -> List[Dict]:
        await self.get_site(site_id)
        return await self._recorder.hourly_response_times(site_id, period)

    async def get_status_distribution(self, site_id: int, period: ReportPeriod = ReportPeriod.DAY) -> Dict[str, int]:
        await self.get_site(site_id)
        return await self._recorder.status_distribution(site_id, period)

    async def compare_sites(self, site_ids: List[int], period: ReportPeriod = ReportPeriod.DAY) -> List[SiteComparison]:
        """Metrics of several sites side by side. Unknown ids are skipped."""
        rows = []
        for site_id in dict.fromkeys(site_ids):
            site = await self._sites.get_by_id(site_id)
            if site is None:
                logger.debug(f"Skipping unknown site {site_id} in comparison")
                continue
            metrics = await self._recorder.metrics(site_id, period)
            rows.append(SiteComparison(
                id=site.id,
                name=site.name,
                uptime=metrics.uptime,
                average_response_time_ms=metrics.average_response_time_ms,
                average_error_rate=metrics.average_error_rate,
                total=metrics.total,
            ))
        return rows

    # Alerts

    async def resolve_alert(self, alert_id: int, resolver_id: Optional[str]) -> Alert:
        return await self._alert_manager.resolve(alert_id, resolver_id)

    async def get_active_alerts(self, site_id: Optional[int] = None) -> List[Alert]:
        return await self._alerts.list_active(site_id)

    async def get_alert_history(self, site_id: Optional[int] = None, limit: int = 50) -> List[Alert]:
        return await self._alerts.list_history(site_id, limit)

    async def get_report(self, period: ReportPeriod = ReportPeriod.DAY) -> AlertReport:
        return await self._alert_manager.report(period)

    async def get_alert_trend(self, period: ReportPeriod = ReportPeriod.DAY) -> List[Dict]:
        return await self._alert_manager.trend(period)

    async def get_resolution_times(
        self, period: ReportPeriod = ReportPeriod.WEEK, site_id: Optional[int] = None
    ) -> ResolutionTimes:
        return await self._alert_manager.resolution_times(period, site_id)

    async def get_alerts_by_severity(self, severity: Severity, limit: int = 50) -> List[Alert]:
        return await self._alerts.list_by_severity(severity, limit=limit)

    async def get_critical_alerts(self) -> List[Alert]:
        """Open critical alerts, newest first."""
        return await self._alerts.list_by_severity(Severity.CRITICAL, open_only=True)

    async def get_open_counts_by_type(self) -> Dict[str, int]:
        return await self._alert_manager.open_counts_by_type()
