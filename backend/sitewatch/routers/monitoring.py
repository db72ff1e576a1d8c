"""Status, history and metrics endpoints for the dashboard."""
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from ..models.enums import ReportPeriod
from ..schemas.status import (
    CheckResponse,
    ResponseTimePoint,
    SiteComparisonResponse,
    SiteMetricsResponse,
    StatusOverview,
    UptimePoint,
)
from ..services.monitoring import MonitoringService
from .deps import get_monitoring

router = APIRouter(prefix="/api/monitoring", tags=["monitoring"])


@router.get("/status", response_model=StatusOverview)
async def get_status_overview(monitoring: MonitoringService = Depends(get_monitoring)):
    """Latest status and 24h uptime of every site."""
    return await monitoring.get_site_status_summary()


@router.get("/sites/{site_id}/history", response_model=List[CheckResponse])
async def get_site_history(
    site_id: int,
    hours: float = Query(24, gt=0, le=24 * 90),
    limit: Optional[int] = Query(None, ge=1, le=10000),
    monitoring: MonitoringService = Depends(get_monitoring),
):
    """Health checks in the trailing window, most recent first."""
    return await monitoring.get_site_history(site_id, hours, limit=limit)


@router.get("/sites/{site_id}/metrics", response_model=SiteMetricsResponse)
async def get_site_metrics(
    site_id: int,
    period: ReportPeriod = Query(ReportPeriod.DAY),
    monitoring: MonitoringService = Depends(get_monitoring),
):
    return await monitoring.get_site_metrics(site_id, period)


@router.get("/sites/{site_id}/uptime", response_model=List[UptimePoint])
async def get_uptime_chart(
    site_id: int,
    period: ReportPeriod = Query(ReportPeriod.DAY),
    monitoring: MonitoringService = Depends(get_monitoring),
):
    """Hourly uptime buckets for charting."""
    return await monitoring.get_uptime_chart(site_id, period)


@router.get("/sites/{site_id}/response-times", response_model=List[ResponseTimePoint])
async def get_response_time_chart(
    site_id: int,
    period: ReportPeriod = Query(ReportPeriod.DAY),
    monitoring: MonitoringService = Depends(get_monitoring),
):
    """Hourly average, min and max response time."""
    return await monitoring.get_response_time_chart(site_id, period)


@router.get("/sites/{site_id}/status-distribution", response_model=Dict[str, int])
async def get_status_distribution(
    site_id: int,
    period: ReportPeriod = Query(ReportPeriod.DAY),
    monitoring: MonitoringService = Depends(get_monitoring),
):
    return await monitoring.get_status_distribution(site_id, period)


@router.get("/compare", response_model=List[SiteComparisonResponse])
async def compare_sites(
    site_ids: List[int] = Query(...),
    period: ReportPeriod = Query(ReportPeriod.DAY),
    monitoring: MonitoringService = Depends(get_monitoring),
):
    """Metrics of several sites side by side, e.g. ?site_ids=1&site_ids=2."""
    return await monitoring.compare_sites(site_ids, period)
