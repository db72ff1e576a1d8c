"""Alert API endpoints."""
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from ..models.enums import ReportPeriod, Severity
from ..schemas.alert import AlertResponse, AlertReportResponse, AlertTrendPoint, ResolutionTimesResponse
from ..services.monitoring import MonitoringService
from .deps import get_monitoring

router = APIRouter(prefix="/api/alerts", tags=["alerts"])


@router.get("/active", response_model=List[AlertResponse])
async def get_active_alerts(
    site_id: Optional[int] = None,
    monitoring: MonitoringService = Depends(get_monitoring),
):
    """Open alerts, newest first."""
    return await monitoring.get_active_alerts(site_id)


@router.get("/history", response_model=List[AlertResponse])
async def get_alert_history(
    site_id: Optional[int] = None,
    limit: int = Query(50, ge=1, le=1000),
    monitoring: MonitoringService = Depends(get_monitoring),
):
    return await monitoring.get_alert_history(site_id, limit)


@router.get("/report", response_model=AlertReportResponse)
async def get_alert_report(
    period: ReportPeriod = Query(ReportPeriod.DAY),
    monitoring: MonitoringService = Depends(get_monitoring),
):
    """Alert statistics for the last 24h, 7d or 30d."""
    return await monitoring.get_report(period)


@router.get("/trend", response_model=List[AlertTrendPoint])
async def get_alert_trend(
    period: ReportPeriod = Query(ReportPeriod.DAY),
    monitoring: MonitoringService = Depends(get_monitoring),
):
    """Alerts created per hour, oldest first."""
    return await monitoring.get_alert_trend(period)


@router.get("/resolution-time", response_model=ResolutionTimesResponse)
async def get_resolution_times(
    period: ReportPeriod = Query(ReportPeriod.WEEK),
    site_id: Optional[int] = None,
    monitoring: MonitoringService = Depends(get_monitoring),
):
    return await monitoring.get_resolution_times(period, site_id)


@router.get("/critical", response_model=List[AlertResponse])
async def get_critical_alerts(monitoring: MonitoringService = Depends(get_monitoring)):
    """Open critical alerts."""
    return await monitoring.get_critical_alerts()


@router.get("/severity/{severity}", response_model=List[AlertResponse])
async def get_alerts_by_severity(
    severity: Severity,
    limit: int = Query(50, ge=1, le=1000),
    monitoring: MonitoringService = Depends(get_monitoring),
):
    return await monitoring.get_alerts_by_severity(severity, limit)


@router.get("/by-type", response_model=Dict[str, int])
async def get_open_counts_by_type(monitoring: MonitoringService = Depends(get_monitoring)):
    """Open alerts counted per alert type."""
    return await monitoring.get_open_counts_by_type()


@router.post("/{alert_id}/resolve", response_model=AlertResponse)
async def resolve_alert(
    alert_id: int,
    x_user_id: Optional[str] = Header(None),
    monitoring: MonitoringService = Depends(get_monitoring),
):
    """Resolve an alert manually. Resolving twice is a no-op."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header required")
    return await monitoring.resolve_alert(alert_id, x_user_id)
