"""Alert schemas for API."""
from datetime import datetime
from typing import Dict, Optional
from pydantic import BaseModel


class AlertResponse(BaseModel):
    """Schema for alert in API responses."""
    id: int
    site_id: int
    alert_type: str
    severity: str
    title: str
    message: str
    resolved: bool
    created_at: datetime
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    email_sent: bool
    whatsapp_sent: bool
    sms_sent: bool
    push_sent: bool
    notification_attempts: int
    next_retry_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AlertReportResponse(BaseModel):
    """Alert statistics over a period."""
    period: str
    total: int
    resolved: int
    active: int
    by_severity: Dict[str, int]
    by_type: Dict[str, int]
    mean_resolution_minutes: int

    class Config:
        from_attributes = True


class AlertTrendPoint(BaseModel):
    """Alerts created in one clock hour."""
    hour: str
    alerts: int


class ResolutionTimesResponse(BaseModel):
    """Resolution time statistics, in minutes."""
    period: str
    resolved: int
    mean_minutes: int
    min_minutes: int
    max_minutes: int

    class Config:
        from_attributes = True
