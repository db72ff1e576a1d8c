"""Status and history schemas for the dashboard."""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel


class CheckResponse(BaseModel):
    """Individual health check record."""
    id: int
    status: str  # online, offline, timeout, error, unknown
    http_status: Optional[int] = None
    response_time_ms: Optional[int] = None
    error_rate: Optional[float] = None
    database_status: Optional[str] = None
    cache_status: Optional[str] = None
    ssl_status: Optional[str] = None
    error_message: Optional[str] = None
    checked_at: datetime

    class Config:
        from_attributes = True


class SiteStatusResponse(BaseModel):
    """Latest state of a site."""
    id: int
    name: str
    url: str
    status: str
    uptime_24h: float
    response_time_ms: Optional[int] = None
    error_rate: Optional[float] = None
    checked_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StatusOverview(BaseModel):
    """Dashboard overview data."""
    total: int
    online: int
    offline: int
    degraded: int
    sites: List[SiteStatusResponse]

    class Config:
        from_attributes = True


class SiteMetricsResponse(BaseModel):
    """Aggregated metrics over a period."""
    uptime: float
    average_response_time_ms: float
    average_error_rate: float
    total: int
    online: int
    offline: int

    class Config:
        from_attributes = True


class UptimePoint(BaseModel):
    """Uptime of one clock hour."""
    hour: str
    uptime: float
    checks: int


class ResponseTimePoint(BaseModel):
    """Response time of one clock hour."""
    hour: str
    average_ms: int
    min_ms: int
    max_ms: int


class SiteComparisonResponse(BaseModel):
    """Metrics of one site in a comparison."""
    id: int
    name: str
    uptime: float
    average_response_time_ms: float
    average_error_rate: float
    total: int

    class Config:
        from_attributes = True
