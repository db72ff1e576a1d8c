"""Pydantic schemas for API request/response models."""
from .site import (
    SiteCreate,
    SiteUpdate,
    SiteResponse,
    SiteTestResponse,
)
from .status import (
    CheckResponse,
    SiteStatusResponse,
    StatusOverview,
    SiteMetricsResponse,
    UptimePoint,
    ResponseTimePoint,
    SiteComparisonResponse,
)
from .alert import (
    AlertResponse,
    AlertReportResponse,
    AlertTrendPoint,
    ResolutionTimesResponse,
)

__all__ = [
    "SiteCreate",
    "SiteUpdate",
    "SiteResponse",
    "SiteTestResponse",
    "CheckResponse",
    "SiteStatusResponse",
    "StatusOverview",
    "SiteMetricsResponse",
    "UptimePoint",
    "ResponseTimePoint",
    "SiteComparisonResponse",
    "AlertResponse",
    "AlertReportResponse",
    "AlertTrendPoint",
    "ResolutionTimesResponse",
]
