"""Site schemas for API."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, field_validator


SITE_TYPE_PATTERN = "^(broker|consortium|insurance|holding|community|other)$"

REQUIRED_SITE_FIELDS = (
    "name",
    "url",
    "type",
    "active",
    "endpoint_health",
    "check_interval",
    "timeout",
    "threshold_response_time_ms",
    "threshold_error_rate",
    "threshold_uptime",
)


class SiteCreate(BaseModel):
    """Schema for registering a new site."""
    name: str = Field(..., min_length=3, max_length=255)
    url: str = Field(..., pattern="^https?://")
    type: str = Field(default="other", pattern=SITE_TYPE_PATTERN)
    description: Optional[str] = Field(None, max_length=500)
    endpoint_health: str = Field(..., pattern="^https?://")
    endpoint_webhook: Optional[str] = Field(None, pattern="^https?://")
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    contact_email: Optional[str] = Field(None, pattern="^[^@\\s]+@[^@\\s]+$")
    contact_phone: Optional[str] = None
    check_interval: int = Field(default=300, ge=30, le=86400)
    timeout: int = Field(default=30, ge=1, le=300)
    threshold_response_time_ms: int = Field(default=5000, ge=1)
    threshold_error_rate: float = Field(default=5.0, ge=0, le=100)
    threshold_uptime: float = Field(default=95.0, ge=0, le=100)


class SiteUpdate(BaseModel):
    """Schema for updating a site. Only provided fields change.

    Optional here means "may be omitted". Columns that cannot be empty reject
    an explicit null.
    """
    name: Optional[str] = Field(None, min_length=3, max_length=255)
    url: Optional[str] = Field(None, pattern="^https?://")
    type: Optional[str] = Field(None, pattern=SITE_TYPE_PATTERN)
    description: Optional[str] = Field(None, max_length=500)
    active: Optional[bool] = None
    endpoint_health: Optional[str] = Field(None, pattern="^https?://")
    endpoint_webhook: Optional[str] = Field(None, pattern="^https?://")
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    contact_email: Optional[str] = Field(None, pattern="^[^@\\s]+@[^@\\s]+$")
    contact_phone: Optional[str] = None
    check_interval: Optional[int] = Field(None, ge=30, le=86400)
    timeout: Optional[int] = Field(None, ge=1, le=300)
    threshold_response_time_ms: Optional[int] = Field(None, ge=1)
    threshold_error_rate: Optional[float] = Field(None, ge=0, le=100)
    threshold_uptime: Optional[float] = Field(None, ge=0, le=100)

    @field_validator(*REQUIRED_SITE_FIELDS, mode="before")
    @classmethod
    def reject_null(cls, value):
        if value is None:
            raise ValueError("may not be null")
        return value


class SiteResponse(BaseModel):
    """Schema for site in API responses. Credentials are never returned."""
    id: int
    name: str
    url: str
    type: str
    description: Optional[str] = None
    active: bool
    endpoint_health: str
    endpoint_webhook: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    check_interval: int
    timeout: int
    threshold_response_time_ms: int
    threshold_error_rate: float
    threshold_uptime: float
    created_at: datetime

    class Config:
        from_attributes = True


class SiteTestResponse(BaseModel):
    """Response from probing a site on demand."""
    success: bool
    status: str
    http_status: Optional[int] = None
    response_time_ms: Optional[int] = None
    error_message: Optional[str] = None
