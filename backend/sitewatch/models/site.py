"""Site model - monitored web sites and their thresholds."""
from sqlalchemy import Column, Integer, String, DateTime, Float, Boolean
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.clock import utcnow


class Site(Base):
    """A monitored web site exposing a JSON health endpoint."""

    __tablename__ = "sites"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False, unique=True)
    url = Column(String, nullable=False, unique=True)
    type = Column(String, nullable=False, default="other")  # broker, consortium, insurance, ...
    description = Column(String, nullable=True)

    # Monitoring
    active = Column(Boolean, nullable=False, default=True)
    check_interval = Column(Integer, nullable=False, default=300)  # seconds
    timeout = Column(Integer, nullable=False, default=30)  # seconds

    # Endpoints
    endpoint_health = Column(String, nullable=False)
    endpoint_webhook = Column(String, nullable=True)

    # Credentials
    api_key = Column(String, nullable=True)
    api_secret = Column(String, nullable=True)

    # Responsible contact
    contact_email = Column(String, nullable=True)
    contact_phone = Column(String, nullable=True)

    # Thresholds
    threshold_response_time_ms = Column(Integer, nullable=False, default=5000)
    threshold_error_rate = Column(Float, nullable=False, default=5.0)  # %
    threshold_uptime = Column(Float, nullable=False, default=95.0)  # %

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime, nullable=True)  # Soft delete

    # Relationships
    checks = relationship("HealthCheck", back_populates="site")
    alerts = relationship("Alert", back_populates="site")
