"""HealthCheck model - one row per probe of a site."""
from sqlalchemy import Column, Integer, String, DateTime, Float, ForeignKey, Index
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.clock import utcnow


class HealthCheck(Base):
    """Immutable outcome of a single health probe."""

    __tablename__ = "health_checks"
    __table_args__ = (
        Index("health_checks_site_checked_idx", "site_id", "checked_at"),
        Index("health_checks_checked_idx", "checked_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    site_id = Column(Integer, ForeignKey("sites.id"), nullable=False)
    status = Column(String, nullable=False)  # online, offline, timeout, error, unknown
    http_status = Column(Integer, nullable=True)
    error_message = Column(String, nullable=True)

    # Metrics
    response_time_ms = Column(Integer, nullable=True)
    error_rate = Column(Float, nullable=True)  # %, as reported by the site

    # Components reported by the site
    database_status = Column(String, nullable=True)  # connected, disconnected, unknown
    cache_status = Column(String, nullable=True)
    ssl_status = Column(String, nullable=True)  # valid, expired, invalid, unknown

    checked_at = Column(DateTime, nullable=False, default=utcnow)

    site = relationship("Site", back_populates="checks")
