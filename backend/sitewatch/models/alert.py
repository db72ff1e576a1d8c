"""Alert model - open and resolved alert conditions per site."""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Index, text
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.clock import utcnow


class Alert(Base):
    """An alert condition. OPEN until resolved, never deleted."""

    __tablename__ = "alerts"
    __table_args__ = (
        # At most one open alert per (site, type)
        Index(
            "alerts_open_site_type_uq",
            "site_id",
            "alert_type",
            unique=True,
            sqlite_where=text("resolved = 0"),
            postgresql_where=text("resolved = false"),
        ),
        Index("alerts_site_created_idx", "site_id", "created_at"),
        Index("alerts_severity_resolved_idx", "severity", "resolved"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    site_id = Column(Integer, ForeignKey("sites.id"), nullable=False)
    alert_type = Column(String, nullable=False)  # offline, high_latency, high_error_rate, ...
    severity = Column(String, nullable=False)  # low, medium, high, critical

    title = Column(String, nullable=False)
    message = Column(String, nullable=False)

    # Status
    resolved = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    resolved_at = Column(DateTime, nullable=True)
    resolved_by = Column(String, nullable=True)

    # Per channel sent flags
    email_sent = Column(Boolean, nullable=False, default=False)
    whatsapp_sent = Column(Boolean, nullable=False, default=False)
    sms_sent = Column(Boolean, nullable=False, default=False)
    push_sent = Column(Boolean, nullable=False, default=False)

    # Retry tracking
    notification_attempts = Column(Integer, nullable=False, default=0)
    next_retry_at = Column(DateTime, nullable=True)

    # Relationships
    site = relationship("Site", back_populates="alerts")
    notifications = relationship("Notification", back_populates="alert")
