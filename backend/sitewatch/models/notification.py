"""Notification model - log of delivery attempts."""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.clock import utcnow


class Notification(Base):
    """One delivery attempt of an alert on one channel."""

    __tablename__ = "notifications"
    __table_args__ = (
        Index("notifications_alert_sent_idx", "alert_id", "sent_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    alert_id = Column(Integer, ForeignKey("alerts.id"), nullable=False)
    channel = Column(String, nullable=False)  # email, whatsapp, sms, push
    recipient = Column(String, nullable=False)
    subject = Column(String, nullable=True)
    body = Column(String, nullable=False)
    status = Column(String, nullable=False, default="sent")  # sent, failed, bounced, read
    error_message = Column(String, nullable=True)
    sent_at = Column(DateTime, nullable=False, default=utcnow)

    alert = relationship("Alert", back_populates="notifications")
