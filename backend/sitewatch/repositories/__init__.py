"""Persistence interfaces and their SQLAlchemy implementations."""
from .base import AlertRepository, CheckRepository, NotificationRepository, SiteRepository
from .sql import SqlAlertRepository, SqlCheckRepository, SqlNotificationRepository, SqlSiteRepository

__all__ = [
    "AlertRepository",
    "CheckRepository",
    "NotificationRepository",
    "SiteRepository",
    "SqlAlertRepository",
    "SqlCheckRepository",
    "SqlNotificationRepository",
    "SqlSiteRepository",
]
