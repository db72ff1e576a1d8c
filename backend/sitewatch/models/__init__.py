"""Database models."""
from .site import Site
from .health_check import HealthCheck
from .alert import Alert
from .notification import Notification

__all__ = ["Site", "HealthCheck", "Alert", "Notification"]
