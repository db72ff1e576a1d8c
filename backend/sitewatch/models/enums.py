"""Enumerations stored as plain strings in the database."""
from enum import Enum


class SiteType(str, Enum):
    BROKER = "broker"
    CONSORTIUM = "consortium"
    INSURANCE = "insurance"
    HOLDING = "holding"
    COMMUNITY = "community"
    OTHER = "other"


class CheckStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    TIMEOUT = "timeout"
    ERROR = "error"
    UNKNOWN = "unknown"


class ComponentStatus(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    UNKNOWN = "unknown"


class SslStatus(str, Enum):
    VALID = "valid"
    EXPIRED = "expired"
    INVALID = "invalid"
    UNKNOWN = "unknown"


class AlertType(str, Enum):
    OFFLINE = "offline"
    HIGH_LATENCY = "high_latency"
    HIGH_ERROR_RATE = "high_error_rate"
    SSL = "ssl"
    QUOTA = "quota"
    DB_ERROR = "db_error"
    CACHE_ERROR = "cache_error"
    CUSTOM = "custom"


_SEVERITY_RANK = {"low": 0, "medium": 1, "high": 2, "critical": 3}


class Severity(str, Enum):
    """Alert severity, ordered from LOW to CRITICAL.

    Comparison operators use the rank, not the string value, so
    ``Severity.CRITICAL > Severity.HIGH`` holds.
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self.value]

    def __lt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


class NotificationChannel(str, Enum):
    EMAIL = "email"
    WHATSAPP = "whatsapp"
    SMS = "sms"
    PUSH = "push"


class NotificationStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    BOUNCED = "bounced"
    READ = "read"


_PERIOD_HOURS = {"24h": 24, "7d": 24 * 7, "30d": 24 * 30}


class ReportPeriod(str, Enum):
    """Trailing windows offered by reports and metrics."""

    DAY = "24h"
    WEEK = "7d"
    MONTH = "30d"

    @property
    def hours(self) -> int:
        return _PERIOD_HOURS[self.value]
