"""Persistence interfaces consumed by the monitoring core."""
from datetime import datetime
from typing import Iterable, List, Optional, Protocol

from ..models import Alert, HealthCheck, Notification, Site
from ..models.enums import AlertType, NotificationChannel, Severity


class SiteRepository(Protocol):
    """Registry of monitored sites."""

    async def list_active(self) -> List[Site]:
        """Active, not deleted sites."""

    async def list_all(self) -> List[Site]:
        """All not deleted sites ordered by name."""

    async def get_by_id(self, site_id: int) -> Optional[Site]:
        """A not deleted site."""

    async def get_by_id_including_inactive(self, site_id: int) -> Optional[Site]:
        """A site regardless of its active flag or deletion."""

    async def create(self, **fields) -> Site:
        """Register a site. Raises DuplicateConfiguration on a name or URL clash."""

    async def update(self, site_id: int, **changes) -> Site:
        """Apply changes. Raises NotFound or DuplicateConfiguration."""

    async def soft_delete(self, site_id: int, deleted_at: datetime) -> None:
        """Hide a site from scheduling and listings. Raises NotFound."""


class CheckRepository(Protocol):
    """Append-only store of probe outcomes."""

    async def insert(self, check: HealthCheck) -> HealthCheck:
        ...

    async def latest(self, site_id: int) -> Optional[HealthCheck]:
        ...

    async def history(
        self,
        site_id: int,
        since_hours: float,
        now: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[HealthCheck]:
        """Checks inside the trailing window, newest first."""

    async def delete_older_than(self, cutoff: datetime) -> int:
        """Purge checks recorded before cutoff, returning the number removed."""


class AlertRepository(Protocol):
    """Durable alert state. Every mutation is a single atomic statement."""

    async def insert(self, alert: Alert) -> Alert:
        """Insert an open alert, or return the open alert already holding its (site, type)."""

    async def get_by_id(self, alert_id: int) -> Optional[Alert]:
        ...

    async def find_open_by_type_and_site(self, site_id: int, alert_type: AlertType) -> Optional[Alert]:
        ...

    async def find_pending_for_processing(self, now: datetime) -> List[Alert]:
        """Open alerts due for retry whose email has not been sent."""

    async def find_open_critical_older_than(self, cutoff: datetime) -> List[Alert]:
        ...

    async def update(self, alert_id: int, **values) -> None:
        ...

    async def mark_resolved(self, alert_id: int, resolved_at: datetime, resolved_by: Optional[str]) -> bool:
        """Resolve only if still open. True when this call performed the transition."""

    async def claim_channels(self, alert_id: int, channels: Iterable[NotificationChannel]) -> bool:
        """Set the sent flags of channels only if all of them are unset and the alert is open."""

    async def reschedule_retry(self, alert_id: int, expected: Optional[datetime], next_retry_at: datetime) -> bool:
        """Move next_retry_at only if it still equals expected and the alert is open."""

    async def increment_attempts(self, alert_id: int, **values) -> None:
        ...

    async def list_active(self, site_id: Optional[int] = None) -> List[Alert]:
        ...

    async def list_history(self, site_id: Optional[int] = None, limit: int = 50) -> List[Alert]:
        ...

    async def list_created_since(self, since: datetime, site_id: Optional[int] = None) -> List[Alert]:
        ...

    async def list_by_severity(self, severity: Severity, open_only: bool = False, limit: Optional[int] = None) -> List[Alert]:
        """Alerts of one severity, newest first."""


class NotificationRepository(Protocol):
    """Log of delivery attempts."""

    async def insert(self, notification: Notification) -> Notification:
        ...

    async def list_for_alert(self, alert_id: int) -> List[Notification]:
        ...
