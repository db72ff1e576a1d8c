"""SQLAlchemy implementations of the persistence interfaces."""
import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from sqlalchemy import select, update, delete, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..errors import DuplicateConfiguration, NotFound
from ..models import Alert, HealthCheck, Notification, Site
from ..models.enums import AlertType, NotificationChannel, Severity
from ..utils.clock import utcnow
from ..utils.db_utils import repository_errors, retry_on_lock

logger = logging.getLogger(__name__)

CHANNEL_FLAGS = {
    NotificationChannel.EMAIL: "email_sent",
    NotificationChannel.WHATSAPP: "whatsapp_sent",
    NotificationChannel.SMS: "sms_sent",
    NotificationChannel.PUSH: "push_sent",
}

UNIQUE_VIOLATION_MARKERS = ("unique constraint", "duplicate key")


def _is_unique_violation(error: IntegrityError) -> bool:
    message = str(error.orig).lower()
    return any(marker in message for marker in UNIQUE_VIOLATION_MARKERS)


class SqlSiteRepository:
    """Site registry backed by the sites table."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def list_active(self) -> List[Site]:
        async with repository_errors("list active sites"):
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Site)
                    .where(Site.active.is_(True), Site.deleted_at.is_(None))
                    .order_by(Site.id)
                )
                return list(result.scalars().all())

    async def list_all(self) -> List[Site]:
        async with repository_errors("list sites"):
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Site).where(Site.deleted_at.is_(None)).order_by(Site.name)
                )
                return list(result.scalars().all())

    async def get_by_id(self, site_id: int) -> Optional[Site]:
        async with repository_errors("get site"):
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Site).where(Site.id == site_id, Site.deleted_at.is_(None))
                )
                return result.scalar_one_or_none()

    async def get_by_id_including_inactive(self, site_id: int) -> Optional[Site]:
        async with repository_errors("get site"):
            async with self._session_factory() as session:
                return await session.get(Site, site_id)

    async def _ensure_unique(self, session, name: Optional[str], url: Optional[str], exclude_id: Optional[int] = None):
        """Raise DuplicateConfiguration if another site already uses name or url."""
        conditions = []
        if name is not None:
            conditions.append(Site.name == name)
        if url is not None:
            conditions.append(Site.url == url)
        if not conditions:
            return

        query = select(Site).where(or_(*conditions))
        if exclude_id is not None:
            query = query.where(Site.id != exclude_id)
        result = await session.execute(query.limit(1))
        existing = result.scalar_one_or_none()
        if existing is None:
            return
        if name is not None and existing.name == name:
            raise DuplicateConfiguration("name", name)
        raise DuplicateConfiguration("url", url)

    async def create(self, **fields) -> Site:
        async with repository_errors("create site"):
            async with self._session_factory() as session:
                await self._ensure_unique(session, fields.get("name"), fields.get("url"))
                site = Site(**fields)
                session.add(site)
                try:
                    await retry_on_lock(session.commit)
                except IntegrityError as e:
                    await session.rollback()
                    if not _is_unique_violation(e):
                        raise
                    # Lost a race against a concurrent create
                    raise DuplicateConfiguration("name or url", f"{fields.get('name')} / {fields.get('url')}")
                logger.info(f"Registered site {site.name} ({site.url})")
                return site

    async def update(self, site_id: int, **changes) -> Site:
        async with repository_errors("update site"):
            async with self._session_factory() as session:
                site = await session.get(Site, site_id)
                if site is None or site.deleted_at is not None:
                    raise NotFound("site", site_id)

                await self._ensure_unique(
                    session,
                    changes.get("name") if changes.get("name") != site.name else None,
                    changes.get("url") if changes.get("url") != site.url else None,
                    exclude_id=site_id,
                )
                for key, value in changes.items():
                    setattr(site, key, value)
                site.updated_at = utcnow()
                try:
                    await retry_on_lock(session.commit)
                except IntegrityError as e:
                    await session.rollback()
                    if not _is_unique_violation(e):
                        raise
                    # Lost a race against a concurrent rename
                    raise DuplicateConfiguration("name or url", f"{changes.get('name')} / {changes.get('url')}")
                return site

    async def soft_delete(self, site_id: int, deleted_at: datetime) -> None:
        async with repository_errors("delete site"):
            async with self._session_factory() as session:
                result = await session.execute(
                    update(Site)
                    .where(Site.id == site_id, Site.deleted_at.is_(None))
                    .values(deleted_at=deleted_at)
                )
                if result.rowcount == 0:
                    raise NotFound("site", site_id)
                await retry_on_lock(session.commit)


class SqlCheckRepository:
    """Health check history backed by the health_checks table."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def insert(self, check: HealthCheck) -> HealthCheck:
        async with repository_errors("insert health check"):
            async with self._session_factory() as session:
                session.add(check)
                await retry_on_lock(session.commit)
                return check

    async def latest(self, site_id: int) -> Optional[HealthCheck]:
        async with repository_errors("latest health check"):
            async with self._session_factory() as session:
                result = await session.execute(
                    select(HealthCheck)
                    .where(HealthCheck.site_id == site_id)
                    .order_by(HealthCheck.checked_at.desc(), HealthCheck.id.desc())
                    .limit(1)
                )
                return result.scalar_one_or_none()

    async def history(
        self,
        site_id: int,
        since_hours: float,
        now: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[HealthCheck]:
        cutoff = (now or utcnow()) - timedelta(hours=since_hours)
        query = (
            select(HealthCheck)
            .where(HealthCheck.site_id == site_id, HealthCheck.checked_at >= cutoff)
            .order_by(HealthCheck.checked_at.desc(), HealthCheck.id.desc())
        )
        if limit is not None:
            query = query.limit(limit)

        async with repository_errors("health check history"):
            async with self._session_factory() as session:
                result = await session.execute(query)
                return list(result.scalars().all())

    async def delete_older_than(self, cutoff: datetime) -> int:
        async with repository_errors("purge health checks"):
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(HealthCheck).where(HealthCheck.checked_at < cutoff)
                )
                await retry_on_lock(session.commit)
                return result.rowcount or 0


class SqlAlertRepository:
    """Alert state backed by the alerts table."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def insert(self, alert: Alert) -> Alert:
        async with repository_errors("insert alert"):
            async with self._session_factory() as session:
                session.add(alert)
                try:
                    await retry_on_lock(session.commit)
                    return alert
                except IntegrityError:
                    await session.rollback()

        # The open (site, type) slot is taken; hand back the holder
        existing = await self.find_open_by_type_and_site(alert.site_id, alert.alert_type)
        if existing is None:
            raise NotFound("open alert", f"{alert.site_id}/{alert.alert_type}")
        logger.info(f"Open {existing.alert_type} alert already exists for site {existing.site_id}")
        return existing

    async def get_by_id(self, alert_id: int) -> Optional[Alert]:
        async with repository_errors("get alert"):
            async with self._session_factory() as session:
                return await session.get(Alert, alert_id)

    async def find_open_by_type_and_site(self, site_id: int, alert_type: AlertType) -> Optional[Alert]:
        async with repository_errors("find open alert"):
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Alert)
                    .where(
                        Alert.site_id == site_id,
                        Alert.alert_type == AlertType(alert_type).value,
                        Alert.resolved.is_(False),
                    )
                    .limit(1)
                )
                return result.scalar_one_or_none()

    async def find_pending_for_processing(self, now: datetime) -> List[Alert]:
        async with repository_errors("find pending alerts"):
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Alert)
                    .where(
                        Alert.resolved.is_(False),
                        Alert.next_retry_at <= now,
                        Alert.email_sent.is_(False),
                    )
                    .order_by(Alert.created_at)
                )
                return list(result.scalars().all())

    async def find_open_critical_older_than(self, cutoff: datetime) -> List[Alert]:
        async with repository_errors("find stale critical alerts"):
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Alert)
                    .where(
                        Alert.resolved.is_(False),
                        Alert.severity == Severity.CRITICAL.value,
                        Alert.created_at < cutoff,
                    )
                    .order_by(Alert.created_at)
                )
                return list(result.scalars().all())

    async def _execute_update(self, operation: str, statement) -> int:
        async with repository_errors(operation):
            async with self._session_factory() as session:
                result = await session.execute(statement)
                await retry_on_lock(session.commit)
                return result.rowcount

    async def update(self, alert_id: int, **values) -> None:
        await self._execute_update(
            "update alert",
            update(Alert).where(Alert.id == alert_id).values(**values),
        )

    async def mark_resolved(self, alert_id: int, resolved_at: datetime, resolved_by: Optional[str]) -> bool:
        count = await self._execute_update(
            "resolve alert",
            update(Alert)
            .where(Alert.id == alert_id, Alert.resolved.is_(False))
            .values(resolved=True, resolved_at=resolved_at, resolved_by=resolved_by),
        )
        return count == 1

    async def claim_channels(self, alert_id: int, channels: Iterable[NotificationChannel]) -> bool:
        flags = [CHANNEL_FLAGS[NotificationChannel(channel)] for channel in channels]
        conditions = [getattr(Alert, flag).is_(False) for flag in flags]
        count = await self._execute_update(
            "claim alert channels",
            update(Alert)
            .where(Alert.id == alert_id, Alert.resolved.is_(False), *conditions)
            .values({flag: True for flag in flags}),
        )
        return count == 1

    async def reschedule_retry(self, alert_id: int, expected: Optional[datetime], next_retry_at: datetime) -> bool:
        if expected is None:
            current = Alert.next_retry_at.is_(None)
        else:
            current = Alert.next_retry_at == expected
        count = await self._execute_update(
            "reschedule alert",
            update(Alert)
            .where(Alert.id == alert_id, Alert.resolved.is_(False), current)
            .values(next_retry_at=next_retry_at),
        )
        return count == 1

    async def increment_attempts(self, alert_id: int, **values) -> None:
        await self._execute_update(
            "count alert attempt",
            update(Alert)
            .where(Alert.id == alert_id)
            .values(notification_attempts=Alert.notification_attempts + 1, **values),
        )

    async def list_active(self, site_id: Optional[int] = None) -> List[Alert]:
        query = select(Alert).where(Alert.resolved.is_(False))
        if site_id is not None:
            query = query.where(Alert.site_id == site_id)

        async with repository_errors("list active alerts"):
            async with self._session_factory() as session:
                result = await session.execute(query.order_by(Alert.created_at.desc()))
                return list(result.scalars().all())

    async def list_history(self, site_id: Optional[int] = None, limit: int = 50) -> List[Alert]:
        query = select(Alert)
        if site_id is not None:
            query = query.where(Alert.site_id == site_id)

        async with repository_errors("alert history"):
            async with self._session_factory() as session:
                result = await session.execute(
                    query.order_by(Alert.created_at.desc(), Alert.id.desc()).limit(limit)
                )
                return list(result.scalars().all())

    async def list_created_since(self, since: datetime, site_id: Optional[int] = None) -> List[Alert]:
        query = select(Alert).where(Alert.created_at >= since)
        if site_id is not None:
            query = query.where(Alert.site_id == site_id)

        async with repository_errors("alerts since"):
            async with self._session_factory() as session:
                result = await session.execute(query.order_by(Alert.created_at))
                return list(result.scalars().all())

    async def list_by_severity(self, severity: Severity, open_only: bool = False, limit: Optional[int] = None) -> List[Alert]:
        query = select(Alert).where(Alert.severity == Severity(severity).value)
        if open_only:
            query = query.where(Alert.resolved.is_(False))
        query = query.order_by(Alert.created_at.desc(), Alert.id.desc())
        if limit is not None:
            query = query.limit(limit)

        async with repository_errors("alerts by severity"):
            async with self._session_factory() as session:
                result = await session.execute(query)
                return list(result.scalars().all())


class SqlNotificationRepository:
    """Delivery log backed by the notifications table."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def insert(self, notification: Notification) -> Notification:
        async with repository_errors("insert notification"):
            async with self._session_factory() as session:
                session.add(notification)
                await retry_on_lock(session.commit)
                return notification

    async def list_for_alert(self, alert_id: int) -> List[Notification]:
        async with repository_errors("list notifications"):
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Notification)
                    .where(Notification.alert_id == alert_id)
                    .order_by(Notification.sent_at, Notification.id)
                )
                return list(result.scalars().all())
