"""Alert lifecycle manager - owns the OPEN -> RESOLVED state machine.

An alert is created OPEN and ends RESOLVED; a resolved alert is never
re-opened, a recurring condition creates a new row. Every state change is a
single conditional UPDATE in the alert repository, so two sweeps racing on
the same alert cannot both send its critical notification or both resolve it.
Notifications are sent after the state change is committed; a failed delivery
is logged by the notifier and never rolls the change back.
"""
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Dict, List, Mapping, Optional

from ..errors import NotFound
from ..models import Alert, HealthCheck, Site
from ..models.enums import AlertType, CheckStatus, NotificationChannel, ReportPeriod, Severity
from ..repositories.base import AlertRepository, CheckRepository, SiteRepository
from ..utils.clock import system_clock
from .detector import AlertIntent, CloseAlert, OpenAlert
from .notifier import Notifier

logger = logging.getLogger(__name__)

CRITICAL_CHANNELS = (NotificationChannel.EMAIL, NotificationChannel.WHATSAPP)


class PendingAction(str, Enum):
    """What the pending sweep does with a due alert."""

    NOTIFY = "notify"  # critical notification path
    RECHECK = "recheck"  # push while the condition holds, auto-resolve once it clears
    IGNORE = "ignore"


DEFAULT_PENDING_ACTIONS = {
    Severity.CRITICAL: PendingAction.NOTIFY,
    Severity.HIGH: PendingAction.RECHECK,
    Severity.MEDIUM: PendingAction.IGNORE,
    Severity.LOW: PendingAction.IGNORE,
}


@dataclass
class AlertReport:
    """Alert counts over a trailing window."""
    period: str
    total: int
    resolved: int
    active: int
    by_severity: Dict[str, int]
    by_type: Dict[str, int] = field(default_factory=dict)
    mean_resolution_minutes: int = 0


@dataclass
class ResolutionTimes:
    """How long resolved alerts stayed open, in minutes."""
    period: str
    resolved: int = 0
    mean_minutes: int = 0
    min_minutes: int = 0
    max_minutes: int = 0


def _resolution_minutes(alerts: List[Alert]) -> List[float]:
    return [
        (a.resolved_at - a.created_at).total_seconds() / 60
        for a in alerts
        if a.resolved and a.resolved_at is not None
    ]


class AlertLifecycleManager:
    """Creates, retries, escalates and resolves alerts."""

    def __init__(
        self,
        alerts: AlertRepository,
        sites: SiteRepository,
        checks: CheckRepository,
        notifier: Notifier,
        clock=system_clock,
        escalation_after: timedelta = timedelta(minutes=30),
        retry_delay: timedelta = timedelta(minutes=5),
        pending_actions: Optional[Mapping[str, str]] = None,
        immediate_critical: bool = True,
    ):
        self._alerts = alerts
        self._sites = sites
        self._checks = checks
        self._notifier = notifier
        self._clock = clock
        self.escalation_after = escalation_after
        self.retry_delay = retry_delay
        self.immediate_critical = immediate_critical
        # Validated eagerly so a bad configuration fails at startup
        self._pending_actions = {
            AlertType(alert_type).value: PendingAction(action)
            for alert_type, action in (pending_actions or {}).items()
        }

    # Creation

    async def open(self, site: Site, intent: OpenAlert) -> Alert:
        """Insert a new OPEN alert and start its notification handling."""
        now = self._clock.now()
        alert = Alert(
            site_id=site.id,
            alert_type=AlertType(intent.alert_type).value,
            severity=Severity(intent.severity).value,
            title=intent.title,
            message=intent.message,
            resolved=False,
            created_at=now,
            email_sent=False,
            whatsapp_sent=False,
            sms_sent=False,
            push_sent=False,
            notification_attempts=0,
            next_retry_at=now,
        )
        stored = await self._alerts.insert(alert)
        if stored is not alert:
            # Another detection already holds the open slot for this condition
            return stored

        logger.info(f"Opened {stored.severity} {stored.alert_type} alert {stored.id} for {site.name}")

        if stored.severity == Severity.CRITICAL and self.immediate_critical:
            await self._notify_critical(stored, site)
        return stored

    async def apply(self, site: Site, intents: List[AlertIntent]) -> List[Alert]:
        """Carry out detector intents for one site."""
        touched = []
        for intent in intents:
            if isinstance(intent, OpenAlert):
                touched.append(await self.open(site, intent))
            elif isinstance(intent, CloseAlert):
                closed = await self.close(site, intent.alert_type)
                if closed is not None:
                    touched.append(closed)
        return touched

    # Notification paths

    async def _notify_critical(self, alert: Alert, site: Site) -> bool:
        """Send the critical notification once, whoever gets here first."""
        if not await self._alerts.claim_channels(alert.id, CRITICAL_CHANNELS):
            logger.debug(f"Critical notification for alert {alert.id} already claimed")
            return False
        alert.email_sent = True
        alert.whatsapp_sent = True
        await self._notifier.send_critical(alert, site)
        return True

    def pending_action(self, alert: Alert) -> PendingAction:
        configured = self._pending_actions.get(alert.alert_type)
        if configured is not None:
            return configured
        return DEFAULT_PENDING_ACTIONS[Severity(alert.severity)]

    def _condition_holds(self, alert: Alert, site: Site, latest: Optional[HealthCheck]) -> bool:
        """Whether the latest check still shows the problem behind the alert."""
        if latest is None:
            # Nothing observed since, keep the alert open
            return True
        if latest.status != CheckStatus.ONLINE:
            return True
        if alert.alert_type == AlertType.HIGH_LATENCY:
            return latest.response_time_ms is not None and latest.response_time_ms > site.threshold_response_time_ms
        if alert.alert_type == AlertType.HIGH_ERROR_RATE:
            return latest.error_rate is not None and latest.error_rate > float(site.threshold_error_rate)
        return False

    async def _recheck(self, alert: Alert, site: Site, now) -> None:
        latest = await self._checks.latest(site.id)
        if not self._condition_holds(alert, site, latest):
            logger.info(f"Condition behind alert {alert.id} cleared, auto-resolving")
            await self._resolve(alert, site, resolver_id=None)
            return

        # Claim this retry slot before sending so a concurrent sweep skips it
        claimed = await self._alerts.reschedule_retry(alert.id, alert.next_retry_at, now + self.retry_delay)
        if not claimed:
            return
        await self._notifier.send(alert, site, NotificationChannel.PUSH)
        await self._alerts.increment_attempts(alert.id, push_sent=True)

    async def process_pending(self, now=None) -> int:
        """Handle open alerts whose retry time has come. Returns how many were acted on."""
        now = now or self._clock.now()
        pending = await self._alerts.find_pending_for_processing(now)

        handled = 0
        for alert in pending:
            action = self.pending_action(alert)
            if action == PendingAction.IGNORE:
                continue
            try:
                site = await self._sites.get_by_id_including_inactive(alert.site_id)
                if site is None:
                    logger.warning(f"Alert {alert.id} references missing site {alert.site_id}")
                    continue
                if action == PendingAction.NOTIFY:
                    await self._notify_critical(alert, site)
                else:
                    await self._recheck(alert, site, now)
                handled += 1
            except Exception as e:
                logger.error(f"Error processing pending alert {alert.id}: {e}")

        if handled:
            logger.info(f"Processed {handled} pending alert(s)")
        return handled

    async def escalate(self, now=None) -> int:
        """Re-notify operations about critical alerts open longer than the threshold."""
        now = now or self._clock.now()
        stale = await self._alerts.find_open_critical_older_than(now - self.escalation_after)

        escalated = 0
        for alert in stale:
            try:
                site = await self._sites.get_by_id_including_inactive(alert.site_id)
                if site is None:
                    logger.warning(f"Alert {alert.id} references missing site {alert.site_id}")
                    continue
                await self._notifier.send_escalation(alert, site)
                await self._alerts.increment_attempts(alert.id)
                escalated += 1
            except Exception as e:
                logger.error(f"Error escalating alert {alert.id}: {e}")

        if escalated:
            logger.info(f"Escalated {escalated} critical alert(s)")
        return escalated

    # Resolution

    async def _resolve(self, alert: Alert, site: Optional[Site], resolver_id: Optional[str]) -> bool:
        now = self._clock.now()
        if not await self._alerts.mark_resolved(alert.id, now, resolver_id):
            return False

        alert.resolved = True
        alert.resolved_at = now
        alert.resolved_by = resolver_id
        logger.info(f"Resolved {alert.alert_type} alert {alert.id} (by {resolver_id or 'system'})")

        if site is None:
            site = await self._sites.get_by_id_including_inactive(alert.site_id)
        if site is not None:
            await self._notifier.send_recovery(alert, site)
        return True

    async def close(self, site: Site, alert_type: AlertType) -> Optional[Alert]:
        """Auto-resolve the open alert of a type once its condition cleared."""
        alert = await self._alerts.find_open_by_type_and_site(site.id, alert_type)
        if alert is None:
            return None
        await self._resolve(alert, site, resolver_id=None)
        return alert

    async def resolve(self, alert_id: int, resolver_id: Optional[str] = None) -> Alert:
        """Resolve an alert on behalf of a user.

        Raises NotFound for an unknown id. Resolving a resolved alert is a
        no-op and sends nothing.
        """
        alert = await self._alerts.get_by_id(alert_id)
        if alert is None:
            raise NotFound("alert", alert_id)
        if alert.resolved:
            logger.debug(f"Alert {alert_id} already resolved")
            return alert

        await self._resolve(alert, None, resolver_id)
        return await self._alerts.get_by_id(alert_id)

    # Reporting

    async def report(self, period: ReportPeriod = ReportPeriod.DAY) -> AlertReport:
        period = ReportPeriod(period)
        since = self._clock.now() - timedelta(hours=period.hours)
        alerts = await self._alerts.list_created_since(since)

        resolved = [a for a in alerts if a.resolved]
        by_severity = {severity.value: 0 for severity in Severity}
        by_type: Dict[str, int] = {}
        for alert in alerts:
            by_severity[alert.severity] = by_severity.get(alert.severity, 0) + 1
            by_type[alert.alert_type] = by_type.get(alert.alert_type, 0) + 1

        durations = _resolution_minutes(resolved)
        mean_minutes = round(sum(durations) / len(durations)) if durations else 0

        return AlertReport(
            period=period.value,
            total=len(alerts),
            resolved=len(resolved),
            active=len(alerts) - len(resolved),
            by_severity=by_severity,
            by_type=by_type,
            mean_resolution_minutes=mean_minutes,
        )

    async def trend(self, period: ReportPeriod = ReportPeriod.DAY) -> List[Dict]:
        """Alerts created per clock hour, oldest hour first."""
        period = ReportPeriod(period)
        since = self._clock.now() - timedelta(hours=period.hours)

        buckets: Dict[str, int] = {}
        for alert in sorted(await self._alerts.list_created_since(since), key=lambda a: (a.created_at, a.id)):
            hour = alert.created_at.strftime("%Y-%m-%dT%H:00")
            buckets[hour] = buckets.get(hour, 0) + 1
        return [{"hour": hour, "alerts": count} for hour, count in buckets.items()]

    async def resolution_times(
        self, period: ReportPeriod = ReportPeriod.WEEK, site_id: Optional[int] = None
    ) -> ResolutionTimes:
        """Mean, fastest and slowest resolution of alerts raised in the period."""
        period = ReportPeriod(period)
        since = self._clock.now() - timedelta(hours=period.hours)
        alerts = await self._alerts.list_created_since(since, site_id=site_id)

        minutes = _resolution_minutes(alerts)
        if not minutes:
            return ResolutionTimes(period=period.value)
        return ResolutionTimes(
            period=period.value,
            resolved=len(minutes),
            mean_minutes=round(sum(minutes) / len(minutes)),
            min_minutes=round(min(minutes)),
            max_minutes=round(max(minutes)),
        )

    async def open_counts_by_type(self) -> Dict[str, int]:
        """Open alerts per alert type, every type included."""
        counts = {alert_type.value: 0 for alert_type in AlertType}
        for alert in await self._alerts.list_active():
            counts[alert.alert_type] = counts.get(alert.alert_type, 0) + 1
        return counts
