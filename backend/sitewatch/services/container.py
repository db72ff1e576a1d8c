"""Wires the monitoring core together from configuration."""
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..config import Settings
from ..repositories.sql import SqlAlertRepository, SqlCheckRepository, SqlNotificationRepository, SqlSiteRepository
from ..utils.clock import system_clock
from .alert_manager import AlertLifecycleManager
from .detector import StatusTransitionDetector
from .monitoring import MonitoringService
from .notifier import NotificationService, Notifier, NotifierConfig
from .prober import ProberService
from .recorder import CheckRecorder
from .scheduler import SchedulerService


@dataclass
class Services:
    """Everything the application needs at runtime."""
    monitoring: MonitoringService
    scheduler: SchedulerService
    alert_manager: AlertLifecycleManager
    recorder: CheckRecorder
    prober: ProberService
    notifier: Notifier


def build_services(
    session_factory: async_sessionmaker,
    config: Settings,
    clock=system_clock,
    notifier: Optional[Notifier] = None,
    probe_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Services:
    sites = SqlSiteRepository(session_factory)
    checks = SqlCheckRepository(session_factory)
    alerts = SqlAlertRepository(session_factory)

    if notifier is None:
        notifier = NotificationService(
            SqlNotificationRepository(session_factory),
            NotifierConfig.from_settings(config),
            clock=clock,
        )

    prober = ProberService(transport=probe_transport, clock=clock)
    recorder = CheckRecorder(checks, clock=clock)
    detector = StatusTransitionDetector(alerts)
    alert_manager = AlertLifecycleManager(
        alerts,
        sites,
        checks,
        notifier,
        clock=clock,
        escalation_after=timedelta(minutes=config.escalation_after_minutes),
        retry_delay=timedelta(minutes=config.high_alert_retry_minutes),
        pending_actions=config.pending_actions,
        immediate_critical=config.immediate_critical_notification,
    )
    scheduler = SchedulerService(
        sites,
        prober,
        recorder,
        detector,
        alert_manager,
        clock=clock,
        probe_interval=config.probe_sweep_seconds,
        pending_interval=config.pending_sweep_seconds,
        escalation_interval=config.escalation_sweep_seconds,
        retention_interval=config.retention_sweep_seconds,
        max_concurrent_probes=config.max_concurrent_probes,
        check_retention_days=config.check_retention_days,
        shutdown_grace_seconds=config.shutdown_grace_seconds,
    )
    monitoring = MonitoringService(sites, alerts, recorder, prober, alert_manager, clock=clock)

    return Services(
        monitoring=monitoring,
        scheduler=scheduler,
        alert_manager=alert_manager,
        recorder=recorder,
        prober=prober,
        notifier=notifier,
    )
