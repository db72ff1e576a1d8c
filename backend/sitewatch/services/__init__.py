"""Services for probing, recording, alerting and scheduling."""
from .prober import ProberService, CheckResult
from .recorder import CheckRecorder
from .detector import StatusTransitionDetector, OpenAlert, CloseAlert
from .alert_manager import AlertLifecycleManager, AlertReport, PendingAction
from .notifier import NotificationService, Notifier, NotifierConfig
from .scheduler import SchedulerService
from .monitoring import MonitoringService
from .container import Services, build_services

__all__ = [
    "ProberService",
    "CheckResult",
    "CheckRecorder",
    "StatusTransitionDetector",
    "OpenAlert",
    "CloseAlert",
    "AlertLifecycleManager",
    "AlertReport",
    "PendingAction",
    "NotificationService",
    "Notifier",
    "NotifierConfig",
    "SchedulerService",
    "MonitoringService",
    "Services",
    "build_services",
]
