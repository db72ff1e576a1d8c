"""Status transition detector - turns consecutive checks into alert intents.

Each rule is evaluated independently, so a single check may both close the
offline alert and open a latency alert. Rules that open an alert first look
for an open alert of the same type on the site, which keeps detection
idempotent: feeding the same (previous, current) pair twice yields no second
open intent once the first one has been applied.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Union

from ..models import HealthCheck, Site
from ..models.enums import AlertType, CheckStatus, Severity
from ..repositories.base import AlertRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OpenAlert:
    """Decision to raise a new alert."""
    alert_type: AlertType
    severity: Severity
    title: str
    message: str


@dataclass(frozen=True)
class CloseAlert:
    """Decision to resolve the open alert of a type."""
    alert_type: AlertType


AlertIntent = Union[OpenAlert, CloseAlert]


class StatusTransitionDetector:
    """Decides which alert conditions open or close after a check."""

    def __init__(self, alerts: AlertRepository):
        self._alerts = alerts

    async def _has_open(self, site: Site, alert_type: AlertType) -> bool:
        return await self._alerts.find_open_by_type_and_site(site.id, alert_type) is not None

    async def detect(
        self,
        site: Site,
        previous: Optional[HealthCheck],
        current: HealthCheck,
    ) -> List[AlertIntent]:
        intents: List[AlertIntent] = []
        previous_status = previous.status if previous else CheckStatus.UNKNOWN.value

        # online -> offline
        if previous_status == CheckStatus.ONLINE and current.status == CheckStatus.OFFLINE:
            if not await self._has_open(site, AlertType.OFFLINE):
                intents.append(OpenAlert(
                    alert_type=AlertType.OFFLINE,
                    severity=Severity.CRITICAL,
                    title=f"{site.name} is OFFLINE",
                    message=f"Site {site.name} stopped responding. Last error: {current.error_message}",
                ))

        # offline -> online
        if previous_status == CheckStatus.OFFLINE and current.status == CheckStatus.ONLINE:
            if await self._has_open(site, AlertType.OFFLINE):
                intents.append(CloseAlert(alert_type=AlertType.OFFLINE))

        # Slow response
        threshold_ms = site.threshold_response_time_ms
        if current.response_time_ms is not None and current.response_time_ms > threshold_ms:
            if not await self._has_open(site, AlertType.HIGH_LATENCY):
                intents.append(OpenAlert(
                    alert_type=AlertType.HIGH_LATENCY,
                    severity=Severity.MEDIUM,
                    title=f"{site.name} - High response time",
                    message=f"Response time: {current.response_time_ms}ms (limit: {threshold_ms}ms)",
                ))

        # Error rate reported by the site
        threshold_rate = float(site.threshold_error_rate)
        if current.error_rate is not None and current.error_rate > threshold_rate:
            if not await self._has_open(site, AlertType.HIGH_ERROR_RATE):
                intents.append(OpenAlert(
                    alert_type=AlertType.HIGH_ERROR_RATE,
                    severity=Severity.HIGH,
                    title=f"{site.name} - High error rate",
                    message=f"Error rate: {current.error_rate}% (limit: {threshold_rate}%)",
                ))

        if intents:
            logger.debug(f"Site {site.name}: {previous_status} -> {current.status}, intents={intents}")
        return intents
