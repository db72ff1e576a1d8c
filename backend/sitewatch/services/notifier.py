"""Notifier - delivers alert notifications and logs every attempt."""
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

from ..config import Settings, settings
from ..errors import NotificationDeliveryFailure
from ..models import Alert, Notification, Site
from ..models.enums import NotificationChannel, NotificationStatus
from ..repositories.base import NotificationRepository
from ..utils.clock import system_clock
from .email_sender import EmailConfig, EmailSenderService, email_sender_service

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Capability used by the alert lifecycle manager. Each call returns success."""

    async def send_critical(self, alert: Alert, site: Site) -> bool:
        ...

    async def send(self, alert: Alert, site: Site, channel: NotificationChannel) -> bool:
        ...

    async def send_recovery(self, alert: Alert, site: Site) -> bool:
        ...

    async def send_escalation(self, alert: Alert, site: Site) -> bool:
        ...


@dataclass
class NotifierConfig:
    """Delivery settings for all channels."""
    email: EmailConfig
    operations_address: str = ""
    whatsapp_webhook_url: str = ""
    sms_webhook_url: str = ""
    push_webhook_url: str = ""

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "NotifierConfig":
        config = config or settings
        return cls(
            email=EmailConfig(
                host=config.smtp_host,
                port=config.smtp_port,
                username=config.smtp_username,
                password=config.smtp_password,
                use_tls=config.smtp_use_tls,
                from_address=config.alert_email_from,
            ),
            operations_address=config.alert_email,
            whatsapp_webhook_url=config.whatsapp_webhook_url,
            sms_webhook_url=config.sms_webhook_url,
            push_webhook_url=config.push_webhook_url,
        )


class NotificationService:
    """Notifier sending email over SMTP and other channels through gateway webhooks."""

    def __init__(
        self,
        notifications: NotificationRepository,
        config: NotifierConfig,
        email_sender: EmailSenderService = email_sender_service,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock=system_clock,
    ):
        self._notifications = notifications
        self._config = config
        self._email_sender = email_sender
        self._transport = transport
        self._clock = clock

    # Recipients

    def _recipient(self, site: Site, channel: NotificationChannel) -> str:
        if channel in (NotificationChannel.WHATSAPP, NotificationChannel.SMS):
            return site.contact_phone or ""
        if channel == NotificationChannel.EMAIL:
            return site.contact_email or self._config.operations_address
        # Push goes to every device registered with the gateway
        return "all-devices"

    # Templates

    def _build_body(self, heading: str, alert: Alert, site: Site, action: Optional[str] = None) -> str:
        lines = [
            heading,
            "=" * 40,
            "",
            f"Site: {site.name}",
            f"URL: {site.url}",
            f"Alert: {alert.title}",
            f"Type: {alert.alert_type}",
            f"Severity: {str(alert.severity).upper()}",
            f"Details: {alert.message}",
            f"Raised at: {alert.created_at.strftime('%Y-%m-%d %H:%M:%S UTC') if alert.created_at else '-'}",
        ]
        if action:
            lines.append("")
            lines.append(action)
        lines.append("")
        lines.append("--")
        lines.append("Sitewatch Monitoring System")
        return "\n".join(lines)

    # Delivery

    async def _post_webhook(self, url: str, payload: dict):
        try:
            async with httpx.AsyncClient(timeout=10, transport=self._transport) as client:
                response = await client.post(url, json=payload)
        except httpx.HTTPError as e:
            raise NotificationDeliveryFailure(f"Gateway unreachable: {e}") from e
        if response.status_code >= 400:
            raise NotificationDeliveryFailure(f"Gateway returned {response.status_code}")

    async def _dispatch(self, channel: NotificationChannel, recipient: str, subject: str, body: str, alert: Alert):
        if not recipient:
            raise NotificationDeliveryFailure(f"No {channel.value} recipient")

        if channel == NotificationChannel.EMAIL:
            await self._email_sender.send_email(self._config.email, recipient, subject, body)
            return

        url = {
            NotificationChannel.WHATSAPP: self._config.whatsapp_webhook_url,
            NotificationChannel.SMS: self._config.sms_webhook_url,
            NotificationChannel.PUSH: self._config.push_webhook_url,
        }[channel]
        if not url:
            raise NotificationDeliveryFailure(f"{channel.value} channel not configured")

        await self._post_webhook(url, {
            "channel": channel.value,
            "recipient": recipient,
            "subject": subject,
            "body": body,
            "alert_id": alert.id,
            "severity": alert.severity,
            "timestamp": self._clock.now().isoformat() + "Z",
        })

    async def _deliver(
        self,
        alert: Alert,
        channel: NotificationChannel,
        recipient: str,
        subject: str,
        body: str,
    ) -> bool:
        """Attempt one delivery and record it, whatever the outcome."""
        status = NotificationStatus.SENT
        error = None
        try:
            await self._dispatch(channel, recipient, subject, body, alert)
            logger.info(f"Sent {channel.value} notification for alert {alert.id}: {subject}")
        except NotificationDeliveryFailure as e:
            status = NotificationStatus.FAILED
            error = str(e)
            logger.warning(f"Failed {channel.value} notification for alert {alert.id}: {e}")

        await self._notifications.insert(Notification(
            alert_id=alert.id,
            channel=channel.value,
            recipient=recipient or "unassigned",
            subject=subject,
            body=body,
            status=status.value,
            error_message=error,
            sent_at=self._clock.now(),
        ))
        return status == NotificationStatus.SENT

    async def send_critical(self, alert: Alert, site: Site) -> bool:
        """Red flag: email to operations plus WhatsApp to the responsible contact."""
        subject = f"RED FLAG: {site.name} - {alert.title}"
        body = self._build_body(
            "Sitewatch RED FLAG - CRITICAL ALERT",
            alert,
            site,
            action="Open the monitoring dashboard and investigate immediately.",
        )
        email_ok = await self._deliver(
            alert,
            NotificationChannel.EMAIL,
            self._config.operations_address or site.contact_email or "",
            subject,
            body,
        )
        whatsapp_ok = await self._deliver(
            alert,
            NotificationChannel.WHATSAPP,
            self._recipient(site, NotificationChannel.WHATSAPP),
            subject,
            body,
        )
        return email_ok and whatsapp_ok

    async def send(self, alert: Alert, site: Site, channel: NotificationChannel) -> bool:
        channel = NotificationChannel(channel)
        subject = f"Alert: {site.name} - {alert.title}"
        body = self._build_body("Sitewatch Alert", alert, site)
        return await self._deliver(alert, channel, self._recipient(site, channel), subject, body)

    async def send_recovery(self, alert: Alert, site: Site) -> bool:
        subject = f"Recovered: {site.name}"
        body = self._build_body("Sitewatch Recovery", alert, site, action=f"The problem was resolved: {alert.title}")
        return await self._deliver(
            alert,
            NotificationChannel.EMAIL,
            self._recipient(site, NotificationChannel.EMAIL),
            subject,
            body,
        )

    async def send_escalation(self, alert: Alert, site: Site) -> bool:
        subject = f"ESCALATION: {site.name} - {alert.title}"
        body = self._build_body(
            "Sitewatch ESCALATION - critical alert still unresolved",
            alert,
            site,
            action=f"Unresolved after {alert.notification_attempts} notification attempt(s).",
        )
        return await self._deliver(
            alert,
            NotificationChannel.EMAIL,
            self._config.operations_address or site.contact_email or "",
            subject,
            body,
        )
