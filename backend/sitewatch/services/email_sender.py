"""Email sender service - delivers notifications via SMTP."""
import asyncio
import logging
import smtplib
import ssl
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import List
from dataclasses import dataclass

from ..errors import NotificationDeliveryFailure

logger = logging.getLogger(__name__)


@dataclass
class EmailConfig:
    """SMTP configuration for sending emails."""
    host: str
    port: int
    username: str
    password: str
    use_tls: bool = True
    from_address: str = ""


class EmailSenderService:
    """Service for sending notification emails via SMTP."""

    def _parse_recipients(self, to_address: str) -> List[str]:
        """Parse comma-separated email addresses into a list."""
        if not to_address:
            return []
        return [addr.strip() for addr in to_address.split(",") if addr.strip()]

    async def send_email(
        self,
        config: EmailConfig,
        to_address: str,
        subject: str,
        body: str,
    ) -> None:
        """Send an email using SMTP.

        Supports comma-separated list of recipients in to_address.
        Raises NotificationDeliveryFailure when the message is not accepted.
        """
        if not config.host:
            raise NotificationDeliveryFailure("Email not configured - missing SMTP host")

        recipients = self._parse_recipients(to_address)
        if not recipients:
            raise NotificationDeliveryFailure("No valid recipients")

        # smtplib blocks, keep it off the event loop
        await asyncio.to_thread(self._deliver, config, recipients, subject, body)
        logger.info(f"Email sent successfully to {len(recipients)} recipient(s): {subject}")

    def _deliver(self, config: EmailConfig, recipients: List[str], subject: str, body: str) -> None:
        from_addr = config.from_address or config.username

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = from_addr
        msg["To"] = ", ".join(recipients)
        msg.attach(MIMEText(body, "plain"))

        try:
            with smtplib.SMTP(config.host, config.port, timeout=30) as server:
                if config.use_tls:
                    server.starttls(context=ssl.create_default_context())
                if config.username and config.password:
                    server.login(config.username, config.password)
                server.sendmail(from_addr, recipients, msg.as_string())
        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP authentication failed for user '{config.username}': {e}")
            raise NotificationDeliveryFailure(f"SMTP authentication failed: {e}") from e
        except smtplib.SMTPRecipientsRefused as e:
            logger.error(f"Recipients refused by server: {e}")
            raise NotificationDeliveryFailure(f"Recipients refused: {e}") from e
        except smtplib.SMTPException as e:
            logger.error(f"SMTP error: {type(e).__name__}: {e}")
            raise NotificationDeliveryFailure(f"SMTP error: {e}") from e
        except (ConnectionRefusedError, TimeoutError, OSError) as e:
            logger.error(f"Cannot reach {config.host}:{config.port}: {e}")
            raise NotificationDeliveryFailure(f"SMTP connection failed: {e}") from e


# Global instance
email_sender_service = EmailSenderService()
