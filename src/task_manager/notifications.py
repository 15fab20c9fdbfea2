"""
Outbound email notifications.

Every caller goes through notify_safely(): a failed send is logged and
reported as False, never raised, and never rolls back the change that
triggered it.
"""
from __future__ import annotations

import logging
import smtplib
from abc import ABC, abstractmethod
from datetime import datetime, tzinfo
from email.message import EmailMessage
from functools import lru_cache
from typing import Optional, Tuple
from urllib.parse import urlencode

from .errors import NotificationFailure
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
class Notifier(ABC):
    """Capability to deliver a plain-text email."""

    @abstractmethod
    def send(self, to: str, subject: str, body: str) -> None:
        """Deliver the message or raise NotificationFailure."""


class SmtpNotifier(Notifier):
    """
    Sends mail through an SMTP relay.

    A new connection is opened per message and bounded by `timeout`
    seconds, so a stuck relay cannot stall a reminder sweep.
    """

    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        *,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        timeout: float = 5.0,
    ) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def send(self, to: str, subject: str, body: str) -> None:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(body)

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.username and self.password:
                    smtp.login(self.username, self.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationFailure(f"SMTP delivery to {to} failed: {e}") from e


class LoggingNotifier(Notifier):
    """Development notifier: writes the message to the log instead of sending it."""

    def send(self, to: str, subject: str, body: str) -> None:
        logger.info("Email (not sent, SMTP_HOST unset) to=%s subject=%r\n%s", to, subject, body)


# PUBLIC_INTERFACE
def notify_safely(notifier: Notifier, to: str, subject: str, body: str) -> bool:
    """
    Best-effort delivery. Returns True on success; logs and returns False on
    any failure.
    """
    try:
        notifier.send(to, subject, body)
    except NotificationFailure as e:
        logger.warning("Notification to %s failed: %s", to, e.message)
        return False
    except Exception:
        logger.exception("Unexpected notifier error to=%s subject=%r", to, subject)
        return False
    logger.info("Notification sent to=%s subject=%r", to, subject)
    return True


def _fmt_due(end_date: datetime, tz: tzinfo) -> str:
    return end_date.astimezone(tz).strftime("%A, %d %B %Y %H:%M %Z")


def due_date_message(title: str, end_date: datetime, tz: tzinfo) -> Tuple[str, str]:
    """Subject and body confirming a due date set on create/update."""
    due = _fmt_due(end_date, tz)
    subject = f"Task due date set: {title}"
    body = (
        f'Your task "{title}" is due on {due}.\n\n'
        "You will get a reminder shortly before it is due."
    )
    return subject, body


def reminder_message(title: str, end_date: datetime, days_until_due: int, tz: tzinfo) -> Tuple[str, str]:
    """Subject and body of the scheduled reminder."""
    unit = "day" if days_until_due == 1 else "days"
    due = _fmt_due(end_date, tz)
    subject = f'Reminder: "{title}" is due in {days_until_due} {unit}'
    body = (
        f'Your task "{title}" is due in {days_until_due} {unit}, on {due}.\n\n'
        "Mark it complete or archive it to stop reminders."
    )
    return subject, body


def reset_link(client_url: str, email: str, token: str) -> str:
    return f"{client_url}/reset-password?{urlencode({'token': token, 'email': email})}"


def password_reset_message(link: str, ttl_minutes: int) -> Tuple[str, str]:
    subject = "Reset your Task Manager password"
    body = (
        "We received a request to reset your password.\n\n"
        f"Open this link to choose a new one (valid for {ttl_minutes} minutes):\n{link}\n\n"
        "If you did not ask for this, you can ignore this email."
    )
    return subject, body


def build_notifier(settings: Settings) -> Notifier:
    if not settings.smtp_host:
        return LoggingNotifier()
    return SmtpNotifier(
        settings.smtp_host,
        settings.smtp_port,
        settings.email_from,
        username=settings.smtp_username,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
        timeout=settings.smtp_timeout_seconds,
    )


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_notifier() -> Notifier:
    """Return the process-wide notifier built from settings."""
    return build_notifier(get_settings())
