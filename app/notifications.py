"""Outbound email.

Delivery is fire-and-forget: callers never see a failure, it is only logged.
When no SMTP host is configured the message is logged and dropped.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage

from app.config import settings

logger = logging.getLogger(__name__)


def send_email(to: str, subject: str, body: str) -> bool:
    """Send a plain-text email. Returns True only when the SMTP server accepted it."""
    if not to:
        return False
    if not settings.smtp_host:
        logger.info("SMTP not configured; skipping email to %s (%s)", to, subject)
        return False

    message = EmailMessage()
    message["From"] = settings.mail_from
    message["To"] = to
    message["Subject"] = subject
    message.set_content(body)

    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as smtp:
            if settings.smtp_use_tls:
                smtp.starttls()
            if settings.smtp_username:
                smtp.login(settings.smtp_username, settings.smtp_password or "")
            smtp.send_message(message)
    except (smtplib.SMTPException, OSError) as exc:
        logger.warning("Failed to send email to %s (%s): %s", to, subject, exc)
        return False

    logger.info("Sent email to %s (%s)", to, subject)
    return True
