"""Mini-README: outbound email is fire-and-forget.

Nothing is sent without an SMTP host, and SMTP failures are logged rather
than raised to the workflow that triggered the email.
"""

import smtplib

from app import notifications
from app.config import settings


class FakeSMTP:
    sent: list = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, username, password):
        pass

    def send_message(self, message):
        FakeSMTP.sent.append(message)


def test_email_is_skipped_without_smtp_host(monkeypatch) -> None:
    monkeypatch.setattr(settings, "smtp_host", None)

    assert notifications.send_email("eve@example.com", "Hi", "Body") is False


def test_email_is_sent_through_smtp(monkeypatch) -> None:
    FakeSMTP.sent = []
    monkeypatch.setattr(settings, "smtp_host", "smtp.example.com")
    monkeypatch.setattr(settings, "mail_from", "timesheets@example.com")
    monkeypatch.setattr(notifications.smtplib, "SMTP", FakeSMTP)

    assert notifications.send_email("eve@example.com", "Leave approved", "Enjoy") is True
    assert FakeSMTP.sent[0]["To"] == "eve@example.com"
    assert FakeSMTP.sent[0]["From"] == "timesheets@example.com"


def test_smtp_failure_is_logged_not_raised(monkeypatch, caplog) -> None:
    def broken_smtp(*_args, **_kwargs):
        raise smtplib.SMTPConnectError(421, "unavailable")

    monkeypatch.setattr(settings, "smtp_host", "smtp.example.com")
    monkeypatch.setattr(notifications.smtplib, "SMTP", broken_smtp)
    caplog.set_level("WARNING")

    assert notifications.send_email("eve@example.com", "Hi", "Body") is False
    assert "Failed to send email" in caplog.text
