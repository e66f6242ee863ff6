import smtplib

import pytest

from app.core.exceptions import EmailDeliveryError
from app.services import email_service
from app.services.email_service import EmailService, redact_email, render


def test_render_escapes_values_in_html_only():
    message = render(
        email_service.VERIFY_EMAIL,
        {"first_name": "<b>Eve</b>", "token": "abc", "verification_url": "http://x/verify-email/abc"},
    )
    assert "&lt;b&gt;Eve&lt;/b&gt;" in message.html
    assert "<b>Eve</b>" not in message.html
    assert "Hello <b>Eve</b>," in message.text
    assert "http://x/verify-email/abc" in message.html


def test_render_password_reset_mentions_expiry():
    message = render(
        email_service.PASSWORD_RESET,
        {"first_name": "Al", "token": "t0k", "reset_url": "http://x/reset-password/t0k", "expires_minutes": 60},
    )
    assert message.subject == "Password Reset Request"
    assert "expire in 60 minutes" in message.text


def test_render_unknown_template():
    with pytest.raises(ValueError):
        render("no_such_template", {})


def test_redact_email():
    assert redact_email("alice@example.com") == "al***@example.com"
    assert redact_email("not-an-address") == "redacted"


def test_unconfigured_service_logs_instead_of_sending(monkeypatch, caplog):
    def _boom(*args, **kwargs):
        raise AssertionError("SMTP must not be contacted")

    monkeypatch.setattr(smtplib, "SMTP", _boom)
    service = EmailService(smtp_host=None)
    assert service.is_configured is False

    with caplog.at_level("INFO", logger="app.services.email_service"):
        service.send("alice@example.com", email_service.EMAIL_VERIFIED, {"first_name": "Alice"})
    assert "SMTP not configured" in caplog.text
    assert "alice@example.com" not in caplog.text


def test_smtp_failure_raises_delivery_error(monkeypatch):
    class FailingSMTP:
        def __init__(self, *args, **kwargs):
            raise smtplib.SMTPConnectError(421, b"unavailable")

    monkeypatch.setattr(smtplib, "SMTP", FailingSMTP)
    service = EmailService(smtp_host="smtp.test", from_email="noreply@test")

    with pytest.raises(EmailDeliveryError):
        service.send("alice@example.com", email_service.PASSWORD_CHANGED, {"first_name": "Alice"})


def test_smtp_delivery_uses_starttls_and_login(monkeypatch):
    calls = []

    class FakeSMTP:
        def __init__(self, host, port, timeout=None):
            calls.append(("connect", host, port))

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def starttls(self, context=None):
            calls.append(("starttls",))

        def login(self, user, password):
            calls.append(("login", user))

        def sendmail(self, sender, recipients, body):
            calls.append(("sendmail", sender, tuple(recipients)))

    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    service = EmailService(
        smtp_host="smtp.test", smtp_port=2525, smtp_user="mailer", smtp_password="pw", from_email="noreply@test"
    )
    service.send("alice@example.com", email_service.PASSWORD_CHANGED, {"first_name": "Alice"})

    assert calls == [
        ("connect", "smtp.test", 2525),
        ("starttls",),
        ("login", "mailer"),
        ("sendmail", "noreply@test", ("alice@example.com",)),
    ]
