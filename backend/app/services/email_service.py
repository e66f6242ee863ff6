"""Transactional email: templates and SMTP delivery."""

from __future__ import annotations

import html
import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, Optional

from app.config import Settings
from app.core.exceptions import EmailDeliveryError

logger = logging.getLogger(__name__)

VERIFY_EMAIL = "verify_email"
EMAIL_VERIFIED = "email_verified"
PASSWORD_RESET = "password_reset"
PASSWORD_CHANGED = "password_changed"


@dataclass(frozen=True)
class EmailTemplate:
    subject: str
    text: str
    html: str


TEMPLATES: Dict[str, EmailTemplate] = {
    VERIFY_EMAIL: EmailTemplate(
        subject="Welcome to our Platform - Verify Your Email",
        text=(
            "Welcome to our Platform!\n\n"
            "Hello {first_name},\n\n"
            "Thank you for registering with us. Your account has been created successfully.\n\n"
            "Please verify your email address by visiting the following link:\n"
            "{verification_url}\n\n"
            "Or use this verification code: {token}\n\n"
            "Regards,\nThe API Team\n"
        ),
        html=(
            "<h1>Welcome to our Platform!</h1>"
            "<p>Hello {first_name},</p>"
            "<p>Thank you for registering with us. Your account has been created successfully.</p>"
            "<p>Please verify your email address by clicking the link below:</p>"
            '<p><a href="{verification_url}">Verify Email Address</a></p>'
            "<p>Or use this verification code: <strong>{token}</strong></p>"
            "<p>Regards,<br>The API Team</p>"
        ),
    ),
    EMAIL_VERIFIED: EmailTemplate(
        subject="Email Verification Successful",
        text=(
            "Email Verification Successful\n\n"
            "Hello {first_name},\n\n"
            "Your email address has been successfully verified.\n\n"
            "Regards,\nThe API Team\n"
        ),
        html=(
            "<h1>Email Verification Successful</h1>"
            "<p>Hello {first_name},</p>"
            "<p>Your email address has been successfully verified.</p>"
            "<p>Regards,<br>The API Team</p>"
        ),
    ),
    PASSWORD_RESET: EmailTemplate(
        subject="Password Reset Request",
        text=(
            "Password Reset Request\n\n"
            "Hello {first_name},\n\n"
            "You requested a password reset. Please visit the following link to reset your password:\n"
            "{reset_url}\n\n"
            "Or use this token: {token}\n\n"
            "This link will expire in {expires_minutes} minutes.\n\n"
            "If you didn't request this, please ignore this email.\n\n"
            "Regards,\nThe API Team\n"
        ),
        html=(
            "<h1>Password Reset Request</h1>"
            "<p>Hello {first_name},</p>"
            "<p>You requested a password reset. Please click the link below to reset your password:</p>"
            '<p><a href="{reset_url}">Reset Password</a></p>'
            "<p>Or use this token: <strong>{token}</strong></p>"
            "<p>This link will expire in {expires_minutes} minutes.</p>"
            "<p>If you didn't request this, please ignore this email.</p>"
            "<p>Regards,<br>The API Team</p>"
        ),
    ),
    PASSWORD_CHANGED: EmailTemplate(
        subject="Password Changed Successfully",
        text=(
            "Password Changed Successfully\n\n"
            "Hello {first_name},\n\n"
            "Your password has been changed successfully.\n\n"
            "If you did not make this change, please contact our support team immediately.\n\n"
            "Regards,\nThe API Team\n"
        ),
        html=(
            "<h1>Password Changed Successfully</h1>"
            "<p>Hello {first_name},</p>"
            "<p>Your password has been changed successfully.</p>"
            "<p>If you did not make this change, please contact our support team immediately.</p>"
            "<p>Regards,<br>The API Team</p>"
        ),
    ),
}


def redact_email(email: str) -> str:
    """Redact an email address for logging to avoid PII leakage."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


def render(template: str, data: Dict[str, Any]) -> EmailTemplate:
    """Fill a named template; values are HTML-escaped in the HTML part."""
    try:
        tpl = TEMPLATES[template]
    except KeyError:
        raise ValueError(f"Unknown email template: {template}")
    escaped = {key: html.escape(str(value), quote=True) for key, value in data.items()}
    return EmailTemplate(
        subject=tpl.subject,
        text=tpl.text.format(**data),
        html=tpl.html.format(**escaped),
    )


class EmailService:
    """SMTP mailer. Logs instead of sending when SMTP is not configured."""

    def __init__(
        self,
        *,
        smtp_host: Optional[str] = None,
        smtp_port: int = 587,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        smtp_use_tls: bool = True,
        from_email: Optional[str] = None,
        from_name: str = "API Service",
        timeout: float = 30.0,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.from_email = from_email or smtp_user
        self.from_name = from_name
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailService":
        return cls(
            smtp_host=settings.SMTP_HOST or None,
            smtp_port=settings.SMTP_PORT,
            smtp_user=settings.SMTP_USER or None,
            smtp_password=settings.SMTP_PASSWORD or None,
            smtp_use_tls=settings.SMTP_USE_TLS,
            from_email=settings.EMAIL_FROM or None,
            from_name=settings.EMAIL_FROM_NAME,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    def send(self, to: str, template: str, data: Dict[str, Any]) -> None:
        """
        Render and deliver one templated email.

        Raises:
            EmailDeliveryError: SMTP handshake, auth or delivery failed
        """
        message = render(template, data)

        if not self.is_configured:
            logger.info(
                "Email not sent (SMTP not configured): to=%s template=%s subject=%s",
                redact_email(to),
                template,
                message.subject,
            )
            return

        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to
        msg.attach(MIMEText(message.text, "plain"))
        msg.attach(MIMEText(message.html, "html"))

        context = ssl.create_default_context()
        try:
            if self.smtp_use_tls:
                with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
                    server.starttls(context=context)
                    self._login(server)
                    server.sendmail(self.from_email, [to], msg.as_string())
            else:
                with smtplib.SMTP_SSL(
                    self.smtp_host, self.smtp_port, context=context, timeout=self.timeout
                ) as server:
                    self._login(server)
                    server.sendmail(self.from_email, [to], msg.as_string())
        except (smtplib.SMTPException, ssl.SSLError, OSError) as exc:
            logger.error(
                "Email delivery failed: to=%s template=%s error=%s: %s",
                redact_email(to),
                template,
                type(exc).__name__,
                exc,
            )
            raise EmailDeliveryError(f"Could not deliver '{template}' email") from exc

        logger.info("Email sent: to=%s template=%s", redact_email(to), template)

    def _login(self, server: smtplib.SMTP) -> None:
        if self.smtp_user and self.smtp_password:
            server.login(self.smtp_user, self.smtp_password)
