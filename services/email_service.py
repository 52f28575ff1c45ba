"""
Email service for transactional messages (verification, password reset, welcome).

Modes:
    - console: log the message instead of sending it (development, tests)
    - smtp: send through an SMTP relay

Every public send is handed to the TaskDispatcher, so callers never block on
the transport and never see its failures.
"""
from __future__ import annotations

import logging
import smtplib
from datetime import timedelta
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from html import escape

logger = logging.getLogger(__name__)


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" + ("" if count == 1 else "s")


def describe_ttl(ttl: timedelta) -> str:
    """Human expiry text: "24 hours", "1 hour", "30 minutes", "7 days"."""
    seconds = int(ttl.total_seconds())
    if seconds >= 2 * 86400 and seconds % 86400 == 0:
        return _plural(seconds // 86400, "day")
    if seconds >= 3600 and seconds % 3600 == 0:
        return _plural(seconds // 3600, "hour")
    return _plural(max(1, round(seconds / 60)), "minute")


_LAYOUT = """<!DOCTYPE html>
<html>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
  <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
    <h1>{title}</h1>
    <h2>Hello {name},</h2>
    {body}
    <p style="font-size: 12px; color: #666;">{team}</p>
  </div>
</body>
</html>
"""


class EmailService:
    def __init__(
        self,
        dispatcher,
        mode: str = "console",
        from_email: str = "noreply@example.com",
        from_name: str = "Identity",
        app_url: str = "http://localhost:3000",
        api_url: str = "http://localhost:8000",
        smtp_host: str | None = None,
        smtp_port: int = 587,
        smtp_user: str | None = None,
        smtp_password: str | None = None,
        smtp_use_tls: bool = True,
        timeout: float = 10.0,
        verification_ttl: timedelta = timedelta(hours=24),
        reset_ttl: timedelta = timedelta(hours=1),
    ):
        self.dispatcher = dispatcher
        self._mode = mode
        self._from_email = from_email
        self._from_name = from_name
        self._app_url = app_url.rstrip("/")
        self._api_url = api_url.rstrip("/")
        self._smtp_host = smtp_host
        self._smtp_port = smtp_port
        self._smtp_user = smtp_user
        self._smtp_password = smtp_password
        self._smtp_use_tls = smtp_use_tls
        self._timeout = timeout
        self._verification_ttl = verification_ttl
        self._reset_ttl = reset_ttl

        if self._mode == "smtp" and not self._smtp_host:
            logger.warning("SMTP host not configured, falling back to console mode")
            self._mode = "console"
        logger.info("Email service initialized in %s mode", self._mode)

    @property
    def mode(self) -> str:
        return self._mode

    def send(self, to: str, subject: str, html_body: str) -> bool:
        """Queue one message; returns False if the dispatcher dropped it."""
        return self.dispatcher.submit(self._deliver, to, subject, html_body)

    def send_verification_email(self, to: str, token: str, name: str) -> bool:
        url = f"{self._api_url}/api/v1/auth/verify-email?token={token}"
        body = (
            "<p>Please verify your email address to activate your account.</p>"
            f'<p><a href="{escape(url)}">Verify Email</a></p>'
            f'<p style="word-break: break-all;">{escape(url)}</p>'
            f"<p>This link will expire in {describe_ttl(self._verification_ttl)}.</p>"
            "<p>If you didn't create an account, please ignore this email.</p>"
        )
        return self.send(to, "Verify your email", self._render("Welcome!", name, body))

    def send_password_reset_email(self, to: str, token: str, name: str) -> bool:
        url = f"{self._app_url}/reset-password?token={token}"
        body = (
            "<p>We received a request to reset your password.</p>"
            f'<p><a href="{escape(url)}">Reset Password</a></p>'
            f'<p style="word-break: break-all;">{escape(url)}</p>'
            f"<p>This link will expire in {describe_ttl(self._reset_ttl)}.</p>"
            "<p>If you didn't request a password reset, please ignore this email.</p>"
        )
        return self.send(to, "Reset your password", self._render("Password Reset Request", name, body))

    def send_welcome_email(self, to: str, name: str) -> bool:
        body = "<p>Your email has been verified. Your account is now active.</p>"
        return self.send(to, "Welcome aboard!", self._render("Welcome Aboard!", name, body))

    def _render(self, title: str, name: str, body: str) -> str:
        return _LAYOUT.format(title=escape(title), name=escape(name or ""), body=body, team=escape(self._from_name))

    def _deliver(self, to: str, subject: str, html_body: str):
        if self._mode == "console":
            logger.info("[console email] to=%s subject=%s", to, subject)
            logger.debug("[console email] body:\n%s", html_body)
            return

        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = formataddr((self._from_name, self._from_email))
        message["To"] = to
        message.attach(MIMEText(html_body, "html", "utf-8"))

        with smtplib.SMTP(self._smtp_host, self._smtp_port, timeout=self._timeout) as smtp:
            if self._smtp_use_tls:
                smtp.starttls()
            if self._smtp_user:
                smtp.login(self._smtp_user, self._smtp_password or "")
            smtp.sendmail(self._from_email, [to], message.as_string())
        logger.info("Email sent successfully to: %s", to)
