"""Outbound email for verification codes and password recovery links.

Delivery is best effort: callers in :mod:`app.domain.service` catch and log any
exception raised here instead of failing the triggering request.
"""

from __future__ import annotations

import abc
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from html import escape
from urllib.parse import urlencode

from .config import Settings
from .domain.account import Account

logger = logging.getLogger(__name__)

PRODUCT_NAME = "Final Network"


@dataclass(frozen=True, slots=True)
class Notification:
    """A rendered message ready to hand to a gateway."""

    template: str
    to: str
    subject: str
    text_body: str
    html_body: str | None = None


class NotificationGateway(abc.ABC):
    """Sends a rendered :class:`Notification` to its recipient."""

    @abc.abstractmethod
    def deliver(self, notification: Notification) -> None:
        """Send ``notification``; raise on transport failure."""


class SmtpNotificationGateway(NotificationGateway):
    """Deliver mail through an SMTP relay, opening one connection per message."""

    def __init__(
        self,
        *,
        host: str,
        port: int,
        sender: str,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self._host = host
        self._port = port
        self._sender = sender
        self._username = username
        self._password = password
        self._use_tls = use_tls
        self._timeout = timeout

    def deliver(self, notification: Notification) -> None:
        message = EmailMessage()
        message["From"] = self._sender
        message["To"] = notification.to
        message["Subject"] = notification.subject
        message.set_content(notification.text_body)
        if notification.html_body:
            message.add_alternative(notification.html_body, subtype="html")

        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as server:
            if self._use_tls:
                server.starttls()
            if self._username and self._password:
                server.login(self._username, self._password)
            server.send_message(message)
        logger.info("%s email sent to %s", notification.template, notification.to)


class LoggingNotificationGateway(NotificationGateway):
    """Development gateway that writes messages to the log instead of sending them."""

    def deliver(self, notification: Notification) -> None:
        logger.info(
            "SMTP not configured; %s email for %s:\n%s",
            notification.template,
            notification.to,
            notification.text_body,
        )


def build_notification_gateway(settings: Settings) -> NotificationGateway:
    """Pick the SMTP gateway when a relay host is configured, else the logging one."""
    if settings.smtp_host:
        logger.info("notification gateway using smtp relay %s:%s", settings.smtp_host, settings.smtp_port)
        return SmtpNotificationGateway(
            host=settings.smtp_host,
            port=settings.smtp_port,
            sender=settings.mail_from,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
        )
    logger.warning("SMTP_HOST not set; verification emails will only be logged")
    return LoggingNotificationGateway()


def _code_html(heading: str, greeting: str, intro: str, code: str, notes: list[str]) -> str:
    items = "".join(f"<li>{escape(note)}</li>" for note in notes)
    return (
        "<html><body style=\"font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;\">"
        f"<h1>{escape(heading)}</h1>"
        f"<h2>{escape(greeting)}</h2>"
        f"<p>{escape(intro)}</p>"
        f"<div style=\"font-size: 36px; font-weight: bold; letter-spacing: 8px;\">{escape(code)}</div>"
        f"<ul>{items}</ul>"
        f"<p>Best regards,<br><strong>The {PRODUCT_NAME} Team</strong></p>"
        "</body></html>"
    )


def registration_otp_message(account: Account, code: str, ttl_minutes: int) -> Notification:
    greeting = f"Hello {account.first_name}!"
    intro = (
        f"Thank you for joining {PRODUCT_NAME}! To complete your registration, "
        "please verify your email address."
    )
    notes = [
        f"This code expires in {ttl_minutes} minutes",
        "Don't share this code with anyone",
        "If you didn't create this account, please ignore this email",
    ]
    text = "\n".join(
        [greeting, "", intro, "", f"Your verification code: {code}", "", *notes]
    )
    return Notification(
        template="registration_otp",
        to=account.email,
        subject=f"Welcome to {PRODUCT_NAME} - Verify Your Account",
        text_body=text,
        html_body=_code_html(f"Welcome to {PRODUCT_NAME}!", greeting, intro, code, notes),
    )


def login_otp_message(account: Account, code: str, ttl_minutes: int) -> Notification:
    greeting = f"Hello {account.first_name}!"
    intro = "We received a sign-in request for your account. Enter this code to finish signing in."
    notes = [
        f"This code expires in {ttl_minutes} minutes",
        "This is a one-time verification. Future logins won't require a code.",
        "If this wasn't you, change your password right away",
    ]
    text = "\n".join(
        [greeting, "", intro, "", f"Your login code: {code}", "", *notes]
    )
    return Notification(
        template="login_otp",
        to=account.email,
        subject=f"{PRODUCT_NAME} - Login Verification Code",
        text_body=text,
        html_body=_code_html("Login Verification", greeting, intro, code, notes),
    )


def password_reset_message(
    account: Account, token: str, frontend_url: str, ttl_minutes: int
) -> Notification:
    reset_url = f"{frontend_url.rstrip('/')}/reset-password?{urlencode({'token': token})}"
    greeting = f"Hello {account.first_name}!"
    text = "\n".join(
        [
            greeting,
            "",
            "Someone asked to reset the password for your account.",
            f"Use this link within {ttl_minutes} minutes: {reset_url}",
            "",
            "If you didn't request this, you can ignore this email.",
        ]
    )
    html = (
        "<html><body style=\"font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;\">"
        f"<h2>{escape(greeting)}</h2>"
        "<p>Someone asked to reset the password for your account.</p>"
        f"<p><a href=\"{escape(reset_url, quote=True)}\">Reset your password</a></p>"
        f"<p>This link expires in {ttl_minutes} minutes.</p>"
        "</body></html>"
    )
    return Notification(
        template="password_reset",
        to=account.email,
        subject=f"{PRODUCT_NAME} - Reset Your Password",
        text_body=text,
        html_body=html,
    )
