"""
auth/mailer.py -- Password-reset email delivery over SMTP (aiosmtplib).

Runs as a FastAPI background task after POST /auth/forgot-password has
already answered, so delivery latency and SMTP failures never change the
response the caller sees (which would reveal whether the email exists).

When SMTP_HOST is empty, delivery is skipped with a warning. The raw token
is never logged.
"""

from __future__ import annotations

import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import aiosmtplib

from core.config import Settings

logger = logging.getLogger("siwes.mail")


def build_reset_message(settings: Settings, to_email: str, raw_token: str) -> MIMEMultipart:
    reset_url = f"{settings.frontend_url.rstrip('/')}/reset-password?token={raw_token}"
    minutes = settings.reset_token_expire_seconds // 60

    message = MIMEMultipart("alternative")
    message["From"] = settings.email_from
    message["To"] = to_email
    message["Subject"] = "Password Reset Request"
    message.attach(
        MIMEText(
            "You requested a password reset for your SIWES account.\n\n"
            f"Open this link to reset your password (valid for {minutes} minutes):\n{reset_url}\n\n"
            "If you did not request this, please ignore this email.",
            "plain",
        )
    )
    message.attach(
        MIMEText(
            "<p>You requested a password reset for your SIWES account.</p>"
            f"<p>Click <a href='{reset_url}'>here</a> to reset your password. "
            f"This link is valid for {minutes} minutes.</p>"
            "<p>If you did not request this, please ignore this email.</p>",
            "html",
        )
    )
    return message


async def send_password_reset_email(settings: Settings, to_email: str, raw_token: str) -> bool:
    """Send the reset link. Returns True on success, False if skipped or failed."""
    if not settings.smtp_configured:
        logger.warning("SMTP not configured, skipping password reset email")
        return False

    message = build_reset_message(settings, to_email, raw_token)
    # Port 465 speaks TLS from the first byte; other ports upgrade with STARTTLS.
    implicit_tls = settings.smtp_port == 465
    try:
        await aiosmtplib.send(
            message,
            hostname=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user or None,
            password=settings.smtp_password or None,
            use_tls=implicit_tls,
            start_tls=not implicit_tls,
        )
    except (aiosmtplib.SMTPException, OSError):
        logger.exception("Failed to send password reset email")
        return False

    logger.info("Password reset email sent")
    return True
