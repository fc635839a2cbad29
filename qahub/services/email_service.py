"""
Outgoing mail for account flows (password reset, welcome).

Without MAIL_SERVER the message is only logged, which is what development
and the test suite rely on. Delivery failures are logged and reported as
``False``; they never abort the request that triggered the mail.

Config: MAIL_SERVER, MAIL_PORT, MAIL_USE_TLS, MAIL_USERNAME, MAIL_PASSWORD,
MAIL_DEFAULT_SENDER, FRONTEND_URL (links), PASSWORD_RESET_EXPIRES.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage

from flask import current_app

logger = logging.getLogger(__name__)

# name -> (subject, plain text body); placeholders are str.format_map keys
TEMPLATES: dict[str, tuple[str, str]] = {
    "password_reset": (
        "[QaHub] Reset your password",
        "Hello {name},\n\n"
        "Use the link below to choose a new QaHub password. It expires in {expires_minutes} minutes.\n\n"
        "{reset_url}\n\n"
        "If you did not ask for a reset you can ignore this message.\n",
    ),
    "welcome": (
        "[QaHub] Welcome, {name}",
        "Hello {name},\n\nYour QaHub account ({email}) is ready.\nSign in at {login_url}\n",
    ),
}


class _KeepMissing(dict):
    def __missing__(self, key):
        return "{" + key + "}"


def render(template_name: str, context: dict) -> tuple[str, str] | None:
    template = TEMPLATES.get(template_name)
    if template is None:
        return None
    values = _KeepMissing(context)
    subject, body = template
    return subject.format_map(values), body.format_map(values)


def _frontend_link(path: str) -> str:
    return f"{(current_app.config.get('FRONTEND_URL') or '').rstrip('/')}{path}"


class EmailService:
    """Static helpers; callers ignore the boolean unless they need to report it."""

    @staticmethod
    def is_configured() -> bool:
        return bool(current_app.config.get("MAIL_SERVER"))

    @classmethod
    def send(cls, *, to_email: str, subject: str, body: str, to_name: str | None = None) -> bool:
        if not cls.is_configured():
            logger.info("Mail not sent (no MAIL_SERVER): to=%s subject=%r", to_email, subject)
            return True
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = current_app.config.get("MAIL_DEFAULT_SENDER") or "noreply@qahub.local"
        message["To"] = f"{to_name} <{to_email}>" if to_name else to_email
        message.set_content(body)
        try:
            cls._deliver(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Mail delivery failed to=%s: %s", to_email, exc)
            return False
        logger.info("Mail sent to=%s subject=%r", to_email, subject)
        return True

    @classmethod
    def send_template(cls, template_name: str, *, user, **context) -> bool:
        rendered = render(template_name, {"name": user.name, "email": user.email, **context})
        if rendered is None:
            logger.warning("Unknown mail template %s", template_name)
            return False
        subject, body = rendered
        return cls.send(to_email=user.email, to_name=user.name, subject=subject, body=body)

    @classmethod
    def send_password_reset(cls, *, user, token: str) -> bool:
        ttl = int(current_app.config.get("PASSWORD_RESET_EXPIRES") or 3600)
        return cls.send_template(
            "password_reset",
            user=user,
            reset_url=_frontend_link(f"/reset-password?token={token}"),
            expires_minutes=ttl // 60,
        )

    @classmethod
    def send_welcome(cls, *, user) -> bool:
        return cls.send_template("welcome", user=user, login_url=_frontend_link("/login"))

    @staticmethod
    def _deliver(message: EmailMessage) -> None:
        config = current_app.config
        with smtplib.SMTP(config["MAIL_SERVER"], int(config.get("MAIL_PORT") or 587), timeout=30) as smtp:
            if config.get("MAIL_USE_TLS", True):
                smtp.starttls()
            if config.get("MAIL_USERNAME") and config.get("MAIL_PASSWORD"):
                smtp.login(config["MAIL_USERNAME"], config["MAIL_PASSWORD"])
            smtp.send_message(message)
