"""Verification reminder and expiry notifications."""

from __future__ import annotations

import logging
import re

from lifecycle.common.config_loader import resolve_secret
from lifecycle.common.errors import ValidationError
from lifecycle.common.http import HttpClient, RetryConfig, TimeoutConfig
from lifecycle.common.logging import get_logger, log_event
from lifecycle.notifications.sendgrid import EmailTransport, SendGridTransport

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

LOGGER = get_logger("notifications")


def validate_email(email: str | None) -> str:
    if not isinstance(email, str) or not email.strip():
        raise ValidationError("Recipient email is empty")
    cleaned = email.strip()
    if not EMAIL_RE.match(cleaned):
        raise ValidationError(f"Recipient email is malformed: {cleaned!r}")
    return cleaned


class NotificationDispatcher:
    """Send lifecycle emails for one organisation at a time.

    Both senders return ``True`` only when the transport accepted the message.
    Delivery problems come back as ``False``; malformed arguments raise
    ``ValidationError``.
    """

    def __init__(
        self,
        transport: EmailTransport,
        *,
        reminder_template_id: str,
        expiry_template_id: str,
        login_url: str = "",
        logger: logging.Logger | None = None,
    ) -> None:
        self.transport = transport
        self.reminder_template_id = reminder_template_id
        self.expiry_template_id = expiry_template_id
        self.login_url = login_url
        self.logger = logger or LOGGER

    @classmethod
    def from_config(cls, client: HttpClient, cfg: dict, environ: dict[str, str] | None = None) -> "NotificationDispatcher":
        transport = SendGridTransport(
            client,
            api_key=resolve_secret(cfg, "api_key", environ),
            from_email=cfg["from_email"],
            endpoint=cfg["endpoint"],
            timeout=TimeoutConfig.from_config(cfg.get("timeout")),
            retry=RetryConfig.from_config(cfg.get("retry")),
        )
        templates = cfg["templates"]
        return cls(
            transport,
            reminder_template_id=resolve_secret(templates, "reminder", environ),
            expiry_template_id=resolve_secret(templates, "expiry", environ),
            login_url=resolve_secret(cfg, "login_url", environ),
        )

    def _send(self, kind: str, to_email: str, org_name: str, template_id: str, data: dict) -> bool:
        if not template_id:
            log_event(
                self.logger,
                f"{kind} template id not configured",
                level=logging.ERROR,
                component="notifications",
                event="EMAIL_SEND",
                status="error",
                error_code="CONFIG_ERROR",
            )
            return False

        sent = self.transport.send_template(to_email, template_id, data)
        log_event(
            self.logger,
            f"{kind} email {'sent' if sent else 'not accepted'} for {org_name}",
            level=logging.INFO if sent else logging.ERROR,
            component="notifications",
            event="EMAIL_SEND",
            status="ok" if sent else "error",
        )
        return sent

    def send_reminder(self, email: str, org_name: str, elapsed_days: int) -> bool:
        to_email = validate_email(email)
        if not org_name:
            raise ValidationError("Organisation name is required")
        if elapsed_days < 0:
            raise ValidationError(f"elapsed_days must not be negative: {elapsed_days}")
        data = {"org_name": org_name, "days_inactive": elapsed_days, "login_url": self.login_url}
        return self._send("reminder", to_email, org_name, self.reminder_template_id, data)

    def send_expiry(self, email: str, org_name: str) -> bool:
        to_email = validate_email(email)
        if not org_name:
            raise ValidationError("Organisation name is required")
        data = {"org_name": org_name, "login_url": self.login_url}
        return self._send("expiry", to_email, org_name, self.expiry_template_id, data)
