"""SendGrid v3 mail transport using dynamic templates."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import requests

from lifecycle.common.errors import LifecycleError
from lifecycle.common.http import HttpClient, RetryConfig, TimeoutConfig
from lifecycle.common.logging import get_logger, log_event

SOURCE_TYPE = "sendgrid"
DEFAULT_ENDPOINT = "https://api.sendgrid.com/v3/mail/send"
ACCEPTED_STATUSES = {200, 202}

LOGGER = get_logger("notifications.sendgrid")


class EmailTransport(Protocol):
    def send_template(self, to_email: str, template_id: str, data: dict[str, Any]) -> bool: ...


class SendGridTransport:
    def __init__(
        self,
        client: HttpClient,
        *,
        api_key: str,
        from_email: str,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: TimeoutConfig | None = None,
        retry: RetryConfig | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.client = client
        self.api_key = api_key
        self.from_email = from_email
        self.endpoint = endpoint
        self.timeout = timeout
        self.retry = retry
        self.logger = logger or LOGGER

    def _payload(self, to_email: str, template_id: str, data: dict[str, Any]) -> dict[str, Any]:
        return {
            "personalizations": [{"to": [{"email": to_email}], "dynamic_template_data": data}],
            "from": {"email": self.from_email},
            "template_id": template_id,
        }

    def send_template(self, to_email: str, template_id: str, data: dict[str, Any]) -> bool:
        if not self.api_key:
            log_event(
                self.logger,
                "SendGrid API key not configured",
                level=logging.ERROR,
                component="notifications",
                event="EMAIL_SEND",
                status="error",
                error_code="CONFIG_ERROR",
            )
            return False

        try:
            status = self.client.post_json(
                self.endpoint,
                source_type=SOURCE_TYPE,
                payload=self._payload(to_email, template_id, data),
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
                retry=self.retry,
            )
        except (LifecycleError, requests.RequestException) as exc:
            log_event(
                self.logger,
                f"email delivery failed: {exc}",
                level=logging.ERROR,
                component="notifications",
                event="EMAIL_SEND",
                status="error",
                error_code=getattr(exc, "error_code", "HTTP_ERROR"),
            )
            return False
        return status in ACCEPTED_STATUSES
