from __future__ import annotations
from typing import Protocol

import httpx
import structlog

from runpool.config import settings
from runpool.errors import ConfigurationError, EmailDeliveryError

log = structlog.get_logger()


class EmailSender(Protocol):
    async def send(self, to: str, subject: str, html: str) -> str:
        """Deliver to one recipient; returns the provider message id or raises EmailDeliveryError."""
        ...


class ResendSender:
    """Resend HTTP API, one request per recipient so addresses are never exposed to each other."""

    def __init__(self, api_key: str, sender: str, api_url: str, timeout: float = 10.0, transport: httpx.AsyncBaseTransport | None = None):
        self.api_key = api_key
        self.sender = sender
        self.api_url = api_url
        self.timeout = timeout
        self.transport = transport

    async def send(self, to: str, subject: str, html: str) -> str:
        payload = {"from": self.sender, "to": [to], "subject": subject, "html": html}
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                res = await client.post(self.api_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise EmailDeliveryError(to, f"transport error: {e}") from e
        if res.status_code >= 400:
            raise EmailDeliveryError(to, f"HTTP {res.status_code}: {res.text[:300]}")
        # Accepted (2xx) even when the body carries no usable id
        try:
            body = res.json()
        except ValueError:
            body = None
        message_id = str(body.get("id") or "") if isinstance(body, dict) else ""
        if not message_id:
            log.warning("email.sent_without_id", to=to, status=res.status_code)
        log.info("email.sent", to=to, provider_message_id=message_id)
        return message_id


def get_email_sender() -> EmailSender:
    if not settings.resend_api_key:
        raise ConfigurationError("RESEND_API_KEY")
    if not settings.resend_from:
        raise ConfigurationError("RESEND_FROM")
    return ResendSender(settings.resend_api_key, settings.resend_from, settings.resend_api_url)
