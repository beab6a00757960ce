"""
email_brevo.py — Email delivery channel via the Brevo transactional API.

Delivery mechanism:
    • One HTTPS POST per dispatch, addressed to every eligible recipient
    • HTML envelope around the (escaped) message body
    • API key carried in the ``api-key`` header

═══════════════════════════════════════════════════════════════════════════
REQUEST SHAPE
═══════════════════════════════════════════════════════════════════════════

    POST https://api.brevo.com/v3/smtp/email
    api-key: <BREVO_API_KEY>

    {
      "sender":      {"email": "...", "name": "..."},
      "to":          [{"email": "a@x.com", "name": "A"}, ...],
      "subject":     "New Message from Messaging System",
      "htmlContent": "<div>...</div>"
    }

    2xx            → Delivered
    non-2xx        → Failed(<payload "message"> or "HTTP <status>")
    raised error   → Failed(str(exc) or "unknown error")

The batch is all-or-nothing: Brevo either accepts the whole request or
rejects it, and per-recipient bounce detail (webhooks) is not tracked.
"""

from __future__ import annotations

import html
import logging
import time
from typing import Any, Dict, List, Optional, Sequence

import httpx

from backend.app.core.config import Settings
from backend.app.messaging.channels.base import (
    HttpChannelTransport,
    failure_from_exception,
    failure_from_response,
    response_json,
)
from backend.app.messaging.models import (
    ChannelOutcome,
    Delivered,
    Failed,
    MessageChannel,
    Recipient,
)
from backend.app.messaging.recipient_filter import filter_for_channel

logger = logging.getLogger(__name__)

NO_EMAIL_RECIPIENTS = "no valid email recipients"

DEFAULT_API_URL = "https://api.brevo.com/v3/smtp/email"
DEFAULT_SUBJECT = "New Message from Messaging System"


def render_html_body(body: str) -> str:
    """Render the message body inside the standard HTML envelope."""
    safe = html.escape(body).replace("\n", "<br>")
    return f"""
    <div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto;">
      <h2 style="color:#333;">New Message</h2>
      <div style="background-color:#f5f5f5;padding:20px;border-radius:8px;margin:20px 0;">
        <p style="font-size:16px;line-height:1.6;color:#555;">{safe}</p>
      </div>
      <hr style="border:none;border-top:1px solid #eee;margin:20px 0;">
      <p style="font-size:12px;color:#888;">
        This message was sent via our messaging system.
      </p>
    </div>
    """


class BrevoEmailTransport(HttpChannelTransport):
    """
    Batched email sends through Brevo.

    Parameters
    ----------
    api_key : str | None
        Brevo API key; sent as-is (an empty key is rejected by Brevo
        with a 401, which becomes a Failed outcome).
    sender_address, sender_name : str
        Envelope sender identity.
    subject : str
        Subject line for every message.
    api_url : str
        Send endpoint.
    client : httpx.AsyncClient | None
        Shared client; if omitted the transport creates and owns one.
    timeout_seconds : float
        Timeout for an owned client.
    """

    channel = MessageChannel.EMAIL

    def __init__(
        self,
        *,
        api_key: Optional[str],
        sender_address: str,
        sender_name: str,
        subject: str = DEFAULT_SUBJECT,
        api_url: str = DEFAULT_API_URL,
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 30.0,
    ):
        super().__init__(client=client, timeout_seconds=timeout_seconds)
        self.api_key = api_key or ""
        self.sender_address = sender_address
        self.sender_name = sender_name
        self.subject = subject
        self.api_url = api_url

    def build_request_body(self, recipients: Sequence[Recipient], body: str) -> Dict[str, Any]:
        return {
            "sender": {
                "email": self.sender_address,
                "name": self.sender_name,
            },
            "to": [
                {"email": r.email.strip(), "name": r.name}
                for r in recipients
            ],
            "subject": self.subject,
            "htmlContent": render_html_body(body),
        }

    def _headers(self) -> Dict[str, str]:
        return {
            "api-key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def send(self, recipients: Sequence[Recipient], body: str) -> ChannelOutcome:
        eligible: List[Recipient] = filter_for_channel(recipients, self.channel)
        if not eligible:
            logger.info(
                "[EMAIL] No eligible recipients out of %d", len(recipients),
                extra={"channel": self.channel.value, "recipient_count": 0},
            )
            return Failed(NO_EMAIL_RECIPIENTS)

        payload = self.build_request_body(eligible, body)
        start = time.perf_counter()

        try:
            client = await self._get_client()
            response = await client.post(self.api_url, json=payload, headers=self._headers())
        except Exception as exc:
            logger.error(
                "[EMAIL] Request to %s failed: %s", self.api_url, exc,
                extra={"channel": self.channel.value},
            )
            return failure_from_exception(exc)

        duration_ms = (time.perf_counter() - start) * 1000
        data = response_json(response)

        if not response.is_success:
            logger.warning(
                "[EMAIL] Brevo rejected batch of %d → %d (%.1fms)",
                len(eligible), response.status_code, duration_ms,
                extra={
                    "channel": self.channel.value,
                    "recipient_count": len(eligible),
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                },
            )
            return failure_from_response(response, data.get("message"))

        logger.info(
            "[EMAIL] Batch of %d accepted (messageId=%s, %.1fms)",
            len(eligible), data.get("messageId", "?"), duration_ms,
            extra={
                "channel": self.channel.value,
                "recipient_count": len(eligible),
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        return Delivered()


def build_email_transport(
    config: Settings,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> BrevoEmailTransport:
    """Build the Brevo transport from settings."""
    if not config.BREVO_API_KEY:
        logger.warning("BREVO_API_KEY is not set; email sends will be rejected by Brevo")
    return BrevoEmailTransport(
        api_key=config.BREVO_API_KEY,
        sender_address=config.EMAIL_SENDER_ADDRESS,
        sender_name=config.EMAIL_SENDER_NAME,
        subject=config.EMAIL_SUBJECT,
        api_url=config.BREVO_API_URL,
        client=client,
        timeout_seconds=config.HTTP_TIMEOUT_SECONDS,
    )
