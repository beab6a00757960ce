"""
whatsapp.py — WhatsApp delivery channel.

Two implementations of the same transport interface:

    LiveWhatsAppTransport  — WhatsApp Cloud API, one POST per recipient
    NoopWhatsAppTransport  — simulation for deployments without
                             credentials; waits, logs, reports success

``build_whatsapp_transport`` picks one from settings. The two are never
mixed: a live transport never falls back to simulation.

═══════════════════════════════════════════════════════════════════════════
CLOUD API REQUEST
═══════════════════════════════════════════════════════════════════════════

    POST {WHATSAPP_API_URL}/{PHONE_NUMBER_ID}/messages
    Authorization: Bearer <WHATSAPP_ACCESS_TOKEN>

    {
      "messaging_product": "whatsapp",
      "to":   "+15551234567",
      "type": "text",
      "text": {"body": "hello"}
    }

Distinct destination numbers cannot share one request, so recipients
are sent one by one in input order. The first failing recipient fails
the channel and the remaining recipients are not attempted.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Sequence

import httpx

from backend.app.core.config import Settings
from backend.app.core.errors import ConfigurationError
from backend.app.messaging.channels.base import (
    ChannelTransport,
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

NO_PHONE_RECIPIENTS = "no valid phone recipients"

DEFAULT_API_URL = "https://graph.facebook.com/v17.0"

WHATSAPP_MODES = ("auto", "live", "simulation")


def build_text_message(phone: str, body: str) -> Dict[str, Any]:
    return {
        "messaging_product": "whatsapp",
        "to": phone.strip(),
        "type": "text",
        "text": {"body": body},
    }


def _provider_error(data: Dict[str, Any]) -> Optional[str]:
    error = data.get("error")
    if isinstance(error, dict):
        return error.get("message")
    return None


class LiveWhatsAppTransport(HttpChannelTransport):
    """WhatsApp Cloud API transport (one request per recipient)."""

    channel = MessageChannel.WHATSAPP

    def __init__(
        self,
        *,
        access_token: str,
        phone_number_id: str,
        api_url: str = DEFAULT_API_URL,
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 30.0,
    ):
        super().__init__(client=client, timeout_seconds=timeout_seconds)
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.api_url = api_url.rstrip("/")

    @property
    def messages_url(self) -> str:
        return f"{self.api_url}/{self.phone_number_id}/messages"

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }

    async def _send_one(
        self,
        client: httpx.AsyncClient,
        recipient: Recipient,
        body: str,
    ) -> Optional[Failed]:
        """Send to a single number; return a Failed on error, else None."""
        start = time.perf_counter()
        try:
            response = await client.post(
                self.messages_url,
                json=build_text_message(recipient.phone, body),
                headers=self._headers(),
            )
        except Exception as exc:
            logger.error(
                "[WHATSAPP] Request for %s failed: %s",
                recipient.recipient_id, exc,
                extra={"channel": self.channel.value},
            )
            return failure_from_exception(exc)

        duration_ms = (time.perf_counter() - start) * 1000
        if not response.is_success:
            logger.warning(
                "[WHATSAPP] %s (%s) → %d (%.1fms)",
                recipient.phone, recipient.recipient_id,
                response.status_code, duration_ms,
                extra={
                    "channel": self.channel.value,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                },
            )
            return failure_from_response(response, _provider_error(response_json(response)))

        logger.debug(
            "[WHATSAPP] %s (%s) → %d (%.1fms)",
            recipient.phone, recipient.recipient_id,
            response.status_code, duration_ms,
        )
        return None

    async def send(self, recipients: Sequence[Recipient], body: str) -> ChannelOutcome:
        eligible: List[Recipient] = filter_for_channel(recipients, self.channel)
        if not eligible:
            return Failed(NO_PHONE_RECIPIENTS)

        try:
            client = await self._get_client()
        except Exception as exc:
            return failure_from_exception(exc)

        for recipient in eligible:
            failure = await self._send_one(client, recipient, body)
            if failure is not None:
                return failure

        logger.info(
            "[WHATSAPP] Sent to %d recipient(s)", len(eligible),
            extra={"channel": self.channel.value, "recipient_count": len(eligible)},
        )
        return Delivered()


class NoopWhatsAppTransport(ChannelTransport):
    """
    Simulated WhatsApp transport.

    Performs no network call: waits ``delay_seconds`` once to mimic
    provider latency, logs the messages that would have been sent and
    always reports Delivered. The eligibility check still applies.
    """

    channel = MessageChannel.WHATSAPP

    def __init__(self, *, delay_seconds: float = 1.0):
        self.delay_seconds = delay_seconds

    @property
    def mode(self) -> str:
        return "simulated"

    async def send(self, recipients: Sequence[Recipient], body: str) -> ChannelOutcome:
        eligible = filter_for_channel(recipients, self.channel)
        if not eligible:
            return Failed(NO_PHONE_RECIPIENTS)

        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)

        for recipient in eligible:
            logger.info(
                "[WHATSAPP/SIM] Would send to %s (%s): %d chars",
                recipient.phone, recipient.name, len(body),
                extra={"channel": self.channel.value},
            )
        return Delivered()


def build_whatsapp_transport(
    config: Settings,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> ChannelTransport:
    """
    Select the WhatsApp transport for this deployment.

    WHATSAPP_MODE:
        "simulation" → NoopWhatsAppTransport
        "live"       → LiveWhatsAppTransport (credentials required)
        "auto"       → live when credentials are set, else simulation
    """
    mode = config.WHATSAPP_MODE.strip().lower()
    if mode not in WHATSAPP_MODES:
        raise ConfigurationError(
            "WHATSAPP_MODE",
            f"must be one of {list(WHATSAPP_MODES)}, got '{config.WHATSAPP_MODE}'",
        )

    if mode == "live" and not config.whatsapp_live_configured:
        raise ConfigurationError(
            "WHATSAPP_ACCESS_TOKEN",
            "live mode requires WHATSAPP_ACCESS_TOKEN and WHATSAPP_PHONE_NUMBER_ID",
        )

    if mode == "simulation" or not config.whatsapp_live_configured:
        logger.info("WhatsApp transport: simulation (delay=%.1fs)", config.WHATSAPP_SIMULATED_DELAY)
        return NoopWhatsAppTransport(delay_seconds=config.WHATSAPP_SIMULATED_DELAY)

    logger.info("WhatsApp transport: live (%s)", config.WHATSAPP_API_URL)
    return LiveWhatsAppTransport(
        access_token=config.WHATSAPP_ACCESS_TOKEN,
        phone_number_id=config.WHATSAPP_PHONE_NUMBER_ID,
        api_url=config.WHATSAPP_API_URL,
        client=client,
        timeout_seconds=config.HTTP_TIMEOUT_SECONDS,
    )
