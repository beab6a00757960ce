"""
dispatcher.py — Multi-channel message dispatch orchestration.

This is the central coordinator that:
    1. Resolves which requested channels have a registered transport
    2. Hands the full recipient list to each of those transports
    3. Runs the transports concurrently and waits for all of them
    4. Reduces the per-channel outcomes into one DispatchResult

═══════════════════════════════════════════════════════════════════════════
ORCHESTRATION FLOW
═══════════════════════════════════════════════════════════════════════════

    Message(body, recipients, channels)
              │
              ▼
    ┌─────────────────────┐
    │  1. Resolve         │  requested ∩ registered, declaration order
    │     channels        │  unknown / unregistered ids are skipped
    └─────────┬───────────┘
              │
              ▼
    ┌─────────────────────┐
    │  2. Fan out         │  asyncio.gather over transports
    │                     │  each transport filters its own recipients
    └─────────┬───────────┘
              │  (join: every transport settles)
              ▼
    ┌─────────────────────┐
    │  3. Reduce          │  success ⇔ at least one channel delivered
    │                     │  otherwise "Email: …, WhatsApp: …"
    └─────────────────────┘

═══════════════════════════════════════════════════════════════════════════
AGGREGATION RULES
═══════════════════════════════════════════════════════════════════════════

    Invoked outcomes            success   error
    ─────────────────────────   ───────   ──────────────────────────────
    all delivered               True      None
    some delivered, some failed True      None  (inspect results)
    all failed                  False     "Email: <r>, WhatsApp: <r>"
    none invoked                False     "no channels selected"

In the combined error every known channel is listed; channels that
were not invoked read "N/A". There is no timeout, retry or
cancellation here: a transport runs until it settles.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import httpx

from backend.app.core.config import Settings, get_settings
from backend.app.core.errors import ConfigurationError
from backend.app.messaging.channels.base import ChannelTransport, failure_from_exception
from backend.app.messaging.channels.email_brevo import build_email_transport
from backend.app.messaging.channels.whatsapp import build_whatsapp_transport
from backend.app.messaging.models import (
    ChannelOutcome,
    DispatchResult,
    Message,
    MessageChannel,
    Recipient,
)

logger = logging.getLogger(__name__)

NO_CHANNELS_SELECTED = "no channels selected"
NOT_INVOKED = "N/A"


def combine_errors(results: Mapping[MessageChannel, ChannelOutcome]) -> str:
    """Format ``"Email: <reason>, WhatsApp: <reason>"`` over all channels."""
    parts = []
    for channel in MessageChannel:
        outcome = results.get(channel)
        reason = outcome.reason if outcome is not None and outcome.reason else NOT_INVOKED
        parts.append(f"{channel.label}: {reason}")
    return ", ".join(parts)


def reduce_outcomes(results: Mapping[MessageChannel, ChannelOutcome]) -> DispatchResult:
    """Fold per-channel outcomes into the aggregate result."""
    if not results:
        return DispatchResult(success=False, error=NO_CHANNELS_SELECTED)

    if any(outcome.succeeded for outcome in results.values()):
        return DispatchResult(success=True, results=results)

    return DispatchResult(success=False, error=combine_errors(results), results=results)


class MessageDispatcher:
    """
    Fan a Message out to channel transports and aggregate the outcomes.

    Holds only the channel → transport registry; every ``dispatch`` call
    is independent of the ones before it.

    Usage:
        dispatcher = MessageDispatcher({
            MessageChannel.EMAIL: BrevoEmailTransport(...),
            MessageChannel.WHATSAPP: NoopWhatsAppTransport(),
        })
        result = await dispatcher.dispatch(message)
    """

    def __init__(
        self,
        transports: Mapping[MessageChannel, ChannelTransport],
        *,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        for key, transport in transports.items():
            if transport.channel != key:
                raise ConfigurationError(
                    "transports",
                    f"{type(transport).__name__} handles {transport.channel.value!r}, "
                    f"registered under {getattr(key, 'value', key)!r}",
                )
        self._transports: Dict[MessageChannel, ChannelTransport] = dict(transports)
        self._http_client = http_client

    @property
    def registered_channels(self) -> Tuple[MessageChannel, ...]:
        return tuple(c for c in MessageChannel if c in self._transports)

    def transport_for(self, channel: MessageChannel) -> Optional[ChannelTransport]:
        return self._transports.get(channel)

    def resolve_channels(self, message: Message) -> List[MessageChannel]:
        """Requested channels that have a transport, in declaration order."""
        return [c for c in message.requested_channels() if c in self._transports]

    async def _invoke(
        self,
        channel: MessageChannel,
        recipients: Sequence[Recipient],
        body: str,
    ) -> ChannelOutcome:
        transport = self._transports[channel]
        try:
            return await transport.send(recipients, body)
        except Exception as exc:
            # Transports are not supposed to raise; keep the failure local.
            logger.exception(
                "Transport for %s raised instead of returning an outcome",
                channel.value,
                extra={"channel": channel.value},
            )
            return failure_from_exception(exc)

    async def dispatch(self, message: Message) -> DispatchResult:
        """
        Send ``message`` on every requested, registered channel.

        Parameters
        ----------
        message : Message

        Returns
        -------
        DispatchResult
            Never raises for channel-level problems.
        """
        started = time.perf_counter()
        channels = self.resolve_channels(message)

        if not channels:
            logger.warning(
                "Dispatch skipped: no registered channel among %s",
                sorted(message.channels),
                extra={"channels_requested": sorted(message.channels)},
            )
            return reduce_outcomes({})

        outcomes = await asyncio.gather(*(
            self._invoke(channel, message.recipients, message.body)
            for channel in channels
        ))
        result = reduce_outcomes(dict(zip(channels, outcomes)))

        duration_ms = (time.perf_counter() - started) * 1000
        logger.log(
            logging.INFO if result.success else logging.WARNING,
            "Dispatch to %d recipient(s) via %s: success=%s%s (%.1fms)",
            len(message.recipients),
            [c.value for c in channels],
            result.success,
            " (partial)" if result.is_partial else "",
            duration_ms,
            extra={
                "recipient_count": len(message.recipients),
                "channels_invoked": [c.value for c in channels],
                "duration_ms": duration_ms,
            },
        )
        return result

    def dispatch_sync(self, message: Message) -> DispatchResult:
        """Blocking wrapper for callers without a running event loop."""
        return asyncio.run(self._dispatch_then_release(message))

    async def _dispatch_then_release(self, message: Message) -> DispatchResult:
        # Clients opened inside asyncio.run are bound to that loop.
        try:
            return await self.dispatch(message)
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        """Close transports and any HTTP client handed to the dispatcher."""
        for transport in self._transports.values():
            await transport.close()
        if self._http_client is not None and not self._http_client.is_closed:
            await self._http_client.aclose()


def build_dispatcher(
    config: Optional[Settings] = None,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
) -> MessageDispatcher:
    """
    Wire the email and WhatsApp transports from settings.

    When ``http_client`` is given both live transports share it and the
    dispatcher closes it in ``aclose``.
    """
    config = config or get_settings()
    transports: Dict[MessageChannel, ChannelTransport] = {
        MessageChannel.EMAIL: build_email_transport(config, client=http_client),
        MessageChannel.WHATSAPP: build_whatsapp_transport(config, client=http_client),
    }
    return MessageDispatcher(transports, http_client=http_client)
