"""
channels — Per-channel delivery transports.

Each transport implements ChannelTransport:
    async send(recipients, body) → ChannelOutcome

Transports filter their own recipients and never raise for delivery
problems. Concurrency and aggregation live in the dispatcher.
"""

from backend.app.messaging.channels.base import ChannelTransport, HttpChannelTransport
from backend.app.messaging.channels.email_brevo import BrevoEmailTransport, build_email_transport
from backend.app.messaging.channels.whatsapp import (
    LiveWhatsAppTransport,
    NoopWhatsAppTransport,
    build_whatsapp_transport,
)

__all__ = [
    "ChannelTransport",
    "HttpChannelTransport",
    "BrevoEmailTransport",
    "LiveWhatsAppTransport",
    "NoopWhatsAppTransport",
    "build_email_transport",
    "build_whatsapp_transport",
]
