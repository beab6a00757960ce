"""
recipient_filter.py — Per-channel recipient eligibility.

Each transport calls ``filter_for_channel`` on the full recipient list
it receives, so the orchestrator never needs to know which contact
field a channel uses.
"""

from __future__ import annotations

import logging
from typing import Iterable, List

from backend.app.messaging.models import MessageChannel, Recipient

logger = logging.getLogger(__name__)


def filter_for_channel(
    recipients: Iterable[Recipient],
    channel: MessageChannel,
) -> List[Recipient]:
    """
    Keep only recipients reachable on ``channel``.

    Parameters
    ----------
    recipients : iterable of Recipient
        Input order is preserved in the result.
    channel : MessageChannel
        EMAIL needs a non-empty email, WHATSAPP a non-empty phone.

    Returns
    -------
    list of Recipient
        Possibly empty; never raises for missing contact fields.
    """
    eligible: List[Recipient] = []
    skipped = 0
    for recipient in recipients:
        if recipient.has_contact_for(channel):
            eligible.append(recipient)
        else:
            skipped += 1

    if skipped:
        logger.debug(
            "Skipping %d recipient(s) without %s contact",
            skipped, channel.value,
        )
    return eligible
