"""
models.py — Value objects shared across the messaging dispatcher.

Defines:
    • MessageChannel  — delivery channel enum
    • Recipient       — a contact with optional email / phone
    • Message         — body + recipients + requested channel ids
    • ChannelOutcome  — Delivered | Failed(reason), one per invoked channel
    • DispatchResult  — aggregate verdict over all invoked channels

All types are frozen and built fresh for every dispatch; nothing here
is shared between calls.

═══════════════════════════════════════════════════════════════════════════
CHANNEL ELIGIBILITY
═══════════════════════════════════════════════════════════════════════════

    Channel      Contact field    Transport call shape
    ─────────    ─────────────    ─────────────────────────────────
    email        Recipient.email  one batched request for everyone
    whatsapp     Recipient.phone  one request per recipient

A recipient without the field is silently left out of that channel.
No contact field is required at construction time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, Iterator, Mapping, Optional, Tuple, Union


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class MessageChannel(str, Enum):
    """Available delivery channels, in reporting order."""
    EMAIL    = "email"
    WHATSAPP = "whatsapp"

    @property
    def label(self) -> str:
        """Human-readable name used in combined error strings."""
        return _CHANNEL_LABELS[self]

    @classmethod
    def parse(cls, value: str) -> Optional["MessageChannel"]:
        """Return the channel whose id is exactly ``value``, else None."""
        try:
            return cls(value)
        except ValueError:
            return None


_CHANNEL_LABELS = {
    MessageChannel.EMAIL: "Email",
    MessageChannel.WHATSAPP: "WhatsApp",
}


# ═══════════════════════════════════════════════════════════════════════════
# Recipients & Messages
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Recipient:
    """
    A target contact for message delivery.

    Attributes
    ----------
    recipient_id : str
        Opaque identifier supplied by the caller.
    name : str
        Display name (used as the email "to" name).
    email : str | None
        Email address.
    phone : str | None
        Phone number for WhatsApp (E.164: +15551234567).
    """
    recipient_id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None

    def has_contact_for(self, channel: MessageChannel) -> bool:
        if channel == MessageChannel.EMAIL:
            return _present(self.email)
        if channel == MessageChannel.WHATSAPP:
            return _present(self.phone)
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.recipient_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
        }


def _present(value: Optional[str]) -> bool:
    return bool(value and value.strip())


@dataclass(frozen=True)
class Message:
    """
    A logical message to fan out.

    ``channels`` holds the raw identifiers as supplied; unknown ones are
    kept here and ignored at dispatch time. Recipients keep their input
    order and are not de-duplicated.
    """
    body: str
    recipients: Tuple[Recipient, ...] = ()
    channels: FrozenSet[str] = frozenset()

    @classmethod
    def create(
        cls,
        body: str,
        recipients: Iterable[Recipient] = (),
        channels: Iterable[Union[str, MessageChannel]] = (),
    ) -> "Message":
        return cls(
            body=body,
            recipients=tuple(recipients),
            channels=frozenset(
                c.value if isinstance(c, MessageChannel) else c for c in channels
            ),
        )

    def requested_channels(self) -> Iterator[MessageChannel]:
        """Known channels present in ``channels``, in declaration order."""
        parsed = {MessageChannel.parse(c) for c in self.channels}
        for channel in MessageChannel:
            if channel in parsed:
                yield channel


# ═══════════════════════════════════════════════════════════════════════════
# Outcomes
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Delivered:
    """The channel reported the whole send as accepted."""
    succeeded: bool = field(default=True, init=False)
    reason: Optional[str] = field(default=None, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"success": True, "error": None}


@dataclass(frozen=True)
class Failed:
    """The channel did not deliver; ``reason`` says why."""
    reason: str
    succeeded: bool = field(default=False, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "error": self.reason}


ChannelOutcome = Union[Delivered, Failed]


@dataclass(frozen=True)
class DispatchResult:
    """
    Aggregate verdict for one dispatch.

    ``results`` has exactly one entry per invoked channel. A channel that
    was not requested (or has no transport) has no entry; absence is not
    failure.
    """
    success: bool
    error: Optional[str] = None
    results: Mapping[MessageChannel, ChannelOutcome] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def __post_init__(self) -> None:
        if not isinstance(self.results, MappingProxyType):
            object.__setattr__(self, "results", MappingProxyType(dict(self.results)))

    @property
    def succeeded_channels(self) -> Tuple[MessageChannel, ...]:
        return tuple(c for c, o in self.results.items() if o.succeeded)

    @property
    def failed_channels(self) -> Tuple[MessageChannel, ...]:
        return tuple(c for c, o in self.results.items() if not o.succeeded)

    @property
    def is_partial(self) -> bool:
        """True when some, but not all, invoked channels delivered."""
        return bool(self.succeeded_channels) and bool(self.failed_channels)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "error": self.error,
            "results": {c.value: o.to_dict() for c, o in self.results.items()},
        }
