"""
base.py — Transport interface shared by every channel.

A transport turns (recipients, body) into exactly one ChannelOutcome.
It filters recipients itself and converts every provider or network
problem into ``Failed``; ``send`` is not expected to raise.
"""

from __future__ import annotations

import abc
from typing import Any, Optional, Sequence

import httpx

from backend.app.messaging.models import ChannelOutcome, Failed, MessageChannel, Recipient

UNKNOWN_ERROR = "unknown error"


class ChannelTransport(abc.ABC):
    """One delivery mechanism for one channel."""

    channel: MessageChannel

    @property
    def mode(self) -> str:
        """Short label for health/introspection ("live", "simulated")."""
        return "live"

    @abc.abstractmethod
    async def send(self, recipients: Sequence[Recipient], body: str) -> ChannelOutcome:
        """Deliver ``body`` to the eligible subset of ``recipients``."""

    async def close(self) -> None:
        """Release any resources held by the transport."""


class HttpChannelTransport(ChannelTransport):
    """
    Transport that talks to a provider over HTTPS.

    A shared ``httpx.AsyncClient`` may be injected; otherwise one is
    created lazily and owned (and closed) by the transport.
    """

    def __init__(
        self,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 30.0,
    ):
        self.timeout_seconds = timeout_seconds
        self._http_client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self.timeout_seconds)
            self._owns_client = True
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client if this transport created it."""
        if self._owns_client and self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()


def failure_from_exception(exc: BaseException) -> Failed:
    return Failed(str(exc) or UNKNOWN_ERROR)


def failure_from_response(response: httpx.Response, message: Optional[Any]) -> Failed:
    """Prefer the provider's own message; fall back to the HTTP status."""
    if message:
        return Failed(str(message))
    return Failed(f"HTTP {response.status_code}")


def response_json(response: httpx.Response) -> dict:
    """Decode a provider response body, tolerating empty or non-JSON bodies."""
    if not response.content:
        return {}
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
