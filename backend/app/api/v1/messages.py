"""
FastAPI route: Multi-channel message sending endpoint.

Provides endpoints to:
    POST /api/v1/messages/send       — dispatch a message
    GET  /api/v1/messages/channels   — list registered channels
    GET  /api/v1/messages/health     — service health
"""

from __future__ import annotations

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from backend.app.core.errors import ConfigurationError, DispatchFailedError
from backend.app.core.middleware import bind_dispatch_context, record_dispatch_result
from backend.app.messaging.dispatcher import MessageDispatcher
from backend.app.messaging.models import Message, MessageChannel, Recipient

router = APIRouter(prefix="/api/v1/messages", tags=["messaging"])


# ---------------------------------------------------------------------------
# Request / Response Schemas
# ---------------------------------------------------------------------------

class RecipientInput(BaseModel):
    """A single message recipient."""
    id: str = Field(..., description="Opaque recipient identifier", examples=["1"])
    name: str = Field(..., description="Display name", examples=["Amina"])
    email: Optional[str] = Field(None, examples=["amina@example.com"])
    phone: Optional[str] = Field(None, examples=["+15551234567"])


class SendMessageRequest(BaseModel):
    """Message to fan out across the requested channels."""
    content: str = Field(..., description="Message body", examples=["hello"])
    recipients: List[RecipientInput] = Field(
        default_factory=list,
        description="Recipients; each channel uses those with its contact field",
    )
    channels: List[str] = Field(
        default_factory=list,
        examples=[["email", "whatsapp"]],
        description="Requested channels; unknown identifiers are ignored",
    )
    strict: bool = Field(
        False,
        description="If True, respond 502 when no channel delivered",
    )


class ChannelResult(BaseModel):
    success: bool
    error: Optional[str] = None


class SendMessageResponse(BaseModel):
    """Aggregate dispatch result."""
    success: bool
    error: Optional[str] = None
    results: Dict[str, ChannelResult] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Helper Functions
# ---------------------------------------------------------------------------

def get_dispatcher(request: Request) -> MessageDispatcher:
    """Dispatcher built in the application lifespan."""
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        raise ConfigurationError("dispatcher", "not initialised")
    return dispatcher


def _to_recipient(r: RecipientInput) -> Recipient:
    """Convert Pydantic model to dataclass."""
    return Recipient(
        recipient_id=r.id,
        name=r.name,
        email=r.email,
        phone=r.phone,
    )


def _to_message(request: SendMessageRequest) -> Message:
    return Message.create(
        body=request.content,
        recipients=[_to_recipient(r) for r in request.recipients],
        channels=request.channels,
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/send",
    response_model=SendMessageResponse,
    summary="Send a message on one or more channels",
    description=(
        "Runs every requested channel concurrently. Succeeds when at least "
        "one channel delivered; per-channel outcomes are in `results`."
    ),
)
async def send_message(
    payload: SendMessageRequest,
    request: Request,
    dispatcher: MessageDispatcher = Depends(get_dispatcher),
):
    """Dispatch a message and return the aggregate result."""
    message = _to_message(payload)
    bind_dispatch_context(message)
    result = await dispatcher.dispatch(message)
    record_dispatch_result(request, result)
    body = result.to_dict()

    if payload.strict and not result.success:
        raise DispatchFailedError(result.error or "dispatch failed", body["results"])

    return SendMessageResponse(**body)


@router.get(
    "/channels",
    summary="List available channels",
)
async def list_channels(dispatcher: MessageDispatcher = Depends(get_dispatcher)):
    """List known channels and the transport behind each."""
    return {
        "channels": [
            {
                "name": channel.value,
                "label": channel.label,
                "registered": dispatcher.transport_for(channel) is not None,
                "mode": (
                    dispatcher.transport_for(channel).mode
                    if dispatcher.transport_for(channel) else None
                ),
            }
            for channel in MessageChannel
        ],
    }


@router.get(
    "/health",
    summary="Messaging service health check",
)
async def health(dispatcher: MessageDispatcher = Depends(get_dispatcher)):
    """Check messaging service health."""
    return {
        "status": "healthy" if dispatcher.registered_channels else "unhealthy",
        "service": "messaging",
        "channels_registered": [c.value for c in dispatcher.registered_channels],
    }
