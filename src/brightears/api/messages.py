"""Booking conversation endpoints: the live event stream and the calls that feed it."""

import uuid

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from ..config.settings import Settings
from ..core.logging import get_logger
from ..core.schemas import (
    ChatMessage,
    DeliveryStatusUpdate,
    MessageCreate,
    TypingUpdate,
    format_frame,
    utc_now_iso,
)
from ..core.sse import (
    BroadcastRegistry,
    DuplicateConnectionError,
    QueueSink,
    event_stream,
    new_connection_id,
)
from .dependencies import get_current_subject, get_registry, get_settings, require_booking_access

_LOG = get_logger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

router = APIRouter(prefix="/api/messages", tags=["messages"])


@router.get("/stream/{booking_id}")
async def stream_booking(
    booking_id: str,
    request: Request,
    subject: str = Depends(get_current_subject),
    registry: BroadcastRegistry = Depends(get_registry),
    settings: Settings = Depends(get_settings),
) -> StreamingResponse:
    """Open a live event stream for one booking conversation."""
    require_booking_access(request, subject, booking_id)

    sink = QueueSink(maxsize=settings.stream.queue_size)
    connection_id = new_connection_id(subject, booking_id)
    try:
        registry.add_connection(connection_id, sink, subject, booking_id)
    except DuplicateConnectionError:
        connection_id = new_connection_id(subject, booking_id)
        registry.add_connection(connection_id, sink, subject, booking_id)

    active = registry.get_active_connections_count(booking_id)
    sink.send(
        format_frame(
            {
                "type": "connected",
                "connectionId": connection_id,
                "activeConnections": active,
                "timestamp": utc_now_iso(),
            }
        )
    )
    _LOG.info(
        f"Stream opened for booking {booking_id}",
        extra={"topic": booking_id, "connection_id": connection_id, "active_connections": active},
    )
    return StreamingResponse(
        event_stream(
            registry,
            connection_id,
            sink,
            ping_interval=settings.stream.ping_interval,
            is_disconnected=request.is_disconnected,
        ),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("/typing/{booking_id}")
async def update_typing(
    booking_id: str,
    body: TypingUpdate,
    request: Request,
    subject: str = Depends(get_current_subject),
    registry: BroadcastRegistry = Depends(get_registry),
) -> dict:
    require_booking_access(request, subject, booking_id)
    delivered = registry.broadcast_typing(booking_id, subject, body.is_typing, body.user_name)
    return {
        "success": True,
        "isTyping": body.is_typing,
        "userId": subject,
        "userName": body.user_name,
        "delivered": delivered,
    }


@router.post("/status/{booking_id}")
async def update_delivery_status(
    booking_id: str,
    body: DeliveryStatusUpdate,
    request: Request,
    subject: str = Depends(get_current_subject),
    registry: BroadcastRegistry = Depends(get_registry),
) -> dict:
    require_booking_access(request, subject, booking_id)
    delivered = registry.broadcast_delivery_status(
        booking_id, body.message_id, body.status, target_subject=body.target_user_id
    )
    return {"success": True, "delivered": delivered}


@router.post("/{booking_id}")
async def post_message(
    booking_id: str,
    body: MessageCreate,
    request: Request,
    subject: str = Depends(get_current_subject),
    registry: BroadcastRegistry = Depends(get_registry),
) -> dict:
    """Relay a message to everyone watching the booking.

    The message is assumed persisted upstream; the stream only nudges clients.
    """
    require_booking_access(request, subject, booking_id)
    message = ChatMessage(
        id=body.message_id or uuid.uuid4().hex,
        sender_id=subject,
        content=body.content,
    )
    delivered = registry.broadcast_message(booking_id, message)
    return {
        "success": True,
        "message": message.model_dump(mode="json", by_alias=True),
        "delivered": delivered,
    }
