"""
Pydantic models for API boundaries and stream events.
Why: contract-first payloads; each broadcast call site gets a typed event body.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Generic, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def format_frame(payload: Dict[str, Any]) -> str:
    """Render one SSE frame: ``data: <json>`` followed by a blank line."""
    return f"data: {json.dumps(payload, ensure_ascii=False, default=str)}\n\n"


class EventType(str, Enum):
    CONNECTED = "connected"
    MESSAGE = "message"
    TYPING = "typing"
    DELIVERY_STATUS = "delivery_status"
    SYSTEM = "system"
    PING = "ping"


class StreamEvent(BaseModel, Generic[T]):
    type: EventType
    data: Optional[T] = None
    timestamp: str = Field(default_factory=utc_now_iso)

    def to_frame(self) -> str:
        return format_frame(self.model_dump(mode="json", by_alias=True, exclude_none=True))


class ChatMessage(BaseModel):
    id: Optional[str] = None
    sender_id: str = Field(alias="senderId")
    content: str
    sent_at: str = Field(default_factory=utc_now_iso, alias="sentAt")

    model_config = ConfigDict(populate_by_name=True)


class TypingIndicator(BaseModel):
    user_id: str = Field(alias="userId")
    user_name: Optional[str] = Field(default=None, alias="userName")
    is_typing: bool = Field(alias="isTyping")

    model_config = ConfigDict(populate_by_name=True)


class DeliveryStatus(BaseModel):
    message_id: str = Field(alias="messageId")
    status: str

    model_config = ConfigDict(populate_by_name=True)


class SystemNotice(BaseModel):
    type: str
    title: str
    content: str
    data: Optional[Dict[str, Any]] = None


# --- request bodies -------------------------------------------------------


class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=2000)
    message_id: Optional[str] = Field(default=None, alias="messageId")

    model_config = ConfigDict(populate_by_name=True)


class TypingUpdate(BaseModel):
    is_typing: bool = Field(alias="isTyping")
    user_name: Optional[str] = Field(default=None, alias="userName", max_length=100)

    model_config = ConfigDict(populate_by_name=True)


class ArtistCategory(str, Enum):
    DJ = "DJ"
    BAND = "BAND"
    SINGER = "SINGER"
    MUSICIAN = "MUSICIAN"
    MC = "MC"
    COMEDIAN = "COMEDIAN"
    MAGICIAN = "MAGICIAN"
    DANCER = "DANCER"
    PHOTOGRAPHER = "PHOTOGRAPHER"
    SPEAKER = "SPEAKER"


class ArtistSearchParams(BaseModel):
    category: Optional[ArtistCategory] = None
    city: Optional[str] = Field(default=None, max_length=100)
    limit: int = Field(default=20, ge=1, le=50)
    verified: Optional[bool] = None

    def cache_params(self) -> Dict[str, Any]:
        params = self.model_dump(mode="json")
        if params.get("city"):
            params["city"] = params["city"].strip().lower()
        return params


class DeliveryStatusUpdate(BaseModel):
    message_id: str = Field(alias="messageId", min_length=1)
    status: Literal["sent", "delivered", "read"]
    target_user_id: Optional[str] = Field(default=None, alias="targetUserId")

    model_config = ConfigDict(populate_by_name=True)
