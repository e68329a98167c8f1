import json

import pytest
from pydantic import ValidationError

from brightears.core.schemas import (
    ArtistCategory,
    ArtistSearchParams,
    EventType,
    MessageCreate,
    StreamEvent,
    TypingUpdate,
    format_frame,
)


def test_format_frame():
    assert format_frame({"type": "ping"}) == 'data: {"type": "ping"}\n\n'


def test_stream_event_frame_omits_empty_data():
    frame = StreamEvent(type=EventType.PING, timestamp="2026-01-01T00:00:00Z").to_frame()
    assert json.loads(frame[len("data: "):]) == {"type": "ping", "timestamp": "2026-01-01T00:00:00Z"}


def test_search_params_defaults_and_bounds():
    params = ArtistSearchParams()
    assert params.limit == 20
    with pytest.raises(ValidationError):
        ArtistSearchParams(limit=51)
    with pytest.raises(ValidationError):
        ArtistSearchParams(category="JUGGLER")


def test_search_params_cache_params_normalise_city():
    params = ArtistSearchParams(category=ArtistCategory.DJ, city="  Bangkok ")
    assert params.cache_params() == {"category": "DJ", "city": "bangkok", "limit": 20, "verified": None}


def test_request_bodies_accept_camel_case():
    assert TypingUpdate.model_validate({"isTyping": True}).is_typing is True
    assert MessageCreate.model_validate({"content": "hi", "messageId": "m1"}).message_id == "m1"
    with pytest.raises(ValidationError):
        MessageCreate(content="")
