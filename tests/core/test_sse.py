"""Tests for the SSE broadcast registry."""

import json

import pytest

from brightears.core.schemas import ChatMessage, EventType, StreamEvent, SystemNotice
from brightears.core.sse import (
    BroadcastRegistry,
    ConnectionState,
    DuplicateConnectionError,
    QueueSink,
    SendResult,
    new_connection_id,
)


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class RecordingSink:
    def __init__(self, fail: bool = False, raises: bool = False) -> None:
        self.frames = []
        self.fail = fail
        self.raises = raises
        self.closed = False

    def send(self, frame: str) -> SendResult:
        if self.raises:
            raise RuntimeError("socket already closed")
        if self.fail:
            return SendResult.failed("stream closed")
        self.frames.append(frame)
        return SendResult.success()

    def close(self) -> None:
        self.closed = True

    def events(self):
        return [json.loads(frame[len("data: "):]) for frame in self.frames]


def _message(text: str = "hi") -> StreamEvent:
    return StreamEvent(type=EventType.MESSAGE, data={"text": text})


@pytest.fixture
def registry():
    return BroadcastRegistry()


def test_add_connection_counts_per_topic(registry):
    registry.add_connection("c1", RecordingSink(), "u1", "booking-42")
    registry.add_connection("c2", RecordingSink(), "u2", "booking-42")
    registry.add_connection("c3", RecordingSink(), "u3", "booking-99")
    assert registry.get_active_connections_count("booking-42") == 2
    assert registry.get_active_connections_count("booking-99") == 1
    assert registry.get_active_connections_count("booking-0") == 0
    assert registry.get_active_connections_count() == 3


def test_duplicate_connection_id_is_rejected(registry):
    registry.add_connection("c1", RecordingSink(), "u1", "booking-42")
    with pytest.raises(DuplicateConnectionError):
        registry.add_connection("c1", RecordingSink(), "u2", "booking-42")
    assert registry.get_active_connections_count("booking-42") == 1


def test_remove_connection_is_idempotent(registry):
    sink = RecordingSink()
    connection = registry.add_connection("c1", sink, "u1", "booking-42")
    assert registry.remove_connection("c1") is True
    assert registry.remove_connection("c1") is False
    assert registry.remove_connection("never-added") is False
    assert connection.state is ConnectionState.CLOSED
    assert sink.closed is True


def test_publish_fans_out_to_topic_only(registry):
    on_topic = [RecordingSink() for _ in range(3)]
    elsewhere = RecordingSink()
    for i, sink in enumerate(on_topic):
        registry.add_connection(f"c{i}", sink, f"u{i}", "booking-42")
    registry.add_connection("other", elsewhere, "u9", "booking-99")

    assert registry.publish("booking-42", _message()) == 3
    for sink in on_topic:
        assert len(sink.frames) == 1
    assert elsewhere.frames == []


def test_publish_frame_format(registry):
    sink = RecordingSink()
    registry.add_connection("c1", sink, "u1", "booking-42")
    registry.publish("booking-42", _message("hello"))

    frame = sink.frames[0]
    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    payload = sink.events()[0]
    assert payload["type"] == "message"
    assert payload["data"] == {"text": "hello"}
    assert payload["timestamp"].endswith("Z")


def test_publish_to_empty_topic(registry):
    assert registry.publish("nobody-here", _message()) == 0


def test_failing_sink_is_isolated_and_removed(registry):
    good = [RecordingSink(), RecordingSink()]
    bad = RecordingSink(raises=True)
    registry.add_connection("good-1", good[0], "u1", "booking-42")
    registry.add_connection("bad", bad, "u2", "booking-42")
    registry.add_connection("good-2", good[1], "u3", "booking-42")

    assert registry.publish("booking-42", _message()) == 2
    assert all(len(s.frames) == 1 for s in good)
    assert registry.get_connection("bad") is None
    assert bad.closed is True
    assert registry.get_active_connections_count("booking-42") == 2


def test_failed_send_result_is_treated_as_disconnect(registry):
    registry.add_connection("c1", RecordingSink(fail=True), "u1", "booking-42")
    registry.add_connection("c2", RecordingSink(), "u2", "booking-42")
    assert registry.publish("booking-42", _message()) == 1
    assert registry.get_active_connections_count("booking-42") == 1


def test_late_joiner_gets_no_backlog(registry):
    early = RecordingSink()
    registry.add_connection("early", early, "u1", "booking-42")
    registry.publish("booking-42", _message("first"))

    late = RecordingSink()
    registry.add_connection("late", late, "u2", "booking-42")
    registry.publish("booking-42", _message("second"))

    assert [e["data"]["text"] for e in early.events()] == ["first", "second"]
    assert [e["data"]["text"] for e in late.events()] == ["second"]


def test_end_to_end_scenario(registry):
    a, b = RecordingSink(), RecordingSink()
    registry.add_connection("a", a, "alice", "T")
    assert registry.get_active_connections_count("T") == 1
    registry.add_connection("b", b, "bob", "T")
    assert registry.get_active_connections_count("T") == 2

    registry.publish("T", StreamEvent(type=EventType.MESSAGE, data={"text": "hi"}))
    assert len(a.frames) == 1 and len(b.frames) == 1

    registry.remove_connection("a")
    assert registry.get_active_connections_count("T") == 1

    registry.publish("T", StreamEvent(type=EventType.MESSAGE, data={"text": "again"}))
    assert len(a.frames) == 1
    assert len(b.frames) == 2


def test_send_ping(registry):
    sink = RecordingSink()
    registry.add_connection("c1", sink, "u1", "booking-42")
    assert registry.send_ping("c1") is True
    assert sink.events()[0]["type"] == "ping"


def test_send_ping_unknown_connection(registry):
    assert registry.send_ping("missing") is False


def test_failed_ping_removes_connection(registry):
    registry.add_connection("c1", RecordingSink(raises=True), "u1", "booking-42")
    assert registry.send_ping("c1") is False
    assert registry.get_active_connections_count("booking-42") == 0


def test_broadcast_typing_skips_sender(registry):
    sender, other = RecordingSink(), RecordingSink()
    registry.add_connection("s", sender, "alice", "booking-42")
    registry.add_connection("o", other, "bob", "booking-42")

    assert registry.broadcast_typing("booking-42", "alice", True, "Alice") == 1
    assert sender.frames == []
    event = other.events()[0]
    assert event["type"] == "typing"
    assert event["data"] == {"userId": "alice", "userName": "Alice", "isTyping": True}


def test_broadcast_message_uses_camel_case(registry):
    sink = RecordingSink()
    registry.add_connection("c1", sink, "bob", "booking-42")
    registry.broadcast_message("booking-42", ChatMessage(id="m1", sender_id="alice", content="hey"))
    data = sink.events()[0]["data"]
    assert data["senderId"] == "alice"
    assert data["content"] == "hey"
    assert "sentAt" in data


def test_targeted_broadcasts(registry):
    alice, bob = RecordingSink(), RecordingSink()
    registry.add_connection("a", alice, "alice", "booking-42")
    registry.add_connection("b", bob, "bob", "booking-42")

    assert registry.broadcast_delivery_status("booking-42", "m1", "read", target_subject="alice") == 1
    assert alice.events()[0]["data"] == {"messageId": "m1", "status": "read"}
    assert bob.frames == []

    notice = SystemNotice(type="booking_confirmed", title="Confirmed", content="See you there")
    assert registry.broadcast_system_message("booking-42", notice) == 2


def test_cleanup_stale_connections():
    clock = FakeClock()
    registry = BroadcastRegistry(clock=clock)
    registry.add_connection("quiet", RecordingSink(), "u1", "booking-42")
    registry.add_connection("chatty", RecordingSink(), "u2", "booking-42")

    clock.now = 200
    registry.send_ping("chatty")
    clock.now = 301

    assert registry.cleanup_stale_connections(max_age=300) == 1
    assert registry.get_connection("quiet") is None
    assert registry.get_connection("chatty") is not None


def test_connection_info(registry):
    registry.add_connection("c1", RecordingSink(), "alice", "booking-42")
    registry.add_connection("c2", RecordingSink(), "alice", "booking-99")
    registry.add_connection("c3", RecordingSink(), "bob", "booking-42")
    info = registry.get_connection_info()
    assert info["total_connections"] == 3
    assert info["connections_by_topic"] == {"booking-42": 2, "booking-99": 1}
    assert info["connections_by_subject"] == {"alice": 2, "bob": 1}


def test_close_all(registry):
    sinks = [RecordingSink(), RecordingSink()]
    registry.add_connection("c1", sinks[0], "u1", "booking-42")
    registry.add_connection("c2", sinks[1], "u2", "booking-99")
    assert registry.close_all() == 2
    assert registry.get_active_connections_count() == 0
    assert all(s.closed for s in sinks)


def test_new_connection_ids_are_unique():
    ids = {new_connection_id("alice", "booking-42") for _ in range(100)}
    assert len(ids) == 100
    assert all(i.startswith("alice-booking-42-") for i in ids)


def test_queue_sink_rejects_when_full_or_closed():
    sink = QueueSink(maxsize=1)
    assert sink.send("data: 1\n\n").ok is True
    full = sink.send("data: 2\n\n")
    assert full.ok is False
    assert full.error == "sink queue full"

    sink = QueueSink(maxsize=2)
    sink.close()
    assert sink.send("data: 1\n\n") == SendResult.failed("sink closed")
