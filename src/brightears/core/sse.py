"""
Server-Sent-Events connection registry for live booking conversations.

Connections are grouped by topic (a booking id). ``publish`` renders a frame
once and writes it to every open connection on the topic. Delivery is
best-effort and at-most-once: there is no backlog for late joiners, and a
connection whose sink fails is dropped without affecting the others.

Sinks report the outcome of a write with :class:`SendResult` rather than
raising; the registry still treats an exception from a misbehaving sink as a
failed write.
"""

import asyncio
import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Protocol

from .logging import get_logger
from .metrics import metrics
from .schemas import (
    ChatMessage,
    DeliveryStatus,
    EventType,
    StreamEvent,
    SystemNotice,
    TypingIndicator,
)

_LOG = get_logger(__name__)

STREAM_CLOSED = None  # queue sentinel that ends a stream


class DuplicateConnectionError(ValueError):
    """Raised when a connection id is already registered."""

    def __init__(self, connection_id: str) -> None:
        self.connection_id = connection_id
        super().__init__(f"Connection {connection_id} is already registered")


@dataclass(frozen=True)
class SendResult:
    ok: bool
    error: Optional[str] = None

    @classmethod
    def success(cls) -> "SendResult":
        return cls(ok=True)

    @classmethod
    def failed(cls, error: str) -> "SendResult":
        return cls(ok=False, error=error)


class Sink(Protocol):
    def send(self, frame: str) -> SendResult: ...

    def close(self) -> None: ...


class QueueSink:
    """Bounded asyncio queue feeding one HTTP event stream.

    A full queue means the reader stopped draining; the write fails instead
    of buffering without limit.
    """

    def __init__(self, maxsize: int = 100) -> None:
        self.queue: "asyncio.Queue[Optional[str]]" = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    def send(self, frame: str) -> SendResult:
        if self.closed:
            return SendResult.failed("sink closed")
        try:
            self.queue.put_nowait(frame)
        except asyncio.QueueFull:
            return SendResult.failed("sink queue full")
        return SendResult.success()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self.queue.put_nowait(STREAM_CLOSED)
        except asyncio.QueueFull:
            # Reader drains the queue, then its next ping finds the connection gone.
            pass


class ConnectionState(Enum):
    OPEN = "open"
    CLOSED = "closed"


@dataclass
class Connection:
    id: str
    topic: str
    subject: str
    sink: Sink
    opened_at: float
    last_ping_at: float
    state: ConnectionState = field(default=ConnectionState.OPEN)


def new_connection_id(subject: str, topic: str) -> str:
    """Subject, topic and creation instant, plus a random suffix for same-millisecond reconnects."""
    return f"{subject}-{topic}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"


class BroadcastRegistry:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._connections: Dict[str, Connection] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def add_connection(self, connection_id: str, sink: Sink, subject: str, topic: str) -> Connection:
        now = self._clock()
        with self._lock:
            if connection_id in self._connections:
                raise DuplicateConnectionError(connection_id)
            connection = Connection(
                id=connection_id,
                topic=topic,
                subject=subject,
                sink=sink,
                opened_at=now,
                last_ping_at=now,
            )
            self._connections[connection_id] = connection
        _LOG.info(
            "Stream connection opened",
            extra={"connection_id": connection_id, "topic": topic, "subject": subject},
        )
        return connection

    def remove_connection(self, connection_id: str) -> bool:
        """Idempotent: a disconnect and an explicit cleanup may both get here."""
        with self._lock:
            connection = self._connections.pop(connection_id, None)
        if connection is None:
            return False
        connection.state = ConnectionState.CLOSED
        try:
            connection.sink.close()
        except Exception:
            _LOG.warning(
                "Sink close failed",
                extra={"connection_id": connection_id, "topic": connection.topic},
                exc_info=True,
            )
        _LOG.info(
            "Stream connection closed",
            extra={"connection_id": connection_id, "topic": connection.topic},
        )
        return True

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        with self._lock:
            return self._connections.get(connection_id)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def publish(
        self,
        topic: str,
        event: StreamEvent[Any],
        exclude_subject: Optional[str] = None,
        target_subject: Optional[str] = None,
    ) -> int:
        """Fan ``event`` out to the topic; returns how many connections received it."""
        frame = event.to_frame()
        delivered = 0
        for connection in self._snapshot(topic):
            if exclude_subject is not None and connection.subject == exclude_subject:
                continue
            if target_subject is not None and connection.subject != target_subject:
                continue
            if self._deliver(connection, frame):
                delivered += 1
        return delivered

    def send_ping(self, connection_id: str) -> bool:
        connection = self.get_connection(connection_id)
        if connection is None:
            return False
        return self._deliver(connection, StreamEvent(type=EventType.PING).to_frame())

    def broadcast_message(
        self, topic: str, message: ChatMessage, exclude_subject: Optional[str] = None
    ) -> int:
        return self.publish(
            topic,
            StreamEvent[ChatMessage](type=EventType.MESSAGE, data=message),
            exclude_subject=exclude_subject,
        )

    def broadcast_typing(
        self, topic: str, subject: str, is_typing: bool, user_name: Optional[str] = None
    ) -> int:
        indicator = TypingIndicator(user_id=subject, user_name=user_name, is_typing=is_typing)
        return self.publish(
            topic,
            StreamEvent[TypingIndicator](type=EventType.TYPING, data=indicator),
            exclude_subject=subject,
        )

    def broadcast_delivery_status(
        self, topic: str, message_id: str, status: str, target_subject: Optional[str] = None
    ) -> int:
        return self.publish(
            topic,
            StreamEvent[DeliveryStatus](
                type=EventType.DELIVERY_STATUS,
                data=DeliveryStatus(message_id=message_id, status=status),
            ),
            target_subject=target_subject,
        )

    def broadcast_system_message(
        self, topic: str, notice: SystemNotice, target_subject: Optional[str] = None
    ) -> int:
        return self.publish(
            topic,
            StreamEvent[SystemNotice](type=EventType.SYSTEM, data=notice),
            target_subject=target_subject,
        )

    # ------------------------------------------------------------------
    # Introspection and housekeeping
    # ------------------------------------------------------------------

    def get_active_connections_count(self, topic: Optional[str] = None) -> int:
        with self._lock:
            if topic is None:
                return len(self._connections)
            return sum(1 for c in self._connections.values() if c.topic == topic)

    def get_connection_info(self) -> Dict[str, Any]:
        by_topic: Dict[str, int] = {}
        by_subject: Dict[str, int] = {}
        with self._lock:
            connections = list(self._connections.values())
        for connection in connections:
            by_topic[connection.topic] = by_topic.get(connection.topic, 0) + 1
            by_subject[connection.subject] = by_subject.get(connection.subject, 0) + 1
        return {
            "total_connections": len(connections),
            "connections_by_topic": by_topic,
            "connections_by_subject": by_subject,
        }

    def cleanup_stale_connections(self, max_age: float) -> int:
        """Drop connections with no successful write (event or ping) for ``max_age`` seconds."""
        now = self._clock()
        with self._lock:
            stale = [cid for cid, c in self._connections.items() if now - c.last_ping_at > max_age]
        removed = sum(1 for cid in stale if self.remove_connection(cid))
        if removed:
            _LOG.info(f"Removed {removed} stale stream connections", extra={"removed": removed})
        return removed

    def close_all(self) -> int:
        with self._lock:
            ids = list(self._connections)
        return sum(1 for cid in ids if self.remove_connection(cid))

    def _snapshot(self, topic: str) -> List[Connection]:
        with self._lock:
            return [c for c in self._connections.values() if c.topic == topic]

    def _deliver(self, connection: Connection, frame: str) -> bool:
        if connection.state is ConnectionState.CLOSED:
            # removed after the snapshot was taken
            return False
        try:
            result = connection.sink.send(frame)
        except Exception as exc:
            result = SendResult.failed(f"{type(exc).__name__}: {exc}")
        if result.ok:
            connection.last_ping_at = self._clock()
            return True
        _LOG.warning(
            "Dropping stream connection after failed write",
            extra={
                "connection_id": connection.id,
                "topic": connection.topic,
                "error": result.error,
            },
        )
        metrics.increment_dropped_connections()
        self.remove_connection(connection.id)
        return False


async def event_stream(
    registry: BroadcastRegistry,
    connection_id: str,
    sink: QueueSink,
    ping_interval: float,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
) -> AsyncIterator[str]:
    """Yield frames queued for one connection, with a ping every ``ping_interval``.

    Pings follow a fixed schedule whether or not events are flowing. The
    connection is removed from the registry however the stream ends: sink
    closed, failed ping, client gone, or the generator cancelled.
    """
    loop = asyncio.get_running_loop()
    next_ping = loop.time() + ping_interval
    try:
        while True:
            remaining = next_ping - loop.time()
            if remaining <= 0:
                if is_disconnected is not None and await is_disconnected():
                    break
                if not registry.send_ping(connection_id):
                    break
                next_ping = loop.time() + ping_interval
                continue
            try:
                frame = await asyncio.wait_for(sink.queue.get(), timeout=remaining)
            except asyncio.TimeoutError:
                continue
            if frame is STREAM_CLOSED:
                break
            yield frame
    finally:
        registry.remove_connection(connection_id)
