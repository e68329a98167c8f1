from .cache import CacheTTL, TTLCache
from .sse import BroadcastRegistry, DuplicateConnectionError, QueueSink, SendResult

__all__ = [
    "BroadcastRegistry",
    "CacheTTL",
    "DuplicateConnectionError",
    "QueueSink",
    "SendResult",
    "TTLCache",
]
