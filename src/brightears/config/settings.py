"""Configuration settings for the realtime service."""
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, default))


def _env_optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else None


@dataclass
class CacheSettings:
    default_ttl: float = field(default_factory=lambda: _env_float("CACHE_DEFAULT_TTL", 300))
    # Unset means no entry cap; time and invalidation bound the size.
    max_entries: Optional[int] = field(default_factory=lambda: _env_optional_int("CACHE_MAX_ENTRIES"))
    cleanup_interval: float = field(default_factory=lambda: _env_float("CACHE_CLEANUP_INTERVAL", 600))


@dataclass
class StreamSettings:
    ping_interval: float = field(default_factory=lambda: _env_float("SSE_PING_INTERVAL", 30))
    stale_max_age: float = field(default_factory=lambda: _env_float("SSE_STALE_MAX_AGE", 300))
    stale_sweep_interval: float = field(default_factory=lambda: _env_float("SSE_STALE_SWEEP_INTERVAL", 60))
    queue_size: int = field(default_factory=lambda: int(os.getenv("SSE_QUEUE_SIZE", 100)))


@dataclass
class Settings:
    cache: CacheSettings = field(default_factory=CacheSettings)
    stream: StreamSettings = field(default_factory=StreamSettings)
    service_name: str = "brightears-realtime"
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    run_maintenance: bool = field(
        default_factory=lambda: os.getenv("RUN_MAINTENANCE", "true").lower() == "true"
    )
