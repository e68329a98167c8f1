"""
APScheduler jobs for periodic housekeeping: cache sweep and stale-stream sweep.
Lazy expiry alone never frees keys that are written once and never read again.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config.settings import Settings
from .cache import TTLCache
from .logging import get_logger
from .sse import BroadcastRegistry

_LOG = get_logger(__name__)

CACHE_CLEANUP_JOB = "cache-cleanup"
STREAM_SWEEP_JOB = "sse-stale-sweep"


class MaintenanceScheduler:
    """Runs the sweeps on the app's event loop."""

    def __init__(self, cache: TTLCache, registry: BroadcastRegistry, settings: Settings) -> None:
        self.cache = cache
        self.registry = registry
        self.settings = settings
        self.scheduler = AsyncIOScheduler(
            job_defaults={"coalesce": True, "max_instances": 1}
        )

    # Coroutine jobs run on the loop itself; closing a QueueSink is not thread-safe.
    async def sweep_cache(self) -> int:
        return self.cache.cleanup()

    async def sweep_streams(self) -> int:
        return self.registry.cleanup_stale_connections(self.settings.stream.stale_max_age)

    def register_jobs(self) -> None:
        self.scheduler.add_job(
            self.sweep_cache,
            trigger=IntervalTrigger(seconds=self.settings.cache.cleanup_interval),
            id=CACHE_CLEANUP_JOB,
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.sweep_streams,
            trigger=IntervalTrigger(seconds=self.settings.stream.stale_sweep_interval),
            id=STREAM_SWEEP_JOB,
            replace_existing=True,
        )

    def start(self) -> None:
        """Register the jobs and start; needs a running event loop."""
        self.register_jobs()
        self.scheduler.start()
        _LOG.info("Maintenance scheduler started", extra={"job": f"{CACHE_CLEANUP_JOB},{STREAM_SWEEP_JOB}"})

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            _LOG.info("Maintenance scheduler stopped")
