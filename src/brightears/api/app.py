"""FastAPI app for the booking marketplace's realtime and cached-read endpoints."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..config.settings import Settings
from ..core.cache import TTLCache
from ..core.logging import get_logger, setup_logging
from ..core.maintenance import MaintenanceScheduler
from ..core.metrics import metrics
from ..core.middleware import ObservabilityMiddleware
from ..core.sse import BroadcastRegistry
from ..directory import ArtistDirectory, InMemoryArtistDirectory
from . import artists, messages
from .dependencies import AccessPolicy, allow_all

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    maintenance = MaintenanceScheduler(app.state.cache, app.state.registry, settings)
    if settings.run_maintenance:
        maintenance.start()
    logger.info(f"{settings.service_name} started")
    try:
        yield
    finally:
        maintenance.shutdown()
        closed = app.state.registry.close_all()
        logger.info(f"{settings.service_name} stopped, closed {closed} streams")


def create_app(
    settings: Optional[Settings] = None,
    cache: Optional[TTLCache] = None,
    registry: Optional[BroadcastRegistry] = None,
    directory: Optional[ArtistDirectory] = None,
    access_policy: Optional[AccessPolicy] = None,
) -> FastAPI:
    """Build the app; every stateful component is injectable so tests get fresh ones."""
    settings = settings or Settings()
    setup_logging(settings.log_level)

    app = FastAPI(title="Bright Ears Realtime", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.cache = cache if cache is not None else TTLCache(
        default_ttl=settings.cache.default_ttl, max_entries=settings.cache.max_entries
    )
    app.state.registry = registry if registry is not None else BroadcastRegistry()
    app.state.directory = directory if directory is not None else InMemoryArtistDirectory()
    app.state.access_policy = access_policy or allow_all

    app.add_middleware(ObservabilityMiddleware)
    app.include_router(messages.router)
    app.include_router(artists.router)

    @app.get("/health")
    async def health() -> JSONResponse:
        """Health check endpoint."""
        return JSONResponse({"status": "ok", "service": settings.service_name})

    @app.get("/metrics")
    async def get_metrics(request: Request) -> JSONResponse:
        snapshot = dict(metrics.snapshot())
        snapshot["cache"] = request.app.state.cache.get_stats()
        snapshot["streams"] = request.app.state.registry.get_connection_info()
        return JSONResponse(snapshot)

    return app


app = create_app()

