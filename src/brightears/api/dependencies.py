"""Request-scoped accessors for the components held on ``app.state``."""

from typing import Callable, Optional

from fastapi import Header, HTTPException, Request, status

from ..config.settings import Settings
from ..core.cache import TTLCache
from ..core.sse import BroadcastRegistry
from ..directory import ArtistDirectory

# (subject_id, booking_id) -> may the subject see this booking?
AccessPolicy = Callable[[str, str], bool]

SUBJECT_HEADER = "X-User-Id"


def allow_all(subject: str, booking_id: str) -> bool:
    return True


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_cache(request: Request) -> TTLCache:
    return request.app.state.cache


def get_registry(request: Request) -> BroadcastRegistry:
    return request.app.state.registry


def get_directory(request: Request) -> ArtistDirectory:
    return request.app.state.directory


def get_current_subject(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Identity set by the upstream auth proxy; the service never authenticates itself."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return x_user_id.strip()


def require_booking_access(request: Request, subject: str, booking_id: str) -> None:
    policy: AccessPolicy = request.app.state.access_policy
    if not policy(subject, booking_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Booking not found or access denied",
        )
