"""Public artist search, served through the TTL cache."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from ..core.cache import CacheTTL, TTLCache
from ..core.logging import get_logger
from ..core.schemas import ArtistSearchParams
from ..directory import ArtistDirectory
from .dependencies import get_cache, get_directory

_LOG = get_logger(__name__)

SEARCH_PREFIX = "search"
PROFILE_PREFIX = "artist"

router = APIRouter(prefix="/api/public/artists", tags=["artists"])


def _cached_response(payload: dict, hit: bool, ttl: int) -> JSONResponse:
    return JSONResponse(
        payload,
        headers={
            "Cache-Control": f"public, max-age={ttl}",
            "X-Cache": "HIT" if hit else "MISS",
        },
    )


@router.get("")
async def search_artists(
    params: Annotated[ArtistSearchParams, Query()],
    cache: TTLCache = Depends(get_cache),
    directory: ArtistDirectory = Depends(get_directory),
) -> JSONResponse:
    key = cache.generate_key(params.cache_params(), prefix=SEARCH_PREFIX)
    payload = cache.get(key)
    if payload is not None:
        return _cached_response(payload, hit=True, ttl=CacheTTL.SEARCH_RESULTS)

    artists = directory.search(params)
    payload = {"artists": artists, "count": len(artists), "filters": params.cache_params()}
    cache.set(key, payload, CacheTTL.SEARCH_RESULTS)
    _LOG.debug("Artist search cached", extra={"cache_key": key})
    return _cached_response(payload, hit=False, ttl=CacheTTL.SEARCH_RESULTS)


@router.get("/{artist_id}")
async def get_artist(
    artist_id: str,
    cache: TTLCache = Depends(get_cache),
    directory: ArtistDirectory = Depends(get_directory),
) -> JSONResponse:
    key = f"{PROFILE_PREFIX}:{artist_id}"
    profile = cache.get(key)
    if profile is not None:
        return _cached_response(profile, hit=True, ttl=CacheTTL.ARTIST_PROFILE)

    profile = directory.get_profile(artist_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Artist not found")
    cache.set(key, profile, CacheTTL.ARTIST_PROFILE)
    return _cached_response(profile, hit=False, ttl=CacheTTL.ARTIST_PROFILE)
