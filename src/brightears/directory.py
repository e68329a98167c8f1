"""Artist lookups behind the public search endpoints.

The production directory is a database query layer; the API only needs the
two reads below, so anything with ``search`` and ``get_profile`` will do.
"""

from typing import Any, Dict, Iterable, List, Optional, Protocol

from .core.schemas import ArtistSearchParams

PUBLIC_FIELDS = (
    "id",
    "stageName",
    "category",
    "city",
    "serviceAreas",
    "verified",
    "averageRating",
    "totalReviews",
    "hourlyRate",
)


class ArtistDirectory(Protocol):
    def search(self, params: ArtistSearchParams) -> List[Dict[str, Any]]: ...

    def get_profile(self, artist_id: str) -> Optional[Dict[str, Any]]: ...


class InMemoryArtistDirectory:
    """Directory over a fixed list of artist records; drafts are never public."""

    def __init__(self, artists: Iterable[Dict[str, Any]] = ()) -> None:
        self._artists: Dict[str, Dict[str, Any]] = {a["id"]: dict(a) for a in artists}
        self.queries = 0

    def upsert(self, artist: Dict[str, Any]) -> None:
        self._artists[artist["id"]] = dict(artist)

    def search(self, params: ArtistSearchParams) -> List[Dict[str, Any]]:
        self.queries += 1
        city = params.city.strip().lower() if params.city else None
        results = []
        for artist in self._artists.values():
            if artist.get("isDraft"):
                continue
            if params.category and artist.get("category") != params.category.value:
                continue
            if params.verified and not artist.get("verified"):
                continue
            if city and city not in _areas(artist):
                continue
            results.append(_public(artist))
        results.sort(key=lambda a: (-(a.get("averageRating") or 0), a["stageName"]))
        return results[: params.limit]

    def get_profile(self, artist_id: str) -> Optional[Dict[str, Any]]:
        self.queries += 1
        artist = self._artists.get(artist_id)
        if artist is None or artist.get("isDraft"):
            return None
        return _public(artist)


def _areas(artist: Dict[str, Any]) -> List[str]:
    areas = [artist.get("city", "")] + list(artist.get("serviceAreas", []))
    return [a.lower() for a in areas if a]


def _public(artist: Dict[str, Any]) -> Dict[str, Any]:
    return {k: artist[k] for k in PUBLIC_FIELDS if k in artist}
