"""
Read endpoints for home categories, discovery pages, details, search and genres.
"""
from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field

from api.deps import Engine
from catalog_backend.engine import ContentUnavailableError
from catalog_backend.ingestion.discovery import DiscoveryFilters
from catalog_backend.integrations.fetcher import RetryableFetchError

router = APIRouter(prefix="/content", tags=["content"])


# --- Pydantic models ---

class CastMember(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    external_id: int | None = Field(default=None, alias="externalId")
    name: str
    character: str
    profile_path_url: str = Field(alias="profilePathUrl")


class Content(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tmdb_id: str = Field(alias="tmdbId")
    type: Literal["movie", "tv"]
    title: str
    release_year: int = Field(alias="releaseYear")
    poster: str
    overview: str
    language: str
    genres: list[str]
    providers: list[str] | None = None
    imdb_rating: float | None = Field(default=None, alias="imdbRating")
    rt_rating: int | None = Field(default=None, alias="rtRating")
    cast: list[CastMember]
    imdb_id: str | None = Field(default=None, alias="imdbId")
    last_synced_at: str | None = Field(default=None, alias="lastSyncedAt")


class EnsureContentRequest(BaseModel):
    tmdb_id: str
    media_type: Literal["movie", "tv"] | None = None


def _not_found(exc: Exception) -> HTTPException:
    return HTTPException(status_code=404, detail=str(exc))


# --- Endpoints ---

@router.get("/categories/{name}", response_model=list[Content])
async def get_category(engine: Engine, name: str) -> list[dict]:
    """Current rolling list for a home category (e.g. `trending_movies` or `top-rated`)."""
    try:
        items = await engine.get_category(name)
    except ValueError as exc:
        raise _not_found(exc) from exc
    return [c.to_dict() for c in items]


@router.get("/genres", response_model=list[str])
async def list_genres(
    engine: Engine,
    media_type: Literal["movie", "tv"] = Query(default="movie"),
) -> list[str]:
    """Genre names known to TMDb for a media type."""
    return await engine.get_genre_names(media_type)


@router.get("/search", response_model=list[Content])
async def search(engine: Engine, q: str = Query(default="", max_length=200)) -> list[dict]:
    """Search movies and series by title."""
    return [c.to_dict() for c in await engine.search(q)]


@router.post("/ensure", response_model=Content)
async def ensure_content(engine: Engine, body: EnsureContentRequest) -> dict:
    """Load a title into the content cache (movie first, then series, when no type is given)."""
    try:
        content = await engine.ensure_content_exists(body.tmdb_id, body.media_type)
    except ContentUnavailableError as exc:
        raise _not_found(exc) from exc
    except RetryableFetchError as exc:
        raise HTTPException(status_code=503, detail="Upstream catalog temporarily unavailable") from exc
    return content.to_dict()


@router.get("/{media_type}", response_model=list[Content])
async def list_page(
    engine: Engine,
    media_type: str,
    page: int = Query(default=1, ge=1, le=500),
    genres: list[str] = Query(default=[]),
    release_year_min: int | None = Query(default=None, ge=0),
    release_year_max: int | None = Query(default=None, ge=0),
    imdb_rating_min: float = Query(default=0.0, ge=0.0, le=10.0),
    rt_rating_min: int = Query(default=0, ge=0, le=100),
    providers: list[str] = Query(default=[]),
) -> list[dict]:
    """Filtered discovery page for `movie` or `tv`."""
    filters = DiscoveryFilters(
        genres=tuple(genres),
        release_year_min=release_year_min,
        release_year_max=release_year_max,
        imdb_rating_min=imdb_rating_min,
        rt_rating_min=rt_rating_min,
        providers=tuple(providers),
    )
    try:
        items = await engine.list_page(media_type, page, filters)
    except ValueError as exc:
        raise _not_found(exc) from exc
    return [c.to_dict() for c in items]


@router.get("/{media_type}/{tmdb_id}", response_model=Content)
async def get_details(engine: Engine, media_type: str, tmdb_id: str) -> dict:
    """Full record for one title."""
    try:
        content = await engine.get_details(tmdb_id, media_type)
    except ValueError as exc:
        raise _not_found(exc) from exc
    if content is None:
        raise HTTPException(status_code=404, detail=f"{media_type} {tmdb_id} not found")
    return content.to_dict()
