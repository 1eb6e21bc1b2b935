from __future__ import annotations

from typing import Any, Mapping

from catalog_backend.integrations.fetcher import JsonFetcher, TerminalFetchError

TMDB_API_BASE_URL = "https://api.themoviedb.org/3"

MEDIA_TYPES = ("movie", "tv")

# Detail sub-resources requested alongside `/{type}/{id}`.
_DETAIL_APPENDS: dict[str, tuple[str, ...]] = {
    "movie": ("credits",),
    "tv": ("external_ids", "aggregate_credits"),
}


def require_media_type(media_type: str) -> str:
    value = str(media_type or "").strip().lower()
    if value not in MEDIA_TYPES:
        raise ValueError(f"Unsupported media type: {media_type!r} (expected 'movie' or 'tv').")
    return value


def _params(api_key: str, extra: Mapping[str, Any] | None = None) -> dict[str, Any]:
    params: dict[str, Any] = {"api_key": api_key}
    for key, value in (extra or {}).items():
        if value is None or value == "":
            continue
        params[key] = value
    return params


def results_of(payload: Mapping[str, Any]) -> list[dict[str, Any]]:
    results = payload.get("results")
    if not isinstance(results, list):
        return []
    return [r for r in results if isinstance(r, dict) and r.get("id") is not None]


async def fetch_listing_page(
    fetcher: JsonFetcher,
    endpoint: str,
    *,
    api_key: str,
    page: int = 1,
    language: str | None = None,
    params: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Fetch one page of a paged listing endpoint.

    `endpoint` is relative to the API root, e.g. `trending/movie/week`,
    `movie/top_rated` or `discover/tv`.
    """

    url = f"{TMDB_API_BASE_URL}/{endpoint.strip('/')}"
    extra: dict[str, Any] = {"page": max(1, int(page)), "language": language}
    extra.update(params or {})
    return await fetcher.fetch_json(url, _params(api_key, extra))


async def fetch_title_details(
    fetcher: JsonFetcher,
    tmdb_id: str | int,
    media_type: str,
    *,
    api_key: str,
    language: str | None = None,
) -> dict[str, Any]:
    """
    Fetch a title details payload including credits and (for series) external ids.

    Returns the JSON object as returned by `/3/{movie|tv}/{id}`.
    """

    media_type = require_media_type(media_type)
    url = f"{TMDB_API_BASE_URL}/{media_type}/{str(tmdb_id).strip()}"
    payload = await fetcher.fetch_json(
        url,
        _params(
            api_key,
            {
                "language": language,
                "append_to_response": ",".join(_DETAIL_APPENDS[media_type]),
            },
        ),
    )
    if payload.get("id") is None:
        raise TerminalFetchError(f"TMDb {media_type} {tmdb_id} payload has no id.", url=url)
    return payload


async def fetch_watch_providers(
    fetcher: JsonFetcher,
    tmdb_id: str | int,
    media_type: str,
    *,
    api_key: str,
) -> dict[str, Any]:
    media_type = require_media_type(media_type)
    url = f"{TMDB_API_BASE_URL}/{media_type}/{str(tmdb_id).strip()}/watch/providers"
    return await fetcher.fetch_json(url, _params(api_key))


async def fetch_genre_list(
    fetcher: JsonFetcher,
    media_type: str,
    *,
    api_key: str,
    language: str | None = None,
) -> dict[int, str]:
    """Return TMDb's genre id -> name map for one media type."""

    media_type = require_media_type(media_type)
    url = f"{TMDB_API_BASE_URL}/genre/{media_type}/list"
    payload = await fetcher.fetch_json(url, _params(api_key, {"language": language}))
    genres = payload.get("genres")
    out: dict[int, str] = {}
    if not isinstance(genres, list):
        return out
    for item in genres:
        if not isinstance(item, dict):
            continue
        genre_id = item.get("id")
        name = item.get("name")
        if isinstance(genre_id, int) and isinstance(name, str) and name.strip():
            out[genre_id] = name.strip()
    return out


async def search_multi(
    fetcher: JsonFetcher,
    query: str,
    *,
    api_key: str,
    language: str | None = None,
    page: int = 1,
) -> list[dict[str, Any]]:
    """
    Search movies and series in one call.

    People and other result kinds are filtered out.
    """

    url = f"{TMDB_API_BASE_URL}/search/multi"
    payload = await fetcher.fetch_json(
        url,
        _params(api_key, {"query": query, "language": language, "page": max(1, int(page))}),
    )
    return [r for r in results_of(payload) if r.get("media_type") in MEDIA_TYPES]
