"""
Map TMDb movie/series payloads onto the canonical `Content` record.

`normalize_content` and `pick_watch_providers` are pure; `GenreResolver` owns the
lazily-populated genre id -> name maps.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping

from catalog_backend.integrations.fetcher import FetchError, JsonFetcher
from catalog_backend.integrations.tmdb.client import fetch_genre_list, require_media_type
from catalog_backend.models.content import CastMember, Content

logger = logging.getLogger(__name__)

TMDB_IMAGE_BASE_URL = "https://image.tmdb.org/t/p"
POSTER_SIZE = "w500"
PROFILE_SIZE = "w200"
# Other components detect "no image" by comparing against these exact values.
POSTER_PLACEHOLDER_URL = "https://placehold.co/200x300"
PROFILE_PLACEHOLDER_URL = "https://placehold.co/80x120"

MAX_CAST_MEMBERS = 10
PROVIDER_OFFER_TYPES = ("flatrate", "rent", "buy")

_TITLE_FIELDS = {"movie": ("title", "release_date"), "tv": ("name", "first_air_date")}


def _as_str(value: Any) -> str | None:
    if isinstance(value, str):
        s = value.strip()
        return s or None
    return None


def parse_release_year(value: Any) -> int:
    """First four characters of a date string as a year; 0 when absent or malformed."""

    raw = _as_str(value)
    if not raw or len(raw) < 4:
        return 0
    head = raw[:4]
    if not head.isdigit():
        return 0
    return int(head)


def build_image_url(path: Any, *, size: str, placeholder: str) -> str:
    fragment = _as_str(path)
    if not fragment:
        return placeholder
    if not fragment.startswith("/"):
        fragment = f"/{fragment}"
    return f"{TMDB_IMAGE_BASE_URL}/{size}{fragment}"


def _dedupe(values: list[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(v for v in values if v))


def _genre_names(raw: Mapping[str, Any], genre_names: Mapping[int, str]) -> tuple[str, ...]:
    genres = raw.get("genres")
    if isinstance(genres, list):
        names: list[str] = []
        for item in genres:
            if isinstance(item, dict):
                name = _as_str(item.get("name"))
                if name:
                    names.append(name)
        return _dedupe(names)

    genre_ids = raw.get("genre_ids")
    if isinstance(genre_ids, list):
        return _dedupe([genre_names.get(gid, "") for gid in genre_ids if isinstance(gid, int)])
    return ()


def _cast_members(raw: Mapping[str, Any], media_type: str) -> tuple[CastMember, ...]:
    credits_key = "credits" if media_type == "movie" else "aggregate_credits"
    credits = raw.get(credits_key)
    if not isinstance(credits, dict):
        return ()
    cast = credits.get("cast")
    if not isinstance(cast, list):
        return ()

    members: list[CastMember] = []
    for item in cast:
        if not isinstance(item, dict):
            continue
        name = _as_str(item.get("name"))
        if not name:
            continue
        if media_type == "movie":
            character = _as_str(item.get("character")) or ""
        else:
            roles = item.get("roles")
            first_role = roles[0] if isinstance(roles, list) and roles and isinstance(roles[0], dict) else {}
            character = _as_str(first_role.get("character")) or ""
        external_id = item.get("id")
        members.append(
            CastMember(
                external_id=external_id if isinstance(external_id, int) else None,
                name=name,
                character=character,
                profile_path_url=build_image_url(
                    item.get("profile_path"), size=PROFILE_SIZE, placeholder=PROFILE_PLACEHOLDER_URL
                ),
            )
        )
        if len(members) >= MAX_CAST_MEMBERS:
            break
    return tuple(members)


def extract_imdb_id(raw: Mapping[str, Any]) -> str | None:
    imdb_id = _as_str(raw.get("imdb_id"))
    if imdb_id:
        return imdb_id
    external_ids = raw.get("external_ids")
    if isinstance(external_ids, dict):
        return _as_str(external_ids.get("imdb_id"))
    return None


def normalize_content(
    raw: Mapping[str, Any],
    media_type: str,
    *,
    genre_names: Mapping[int, str] | None = None,
) -> Content:
    """
    Build a Content from a TMDb listing item or details payload.

    Ratings and providers are left unset; they come from enrichment.
    """

    media_type = require_media_type(media_type)
    title_field, date_field = _TITLE_FIELDS[media_type]
    return Content(
        tmdb_id=str(raw.get("id")),
        type=media_type,
        title=_as_str(raw.get(title_field)) or _as_str(raw.get("title")) or _as_str(raw.get("name")) or "",
        release_year=parse_release_year(raw.get(date_field)),
        poster=build_image_url(raw.get("poster_path"), size=POSTER_SIZE, placeholder=POSTER_PLACEHOLDER_URL),
        overview=_as_str(raw.get("overview")) or "",
        language=_as_str(raw.get("original_language")) or "en",
        genres=_genre_names(raw, genre_names or {}),
        providers=None,
        imdb_rating=None,
        rt_rating=None,
        cast=_cast_members(raw, media_type),
        imdb_id=extract_imdb_id(raw),
    )


def pick_watch_providers(payload: Mapping[str, Any], *, region: str) -> tuple[str, ...] | None:
    """
    Provider names offered in `region`, merged across offer types, first occurrence wins.

    Returns `()` when the region has no offers and None when the payload is unusable.
    """

    results = payload.get("results")
    if not isinstance(results, dict):
        return None
    region_block = results.get(region.upper())
    if not isinstance(region_block, dict):
        return ()

    providers: list[str] = []
    for offer_type in PROVIDER_OFFER_TYPES:
        offers = region_block.get(offer_type)
        if not isinstance(offers, list):
            continue
        for item in offers:
            if not isinstance(item, dict):
                continue
            name = _as_str(item.get("provider_name"))
            if name:
                providers.append(name)

    return _dedupe(providers)


def needs_genre_map(raw: Mapping[str, Any]) -> bool:
    return not isinstance(raw.get("genres"), list) and bool(raw.get("genre_ids"))


class GenreResolver:
    """
    Per-media-type genre id -> name maps, populated on first use.

    Concurrent misses share a single populate call per media type. A failed populate
    leaves the map empty so the next caller tries again.
    """

    def __init__(self, fetcher: JsonFetcher, *, api_key: str, language: str | None = None) -> None:
        self._fetcher = fetcher
        self._api_key = api_key
        self._language = language
        self._maps: dict[str, dict[int, str]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def cached(self, media_type: str) -> dict[int, str]:
        return dict(self._maps.get(require_media_type(media_type), {}))

    async def genre_map(self, media_type: str) -> dict[int, str]:
        media_type = require_media_type(media_type)
        existing = self._maps.get(media_type)
        if existing:
            return existing

        lock = self._locks.setdefault(media_type, asyncio.Lock())
        async with lock:
            existing = self._maps.get(media_type)
            if existing:
                return existing
            try:
                fetched = await fetch_genre_list(
                    self._fetcher, media_type, api_key=self._api_key, language=self._language
                )
            except FetchError as exc:
                logger.warning(f"Genre list for {media_type} unavailable: {exc}")
                return {}
            if fetched:
                self._maps[media_type] = fetched
            return fetched

    async def names(self, media_type: str) -> list[str]:
        return list((await self.genre_map(media_type)).values())

    async def ids_for(self, media_type: str, names: list[str] | tuple[str, ...]) -> list[int] | None:
        """
        Resolve genre names to ids; None when any name is unknown.
        """

        mapping = await self.genre_map(media_type)
        by_name = {name.casefold(): gid for gid, name in mapping.items()}
        ids: list[int] = []
        for name in names:
            gid = by_name.get(str(name).strip().casefold())
            if gid is None:
                return None
            ids.append(gid)
        return ids
