"""
Filtered, paginated discovery over TMDb's `discover/{movie|tv}` listings.

Each page is fetched from upstream with the genre and release-date constraints
pushed down, then every candidate is loaded through the `ContentLoader`:

- genres and release year are checked on the un-enriched record, so rejected
  candidates never cost a ratings or providers call;
- passing candidates are enriched and cached, then the rating and provider
  filters run;
- the per-user rating filter runs last, after the page memo.

All filters are AND-ed. A threshold of 0 disables a rating filter; a non-zero
threshold excludes titles without that score.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any

from catalog_backend.ingestion.content_loader import ContentLoader
from catalog_backend.ingestion.normalizer import GenreResolver
from catalog_backend.integrations.fetcher import FetchError, JsonFetcher, TerminalFetchError
from catalog_backend.integrations.tmdb.client import fetch_listing_page, require_media_type, results_of
from catalog_backend.models.content import Content, ContentKey
from catalog_backend.repositories.content_cache import DEFAULT_CONTENT_TTL, Clock, utc_now

logger = logging.getLogger(__name__)

DEFAULT_RELEASE_YEAR_MIN = 1900

_DATE_PARAMS = {
    "movie": ("primary_release_date.gte", "primary_release_date.lte"),
    "tv": ("first_air_date.gte", "first_air_date.lte"),
}


@dataclass(frozen=True)
class DiscoveryFilters:
    genres: tuple[str, ...] = ()
    release_year_min: int | None = None
    release_year_max: int | None = None
    imdb_rating_min: float = 0.0
    rt_rating_min: int = 0
    providers: tuple[str, ...] = ()
    user_rating_min: float = 0.0

    def shared_part(self) -> "DiscoveryFilters":
        """The filters that do not depend on who is asking."""
        return replace(
            self,
            genres=tuple(sorted({g.strip().casefold() for g in self.genres if g.strip()})),
            providers=tuple(sorted({p.strip().casefold() for p in self.providers if p.strip()})),
            user_rating_min=0.0,
        )


@dataclass(frozen=True)
class YearRange:
    minimum: int
    maximum: int
    default_minimum: int
    default_maximum: int

    @property
    def narrowed(self) -> bool:
        return self.minimum > self.default_minimum or self.maximum < self.default_maximum

    def admits(self, year: int) -> bool:
        if not self.narrowed:
            return True
        if year <= 0:
            return False
        return self.minimum <= year <= self.maximum


def year_range(filters: DiscoveryFilters, *, current_year: int) -> YearRange:
    return YearRange(
        minimum=filters.release_year_min if filters.release_year_min is not None else DEFAULT_RELEASE_YEAR_MIN,
        maximum=filters.release_year_max if filters.release_year_max is not None else current_year,
        default_minimum=DEFAULT_RELEASE_YEAR_MIN,
        default_maximum=current_year,
    )


def _folded(values: tuple[str, ...] | None) -> set[str]:
    return {v.strip().casefold() for v in (values or ()) if v and v.strip()}


def has_all_genres(content: Content, genres: tuple[str, ...]) -> bool:
    return _folded(tuple(genres)) <= _folded(content.genres)


def has_all_providers(content: Content, providers: tuple[str, ...]) -> bool:
    wanted = _folded(tuple(providers))
    if not wanted:
        return True
    if content.providers is None:
        return False
    return wanted <= _folded(content.providers)


def meets_rating_thresholds(content: Content, filters: DiscoveryFilters) -> bool:
    if filters.imdb_rating_min > 0:
        if content.imdb_rating is None or content.imdb_rating < filters.imdb_rating_min:
            return False
    if filters.rt_rating_min > 0:
        if content.rt_rating is None or content.rt_rating < filters.rt_rating_min:
            return False
    return True


def meets_user_rating(
    content: Content,
    minimum: float,
    user_ratings: Mapping[ContentKey, float] | None,
) -> bool:
    if minimum <= 0:
        return True
    if not user_ratings:
        return False
    score = user_ratings.get(content.key)
    return score is not None and score >= minimum


@dataclass
class _MemoEntry:
    expires_at: datetime
    items: tuple[Content, ...]


class DiscoveryPipeline:
    def __init__(
        self,
        fetcher: JsonFetcher,
        loader: ContentLoader,
        genres: GenreResolver,
        *,
        api_key: str,
        language: str | None = None,
        memo_ttl: timedelta = DEFAULT_CONTENT_TTL,
        clock: Clock = utc_now,
    ) -> None:
        self._fetcher = fetcher
        self._loader = loader
        self._genres = genres
        self._api_key = api_key
        self._language = language
        self._memo_ttl = memo_ttl
        self._clock = clock
        self._memo: dict[tuple[str, int, DiscoveryFilters], _MemoEntry] = {}

    @property
    def memo_size(self) -> int:
        return len(self._memo)

    def clear_memo(self) -> None:
        self._memo.clear()

    async def list_page(
        self,
        media_type: str,
        page: int,
        filters: DiscoveryFilters | None = None,
        user_ratings: Mapping[ContentKey, float] | None = None,
    ) -> list[Content]:
        media_type = require_media_type(media_type)
        page = max(1, int(page))
        filters = filters or DiscoveryFilters()
        shared = filters.shared_part()
        memo_key = (media_type, page, shared)

        now = self._clock()
        entry = self._memo.get(memo_key)
        if entry is not None and entry.expires_at > now:
            items = entry.items
        else:
            built = await self._build_page(media_type, page, shared, now=now)
            if built is None:
                return []
            items, complete = built
            if complete:
                self._memo[memo_key] = _MemoEntry(expires_at=now + self._memo_ttl, items=items)
            else:
                logger.info(f"Discovery {media_type} p{page}: partial page after upstream failures; not memoized")

        return [c for c in items if meets_user_rating(c, filters.user_rating_min, user_ratings)]

    async def _discover_params(self, media_type: str, filters: DiscoveryFilters, years: YearRange) -> dict[str, Any] | None:
        params: dict[str, Any] = {}
        if filters.genres:
            ids = await self._genres.ids_for(media_type, filters.genres)
            if ids is None:
                return None
            params["with_genres"] = ",".join(str(gid) for gid in ids)
        if years.narrowed:
            gte, lte = _DATE_PARAMS[media_type]
            params[gte] = f"{years.minimum:04d}-01-01"
            params[lte] = f"{years.maximum:04d}-12-31"
        return params

    async def _build_page(
        self,
        media_type: str,
        page: int,
        filters: DiscoveryFilters,
        *,
        now: datetime,
    ) -> tuple[tuple[Content, ...], bool] | None:
        """
        Items passing the shared filters, plus whether the page is safe to memoize.

        A page is incomplete when a candidate failed or came back without a fresh
        cached record (stale fallback, or enrichment cut short upstream).
        Returns None when the page cannot be built at all.
        """

        years = year_range(filters, current_year=now.year)
        params = await self._discover_params(media_type, filters, years)
        if params is None:
            if not self._genres.cached(media_type):
                logger.warning(f"Discovery {media_type} p{page}: genre list unavailable; cannot filter by genre")
                return None
            logger.info(f"Discovery {media_type} p{page}: unknown genre in {list(filters.genres)}; no matches")
            return (), True

        try:
            payload = await fetch_listing_page(
                self._fetcher,
                f"discover/{media_type}",
                api_key=self._api_key,
                page=page,
                language=self._language,
                params=params,
            )
        except FetchError as exc:
            logger.warning(f"Discovery {media_type} p{page} listing failed: {exc}")
            return None

        def prefilter(content: Content) -> bool:
            return has_all_genres(content, filters.genres) and years.admits(content.release_year)

        candidates = results_of(payload)
        results = await asyncio.gather(
            *(self._loader.load(media_type, item["id"], prefilter=prefilter) for item in candidates),
            return_exceptions=True,
        )

        items: list[Content] = []
        complete = True
        for item, result in zip(candidates, results):
            if isinstance(result, TerminalFetchError):
                logger.warning(f"Discovery dropped {media_type}:{item['id']}: {result}")
                continue
            if isinstance(result, BaseException):
                if isinstance(result, FetchError):
                    logger.warning(f"Discovery dropped {media_type}:{item['id']}: {result}")
                else:
                    logger.error(f"Discovery failed loading {media_type}:{item['id']}", exc_info=result)
                complete = False
                continue
            if result is None:
                continue
            if not self._loader.store.is_fresh(result):
                complete = False
            if meets_rating_thresholds(result, filters) and has_all_providers(result, filters.providers):
                items.append(result)
        return tuple(items), complete
