"""
Per-title load path shared by every caller that needs a full `Content` record.

Cache-first: a fresh cached record is returned as-is. Otherwise the title details
are fetched, normalized, optionally prefiltered, enriched with watch providers and
ratings, and upserted.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import replace

from catalog_backend.ingestion.normalizer import (
    GenreResolver,
    needs_genre_map,
    normalize_content,
    pick_watch_providers,
)
from catalog_backend.ingestion.ratings_enricher import RatingsEnricher
from catalog_backend.integrations.fetcher import JsonFetcher, RetryableFetchError, TerminalFetchError
from catalog_backend.integrations.tmdb.client import fetch_title_details, fetch_watch_providers, require_media_type
from catalog_backend.models.content import Content, ContentKey
from catalog_backend.repositories.content_cache import CachedContent, ContentCacheError, ContentCacheStore

logger = logging.getLogger(__name__)

Prefilter = Callable[[Content], bool]


class ContentLoader:
    def __init__(
        self,
        fetcher: JsonFetcher,
        store: ContentCacheStore,
        genres: GenreResolver,
        ratings: RatingsEnricher,
        *,
        api_key: str,
        language: str | None = None,
        watch_region: str = "AT",
    ) -> None:
        self._fetcher = fetcher
        self.store = store
        self.genres = genres
        self.ratings = ratings
        self._api_key = api_key
        self._language = language
        self._watch_region = watch_region

    async def cached(self, key: ContentKey) -> CachedContent | None:
        try:
            return await self.store.get(key)
        except ContentCacheError as exc:
            logger.warning(f"Content cache read failed for {key}; treating as miss: {exc}")
            return None

    async def save(self, content: Content) -> Content:
        try:
            return await self.store.upsert(content)
        except ContentCacheError as exc:
            logger.warning(f"Content cache write failed for {content.key}: {exc}")
            return content

    async def fetch_detail(self, media_type: str, tmdb_id: str | int) -> Content:
        """Fetch and normalize one title; raises `FetchError` on upstream failure."""

        raw = await fetch_title_details(
            self._fetcher, tmdb_id, media_type, api_key=self._api_key, language=self._language
        )
        genre_names = await self.genres.genre_map(media_type) if needs_genre_map(raw) else None
        return normalize_content(raw, media_type, genre_names=genre_names)

    async def _providers(self, content: Content) -> tuple[tuple[str, ...] | None, bool]:
        """Watch providers for the configured region, plus whether the lookup completed."""

        try:
            payload = await fetch_watch_providers(
                self._fetcher, content.tmdb_id, content.type, api_key=self._api_key
            )
        except RetryableFetchError as exc:
            logger.warning(f"Watch providers for {content.key} unavailable: {exc}")
            return None, False
        except TerminalFetchError as exc:
            logger.warning(f"Watch providers for {content.key} rejected: {exc}")
            return None, True
        return pick_watch_providers(payload, region=self._watch_region), True

    async def enrich(self, content: Content) -> tuple[Content, bool]:
        """
        Attach watch providers and ratings. Never raises `FetchError`.

        The flag is False when either lookup gave up on a transient failure.
        """

        (providers, providers_complete), ratings = await asyncio.gather(
            self._providers(content),
            self.ratings.enrich(content.imdb_id),
        )
        enriched = replace(
            content, providers=providers, imdb_rating=ratings.imdb_rating, rt_rating=ratings.rt_rating
        )
        return enriched, providers_complete and not ratings.degraded

    async def load(
        self,
        media_type: str,
        tmdb_id: str | int,
        *,
        prefilter: Prefilter | None = None,
        use_cache: bool = True,
    ) -> Content | None:
        """
        Return the full record for one title.

        Returns None when `prefilter` rejects the title. Raises `TerminalFetchError`
        when upstream rejects the title, and `RetryableFetchError` when upstream is
        unavailable and no cached copy (of any age) exists.

        Records whose enrichment was cut short by a transient failure are returned
        unstamped and not cached, so the next load enriches them again.
        """

        key = ContentKey.of(tmdb_id, require_media_type(media_type))
        cached = await self.cached(key) if use_cache else None
        if cached is not None and cached.fresh:
            return cached.content if prefilter is None or prefilter(cached.content) else None

        try:
            content = await self.fetch_detail(key.type, key.tmdb_id)
        except RetryableFetchError as exc:
            if cached is None:
                raise
            logger.warning(f"Serving stale {key} after upstream failure: {exc}")
            return cached.content if prefilter is None or prefilter(cached.content) else None

        if prefilter is not None and not prefilter(content):
            return None
        enriched, complete = await self.enrich(content)
        if not complete:
            logger.info(f"Not caching {key}; enrichment incomplete")
            return enriched
        return await self.save(enriched)
