"""
Content aggregation engine: one object owning the fetcher, caches, rolling lists,
discovery pipeline, and their schedules.

Usage:
    settings = EngineSettings.from_env()
    engine = CatalogEngine(settings)
    await engine.start()
    ...
    await engine.shutdown()

Read operations never raise upstream errors; they degrade to empty, stale, or
null-enriched results. `ensure_content_exists` is the one write-path operation and
reports failures to its caller.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from datetime import datetime, timedelta

from catalog_backend.config import EngineSettings
from catalog_backend.ingestion.content_loader import ContentLoader
from catalog_backend.ingestion.discovery import DiscoveryFilters, DiscoveryPipeline
from catalog_backend.ingestion.home_refresh import HomeCategory, HomeCategoryRefresher, RefreshSummary
from catalog_backend.ingestion.normalizer import GenreResolver, needs_genre_map, normalize_content
from catalog_backend.ingestion.ratings_enricher import DEFAULT_RATINGS_RETRY, RatingsEnricher
from catalog_backend.ingestion.snapshot import HomeSnapshotStore
from catalog_backend.integrations.fetcher import FetchError, JsonFetcher, RateLimitedFetcher, TerminalFetchError
from catalog_backend.integrations.tmdb.client import require_media_type, search_multi
from catalog_backend.models.content import Content, ContentKey
from catalog_backend.repositories.content_cache import Clock, ContentCacheStore, build_content_cache_store, utc_now
from catalog_backend.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)


class ContentUnavailableError(RuntimeError):
    """Neither a movie nor a series with the requested id could be loaded."""

    def __init__(self, tmdb_id: str | int, media_type: str | None = None) -> None:
        kind = media_type or "movie or tv"
        super().__init__(f"No {kind} title with TMDb id {tmdb_id} could be loaded.")
        self.tmdb_id = str(tmdb_id)
        self.media_type = media_type


def seconds_until_next_run(now: datetime, hour_utc: int) -> float:
    """Seconds from `now` until the next `hour_utc:00` (strictly in the future)."""

    next_run = now.replace(hour=hour_utc, minute=0, second=0, microsecond=0)
    if next_run <= now:
        next_run += timedelta(days=1)
    return (next_run - now).total_seconds()


class CatalogEngine:
    def __init__(
        self,
        settings: EngineSettings,
        *,
        fetcher: JsonFetcher | None = None,
        store: ContentCacheStore | None = None,
        snapshot: HomeSnapshotStore | None = None,
        ratings_retry: RetryPolicy = DEFAULT_RATINGS_RETRY,
        clock: Clock = utc_now,
    ) -> None:
        self.settings = settings
        self._clock = clock
        self._owned_fetcher: RateLimitedFetcher | None = None
        if fetcher is None:
            self._owned_fetcher = RateLimitedFetcher(
                max_in_flight=settings.fetch_max_in_flight,
                timeout_seconds=settings.fetch_timeout_seconds,
            )
            fetcher = self._owned_fetcher
        self.fetcher = fetcher

        if store is None:
            store = build_content_cache_store(
                supabase_url=settings.supabase_url,
                supabase_service_role_key=settings.supabase_service_role_key,
                ttl=settings.content_ttl,
            )
        self.store = store
        self.genres = GenreResolver(fetcher, api_key=settings.tmdb_api_key, language=settings.tmdb_language)
        self.ratings = RatingsEnricher(fetcher, api_key=settings.omdb_api_key, retry_policy=ratings_retry)
        self.loader = ContentLoader(
            fetcher,
            self.store,
            self.genres,
            self.ratings,
            api_key=settings.tmdb_api_key,
            language=settings.tmdb_language,
            watch_region=settings.watch_region,
        )
        self.refresher = HomeCategoryRefresher(
            fetcher,
            self.loader,
            snapshot if snapshot is not None else HomeSnapshotStore(settings.snapshot_path),
            api_key=settings.tmdb_api_key,
            language=settings.tmdb_language,
            list_size=settings.home_list_size,
            clock=clock,
        )
        self.discovery = DiscoveryPipeline(
            fetcher,
            self.loader,
            self.genres,
            api_key=settings.tmdb_api_key,
            language=settings.tmdb_language,
            memo_ttl=settings.content_ttl,
            clock=clock,
        )

        self._refresh_task: asyncio.Task | None = None
        self._daily_task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()
        self._started = False

    @classmethod
    def from_env(cls) -> "CatalogEngine":
        return cls(EngineSettings.from_env())

    @property
    def started(self) -> bool:
        return self._started

    # --- lifecycle ---

    async def start(self, *, refresh_on_start: bool = True, schedule_daily: bool = True) -> None:
        if self._started:
            return
        self._started = True
        await self.refresher.load_snapshot()
        if refresh_on_start:
            self.trigger_refresh(reason="startup")
        if schedule_daily:
            self._daily_task = asyncio.create_task(self._daily_refresh_loop())
        logger.info("Catalog engine started")

    async def shutdown(self) -> None:
        """Stop the daily schedule and wait for any running refresh cycle to finish."""

        if self._daily_task is not None:
            self._daily_task.cancel()
            try:
                await self._daily_task
            except asyncio.CancelledError:
                pass
            self._daily_task = None

        pending = [task for task in self._background if not task.done()]
        if pending:
            logger.info(f"Waiting for {len(pending)} background task(s) before shutdown")
            await asyncio.gather(*pending, return_exceptions=True)

        if self._owned_fetcher is not None:
            self._owned_fetcher.close()
        self._started = False
        logger.info("Catalog engine stopped")

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background task {task.get_name()} failed", exc_info=exc)

    def trigger_refresh(self, *, reason: str = "manual") -> asyncio.Task | None:
        """
        Start a refresh cycle in the background.

        Returns None when a cycle is already running or scheduled.
        """

        if self.refresher.is_refreshing or (self._refresh_task is not None and not self._refresh_task.done()):
            logger.debug(f"Refresh trigger ({reason}) ignored; a cycle is already in progress")
            return None
        logger.info(f"Scheduling background home refresh ({reason})")
        self._refresh_task = self._track(asyncio.create_task(self.refresher.refresh(), name=f"home-refresh:{reason}"))
        return self._refresh_task

    async def refresh_now(self) -> RefreshSummary | None:
        return await self.refresher.refresh()

    async def _daily_refresh_loop(self) -> None:
        hour = self.settings.home_refresh_hour_utc
        while True:
            try:
                delay = seconds_until_next_run(self._clock(), hour)
                logger.info(f"Next scheduled home refresh in {delay / 3600:.1f}h ({hour:02d}:00 UTC)")
                await asyncio.sleep(delay)
                self.trigger_refresh(reason="daily")
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in daily refresh scheduler: {e}")
                await asyncio.sleep(60)

    # --- read surface ---

    async def get_category(self, name: str | HomeCategory) -> list[Content]:
        """
        Current rolling list for a home category.

        An empty list schedules a background refresh; the caller gets `[]` right away.
        Raises ValueError for unknown category names.
        """

        category = name if isinstance(name, HomeCategory) else HomeCategory.parse(name)
        items = self.refresher.get(category)
        if not items:
            logger.info(f"Home category {category.value} is empty")
            self.trigger_refresh(reason=f"empty:{category.value}")
        return items

    async def get_details(self, tmdb_id: str | int, media_type: str) -> Content | None:
        media_type = require_media_type(media_type)
        try:
            return await self.loader.load(media_type, tmdb_id)
        except FetchError as exc:
            logger.warning(f"Details for {media_type}:{tmdb_id} unavailable: {exc}")
            return None

    async def list_page(
        self,
        media_type: str,
        page: int = 1,
        filters: DiscoveryFilters | None = None,
        user_ratings: Mapping[ContentKey, float] | None = None,
    ) -> list[Content]:
        return await self.discovery.list_page(media_type, page, filters, user_ratings)

    async def get_genre_names(self, media_type: str = "movie") -> list[str]:
        return await self.genres.names(media_type)

    async def search(self, query: str) -> list[Content]:
        """TMDb multi search over movies and series. Results are normalized, not enriched."""

        query = (query or "").strip()
        if not query:
            return []
        try:
            raw_results = await search_multi(
                self.fetcher,
                query,
                api_key=self.settings.tmdb_api_key,
                language=self.settings.tmdb_language,
            )
        except FetchError as exc:
            logger.warning(f"Search for {query!r} failed: {exc}")
            return []

        results: list[Content] = []
        for raw in raw_results:
            media_type = raw["media_type"]
            genre_names = await self.genres.genre_map(media_type) if needs_genre_map(raw) else None
            results.append(normalize_content(raw, media_type, genre_names=genre_names))
        return results

    # --- write surface ---

    async def ensure_content_exists(self, tmdb_id: str | int, media_type: str | None = None) -> Content:
        """
        Make sure a title is in the content cache and return it.

        Without `media_type` the id is tried as a movie first, then as a series when
        upstream rejects it as a movie. Raises `ContentUnavailableError` when no
        candidate type can be loaded and re-raises `RetryableFetchError` when upstream
        is unavailable.
        """

        candidates = (require_media_type(media_type),) if media_type else ("movie", "tv")
        last_error: TerminalFetchError | None = None
        for candidate in candidates:
            try:
                content = await self.loader.load(candidate, tmdb_id)
            except TerminalFetchError as exc:
                logger.info(f"TMDb has no {candidate} {tmdb_id}: {exc}")
                last_error = exc
                continue
            if content is not None:
                return content
        raise ContentUnavailableError(tmdb_id, media_type) from last_error
