"""
Home-category refresh orchestrator.

Keeps one rolling list per `HomeCategory`. A refresh cycle fetches the first page of
every category concurrently, loads each listed title through the `ContentLoader`,
and swaps the surviving items in as the new list. A category whose listing fails,
or which ends up with no usable items, keeps its previous list.

At most one cycle runs at a time; a trigger while a cycle is running is a no-op.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from catalog_backend.ingestion.content_loader import ContentLoader
from catalog_backend.ingestion.snapshot import HomeSnapshotStore, SnapshotError
from catalog_backend.integrations.fetcher import FetchError, JsonFetcher
from catalog_backend.integrations.tmdb.client import fetch_listing_page, results_of
from catalog_backend.models.content import Content
from catalog_backend.repositories.content_cache import Clock, utc_now

logger = logging.getLogger(__name__)

DEFAULT_HOME_LIST_SIZE = 20


class HomeCategory(str, Enum):
    TRENDING_MOVIES = "trending_movies"
    TOP_RATED_MOVIES = "top_rated_movies"
    NEW_RELEASE_MOVIES = "new_release_movies"
    TRENDING_SERIES = "trending_series"
    TOP_RATED_SERIES = "top_rated_series"

    @property
    def endpoint(self) -> str:
        return _CATEGORY_ENDPOINTS[self]

    @property
    def media_type(self) -> str:
        return "tv" if self in (HomeCategory.TRENDING_SERIES, HomeCategory.TOP_RATED_SERIES) else "movie"

    @classmethod
    def parse(cls, name: str) -> "HomeCategory":
        """Accepts the enum value (`top_rated_movies`) or the short route name (`top-rated`)."""

        value = str(name or "").strip().lower()
        if value in _LEGACY_NAMES:
            return _LEGACY_NAMES[value]
        try:
            return cls(value.replace("-", "_"))
        except ValueError:
            raise ValueError(f"Unknown home category: {name!r}") from None


_CATEGORY_ENDPOINTS: dict[HomeCategory, str] = {
    HomeCategory.TRENDING_MOVIES: "trending/movie/week",
    HomeCategory.TOP_RATED_MOVIES: "movie/top_rated",
    HomeCategory.NEW_RELEASE_MOVIES: "movie/now_playing",
    HomeCategory.TRENDING_SERIES: "trending/tv/week",
    HomeCategory.TOP_RATED_SERIES: "tv/top_rated",
}

_LEGACY_NAMES: dict[str, HomeCategory] = {
    "trending": HomeCategory.TRENDING_MOVIES,
    "top-rated": HomeCategory.TOP_RATED_MOVIES,
    "new-releases": HomeCategory.NEW_RELEASE_MOVIES,
    "trending-series": HomeCategory.TRENDING_SERIES,
    "top-rated-series": HomeCategory.TOP_RATED_SERIES,
}


class RefreshState(str, Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"


class CategoryPhase(str, Enum):
    FETCHING = "fetching"
    ENRICHING = "enriching"
    COMMITTING = "committing"


@dataclass
class RefreshSummary:
    started_at: datetime
    finished_at: datetime | None = None
    committed: dict[HomeCategory, int] = field(default_factory=dict)
    dropped: dict[HomeCategory, int] = field(default_factory=dict)
    failed: list[HomeCategory] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def as_dict(self) -> dict[str, object]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "committed": {c.value: n for c, n in self.committed.items()},
            "dropped": {c.value: n for c, n in self.dropped.items()},
            "failed": [c.value for c in self.failed],
        }


class HomeCategoryRefresher:
    def __init__(
        self,
        fetcher: JsonFetcher,
        loader: ContentLoader,
        snapshot: HomeSnapshotStore | None,
        *,
        api_key: str,
        language: str | None = None,
        list_size: int = DEFAULT_HOME_LIST_SIZE,
        clock: Clock = utc_now,
    ) -> None:
        self._fetcher = fetcher
        self._loader = loader
        self._snapshot = snapshot
        self._api_key = api_key
        self._language = language
        self._list_size = max(1, int(list_size))
        self._clock = clock
        self._state = RefreshState.IDLE
        self._phases: dict[HomeCategory, CategoryPhase] = {}
        self._lists: dict[HomeCategory, tuple[Content, ...]] = {c: () for c in HomeCategory}
        self.last_summary: RefreshSummary | None = None

    @property
    def state(self) -> RefreshState:
        return self._state

    @property
    def is_refreshing(self) -> bool:
        return self._state is RefreshState.REFRESHING

    @property
    def category_phases(self) -> dict[HomeCategory, CategoryPhase]:
        return dict(self._phases)

    def get(self, category: HomeCategory) -> list[Content]:
        return list(self._lists[category])

    def lists(self) -> dict[HomeCategory, tuple[Content, ...]]:
        return dict(self._lists)

    async def load_snapshot(self) -> bool:
        """
        Seed the rolling lists from the snapshot file.

        Returns False (and leaves every list empty) when the file is missing or unusable.
        """

        if self._snapshot is None:
            return False
        try:
            stored = await self._snapshot.load()
        except SnapshotError as exc:
            logger.warning(f"Ignoring home snapshot; starting cold: {exc}")
            return False
        if not stored:
            logger.info(f"No home snapshot at {self._snapshot.path}; starting cold")
            return False

        for category in HomeCategory:
            self._lists[category] = tuple(stored.get(category.value, ()))
        loaded = {c.value: len(items) for c, items in self._lists.items()}
        logger.info(f"Loaded home snapshot: {loaded}")
        return True

    async def save_snapshot(self) -> None:
        if self._snapshot is None:
            return
        try:
            await self._snapshot.save({c.value: items for c, items in self._lists.items()})
        except SnapshotError as exc:
            logger.error(f"Home snapshot not written: {exc}")

    async def refresh(self) -> RefreshSummary | None:
        """
        Run one refresh cycle over every category.

        Returns None without doing anything when a cycle is already running.
        """

        if self._state is RefreshState.REFRESHING:
            logger.info("Home refresh already running; skipping trigger")
            return None
        self._state = RefreshState.REFRESHING

        summary = RefreshSummary(started_at=self._clock())
        try:
            logger.info("Home refresh started")
            await asyncio.gather(*(self._run_category(category, summary) for category in HomeCategory))
        finally:
            self._phases.clear()
            try:
                await self.save_snapshot()
            finally:
                summary.finished_at = self._clock()
                self.last_summary = summary
                self._state = RefreshState.IDLE

        report = summary.as_dict()
        logger.info(f"Home refresh finished: committed={report['committed']} failed={report['failed']}")
        return summary

    async def _run_category(self, category: HomeCategory, summary: RefreshSummary) -> None:
        try:
            committed = await self._refresh_category(category, summary)
        except FetchError as exc:
            logger.warning(f"Home category {category.value} listing failed; keeping previous list: {exc}")
            committed = False
        except Exception:
            logger.exception(f"Home category {category.value} refresh crashed; keeping previous list")
            committed = False
        finally:
            self._phases.pop(category, None)
        if not committed:
            summary.failed.append(category)

    async def _refresh_category(self, category: HomeCategory, summary: RefreshSummary) -> bool:
        self._phases[category] = CategoryPhase.FETCHING
        payload = await fetch_listing_page(
            self._fetcher,
            category.endpoint,
            api_key=self._api_key,
            page=1,
            language=self._language,
        )
        listed = results_of(payload)[: self._list_size]

        self._phases[category] = CategoryPhase.ENRICHING
        results = await asyncio.gather(
            *(self._loader.load(category.media_type, item["id"]) for item in listed),
            return_exceptions=True,
        )

        items: list[Content] = []
        dropped = 0
        for item, result in zip(listed, results):
            if isinstance(result, FetchError):
                logger.warning(f"Dropping {category.media_type}:{item['id']} from {category.value}: {result}")
                dropped += 1
            elif isinstance(result, BaseException):
                raise result
            elif result is None:
                dropped += 1
            else:
                items.append(result)
        summary.dropped[category] = dropped

        if not items:
            logger.warning(f"Home category {category.value} produced no items; keeping previous list")
            return False

        self._phases[category] = CategoryPhase.COMMITTING
        self._lists[category] = tuple(items)
        summary.committed[category] = len(items)
        logger.info(f"Home category {category.value}: committed {len(items)} items ({dropped} dropped)")
        return True
