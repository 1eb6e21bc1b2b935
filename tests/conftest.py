from __future__ import annotations

import asyncio
import copy
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest

from catalog_backend.config import EngineSettings
from catalog_backend.engine import CatalogEngine
from catalog_backend.ingestion.snapshot import HomeSnapshotStore
from catalog_backend.integrations.fetcher import RetryableFetchError, TerminalFetchError
from catalog_backend.integrations.omdb.client import OMDB_API_BASE_URL
from catalog_backend.integrations.tmdb.client import TMDB_API_BASE_URL
from catalog_backend.repositories.content_cache import InMemoryContentCacheStore
from catalog_backend.utils.retry import RetryPolicy


class FakeFetcher:
    """
    In-process stand-in for `RateLimitedFetcher`.

    Routes are keyed by the TMDb path relative to the API root (`movie/603`,
    `trending/movie/week`) or `omdb/<imdb id>`. A route holds a payload dict, an
    exception to raise, or a callable taking the query params. Unknown routes
    answer like a TMDb 404.
    """

    def __init__(self, *, delay: float = 0.0) -> None:
        self.routes: dict[str, Any] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight_seen = 0

    def add(self, path: str, response: Any) -> "FakeFetcher":
        self.routes[path.strip("/")] = response
        return self

    def count(self, path: str) -> int:
        return sum(1 for called, _ in self.calls if called == path)

    def paths(self) -> list[str]:
        return [called for called, _ in self.calls]

    def params_for(self, path: str) -> list[dict[str, Any]]:
        return [params for called, params in self.calls if called == path]

    async def fetch_json(self, url: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        params = dict(params or {})
        if url == OMDB_API_BASE_URL:
            path = f"omdb/{params.get('i')}"
        else:
            path = url.removeprefix(f"{TMDB_API_BASE_URL}/").strip("/")
        self.calls.append((path, params))

        self.in_flight += 1
        self.max_in_flight_seen = max(self.max_in_flight_seen, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if path not in self.routes:
                raise TerminalFetchError(f"HTTP 404 from {path}", url=path, status_code=404)
            response = self.routes[path]
            if callable(response):
                response = response(params)
            if isinstance(response, BaseException):
                raise response
            return copy.deepcopy(response)
        finally:
            self.in_flight -= 1


class Payloads:
    """Builders for TMDb / OMDb response bodies."""

    @staticmethod
    def movie(
        tmdb_id: int,
        title: str = "Movie",
        *,
        release_date: str = "1999-03-30",
        genres: tuple[str, ...] = ("Action",),
        imdb_id: str | None = None,
        poster_path: str | None = "/poster.jpg",
        cast: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        return {
            "id": tmdb_id,
            "title": title,
            "release_date": release_date,
            "poster_path": poster_path,
            "overview": f"{title} overview",
            "original_language": "en",
            "genres": [{"id": 1000 + i, "name": name} for i, name in enumerate(genres)],
            "imdb_id": imdb_id if imdb_id is not None else f"tt{tmdb_id:07d}",
            "credits": {"cast": cast or []},
        }

    @staticmethod
    def series(
        tmdb_id: int,
        name: str = "Series",
        *,
        first_air_date: str = "2011-04-17",
        genres: tuple[str, ...] = ("Drama",),
        imdb_id: str | None = None,
        cast: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        return {
            "id": tmdb_id,
            "name": name,
            "first_air_date": first_air_date,
            "poster_path": "/series.jpg",
            "overview": f"{name} overview",
            "original_language": "en",
            "genres": [{"id": 2000 + i, "name": g} for i, g in enumerate(genres)],
            "external_ids": {"imdb_id": imdb_id if imdb_id is not None else f"tt{tmdb_id:07d}"},
            "aggregate_credits": {"cast": cast or []},
        }

    @staticmethod
    def listing(ids: list[int], *, page: int = 1) -> dict[str, Any]:
        return {"page": page, "results": [{"id": i} for i in ids], "total_pages": 10}

    @staticmethod
    def providers(
        region: str = "AT",
        *,
        flatrate: tuple[str, ...] = (),
        rent: tuple[str, ...] = (),
        buy: tuple[str, ...] = (),
    ) -> dict[str, Any]:
        block: dict[str, Any] = {}
        for key, names in (("flatrate", flatrate), ("rent", rent), ("buy", buy)):
            if names:
                block[key] = [{"provider_name": n} for n in names]
        return {"id": 1, "results": {region: block}}

    @staticmethod
    def omdb(imdb_rating: str = "8.7", rt_value: str | None = "88%") -> dict[str, Any]:
        ratings = [{"Source": "Internet Movie Database", "Value": f"{imdb_rating}/10"}]
        if rt_value is not None:
            ratings.append({"Source": "Rotten Tomatoes", "Value": rt_value})
        return {"Response": "True", "imdbRating": imdb_rating, "Ratings": ratings}

    @staticmethod
    def omdb_not_found() -> dict[str, Any]:
        return {"Response": "False", "Error": "Incorrect IMDb ID."}

    @staticmethod
    def genre_list(names: dict[int, str]) -> dict[str, Any]:
        return {"genres": [{"id": gid, "name": name} for gid, name in names.items()]}


def run_async(coro):  # noqa: ANN001, ANN201
    return asyncio.run(coro)


class FixedClock:
    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2025, 6, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now


NO_WAIT_RETRY = RetryPolicy(max_attempts=3, base_delay=0.0, retry_on=(RetryableFetchError,))


@pytest.fixture
def fake_fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def payloads() -> type[Payloads]:
    return Payloads


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def settings(tmp_path: Path) -> EngineSettings:
    return EngineSettings(
        tmdb_api_key="tmdb-test-key",
        omdb_api_key="omdb-test-key",
        snapshot_path=tmp_path / "home_snapshot.json",
    )


@pytest.fixture
def make_engine(settings: EngineSettings, clock: FixedClock) -> Callable[..., CatalogEngine]:
    def _make(fetcher: FakeFetcher, **overrides: Any) -> CatalogEngine:
        engine_settings = overrides.pop("settings", settings)
        return CatalogEngine(
            engine_settings,
            fetcher=fetcher,
            store=overrides.pop("store", InMemoryContentCacheStore(ttl=engine_settings.content_ttl, clock=clock)),
            snapshot=overrides.pop("snapshot", HomeSnapshotStore(engine_settings.snapshot_path)),
            ratings_retry=overrides.pop("ratings_retry", NO_WAIT_RETRY),
            clock=overrides.pop("clock", clock),
        )

    return _make


@pytest.fixture
def run() -> Callable[..., Any]:
    return run_async
