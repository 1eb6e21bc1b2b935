from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Mapping

from catalog_backend.integrations.fetcher import JsonFetcher, RetryableFetchError, TerminalFetchError
from catalog_backend.integrations.omdb.client import fetch_title_by_imdb_id, is_not_found
from catalog_backend.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

RT_SOURCE_NAME = "Rotten Tomatoes"

DEFAULT_RATINGS_RETRY = RetryPolicy(max_attempts=3, base_delay=0.3, retry_on=(RetryableFetchError,))


@dataclass(frozen=True)
class RatingsResult:
    imdb_rating: float | None = None
    rt_rating: int | None = None
    # True when the lookup gave up on a transient failure; the nulls are not an answer.
    degraded: bool = False


EMPTY_RATINGS = RatingsResult()
UNAVAILABLE_RATINGS = RatingsResult(degraded=True)


def _parse_imdb_rating(value: Any) -> float | None:
    if not isinstance(value, str):
        return None
    try:
        rating = float(value.strip())
    except ValueError:
        # OMDb uses "N/A" for titles without a score.
        return None
    if not 0.0 <= rating <= 10.0:
        return None
    return rating


def _parse_rt_rating(ratings: Any) -> int | None:
    if not isinstance(ratings, list):
        return None
    for item in ratings:
        if not isinstance(item, dict) or item.get("Source") != RT_SOURCE_NAME:
            continue
        value = item.get("Value")
        if not isinstance(value, str):
            return None
        raw = value.strip().removesuffix("%").strip()
        if not raw.isdigit():
            return None
        score = int(raw)
        return score if 0 <= score <= 100 else None
    return None


def parse_omdb_ratings(payload: Mapping[str, Any]) -> RatingsResult:
    return RatingsResult(
        imdb_rating=_parse_imdb_rating(payload.get("imdbRating")),
        rt_rating=_parse_rt_rating(payload.get("Ratings")),
    )


class RatingsEnricher:
    """
    IMDb / Rotten Tomatoes scores from OMDb, keyed by IMDb id.

    Results are cached for the lifetime of the instance. Transport failures are
    retried per `retry_policy`; exhausted retries and 4xx answers degrade to null
    scores without being cached, so a later call can still succeed. Exhausted
    retries come back with `degraded=True`.
    """

    def __init__(
        self,
        fetcher: JsonFetcher,
        *,
        api_key: str,
        retry_policy: RetryPolicy = DEFAULT_RATINGS_RETRY,
    ) -> None:
        self._fetcher = fetcher
        self._api_key = api_key
        self._retry_policy = retry_policy
        self._cache: dict[str, RatingsResult] = {}
        self._pending: dict[str, asyncio.Future[RatingsResult]] = {}

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    async def enrich(self, imdb_id: str | None) -> RatingsResult:
        imdb_id = (imdb_id or "").strip()
        if not imdb_id:
            return EMPTY_RATINGS

        cached = self._cache.get(imdb_id)
        if cached is not None:
            return cached

        pending = self._pending.get(imdb_id)
        if pending is not None:
            return await asyncio.shield(pending)

        future: asyncio.Future[RatingsResult] = asyncio.get_running_loop().create_future()
        self._pending[imdb_id] = future
        try:
            result = await self._lookup(imdb_id)
            future.set_result(result)
            return result
        finally:
            if not future.done():
                future.set_result(UNAVAILABLE_RATINGS)
            self._pending.pop(imdb_id, None)

    async def _lookup(self, imdb_id: str) -> RatingsResult:
        try:
            payload = await self._retry_policy.run(
                lambda: fetch_title_by_imdb_id(self._fetcher, imdb_id, api_key=self._api_key),
                context=f"OMDb {imdb_id}",
            )
        except RetryableFetchError as exc:
            logger.warning(f"OMDb lookup for {imdb_id} gave up after retries: {exc}")
            return UNAVAILABLE_RATINGS
        except TerminalFetchError as exc:
            logger.warning(f"OMDb lookup for {imdb_id} rejected: {exc}")
            return EMPTY_RATINGS

        if is_not_found(payload):
            logger.info(f"OMDb has no entry for {imdb_id}: {payload.get('Error') or 'not found'}")
            result = EMPTY_RATINGS
        else:
            result = parse_omdb_ratings(payload)
        self._cache[imdb_id] = result
        return result
