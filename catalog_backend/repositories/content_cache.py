from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from typing import Any, Mapping

from supabase import Client

from catalog_backend.models.content import Content, ContentKey

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TTL = timedelta(hours=24)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


class ContentCacheError(RuntimeError):
    pass


@dataclass(frozen=True)
class CachedContent:
    content: Content
    fresh: bool


class ContentCacheStore(ABC):
    """
    TTL-aware store of the last known canonical record per `(tmdb_id, type)`.

    `upsert` stamps `last_synced_at = now` on every write, including writes of
    unchanged data, which restarts the TTL clock.
    """

    def __init__(self, *, ttl: timedelta = DEFAULT_CONTENT_TTL, clock: Clock = utc_now) -> None:
        self.ttl = ttl
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    def is_fresh(self, content: Content) -> bool:
        if content.last_synced_at is None:
            return False
        return self.now() - content.last_synced_at < self.ttl

    @abstractmethod
    async def _read(self, key: ContentKey) -> Content | None:
        """Return the stored record regardless of age."""

    @abstractmethod
    async def _write(self, content: Content) -> None:
        """Insert or replace the record for `content.key`."""

    async def get(self, key: ContentKey) -> CachedContent | None:
        content = await self._read(key)
        if content is None:
            return None
        return CachedContent(content=content, fresh=self.is_fresh(content))

    async def get_fresh(self, key: ContentKey) -> Content | None:
        cached = await self.get(key)
        if cached is None or not cached.fresh:
            return None
        return cached.content

    async def upsert(self, content: Content) -> Content:
        stamped = replace(content, last_synced_at=self.now())
        await self._write(stamped)
        return stamped


class InMemoryContentCacheStore(ContentCacheStore):
    """
    Process-local store for development and tests. No eviction.
    """

    def __init__(self, *, ttl: timedelta = DEFAULT_CONTENT_TTL, clock: Clock = utc_now) -> None:
        super().__init__(ttl=ttl, clock=clock)
        self._rows: dict[ContentKey, Content] = {}

    def __len__(self) -> int:
        return len(self._rows)

    async def _read(self, key: ContentKey) -> Content | None:
        return self._rows.get(key)

    async def _write(self, content: Content) -> None:
        self._rows[content.key] = content


# --- Supabase backend ---

CONTENT_CACHE_SCHEMA = "core"
CONTENT_CACHE_TABLE = "content_cache"


def content_to_row(content: Content) -> dict[str, Any]:
    return {
        "tmdb_id": content.tmdb_id,
        "type": content.type,
        "title": content.title,
        "release_year": content.release_year,
        "poster": content.poster,
        "overview": content.overview,
        "language": content.language,
        "genres": list(content.genres),
        "providers": None if content.providers is None else list(content.providers),
        "imdb_rating": content.imdb_rating,
        "rt_rating": content.rt_rating,
        "cast": [member.to_dict() for member in content.cast],
        "imdb_id": content.imdb_id,
        "last_synced_at": content.last_synced_at.isoformat() if content.last_synced_at else None,
    }


def content_from_row(row: Mapping[str, Any]) -> Content:
    return Content.from_dict(
        {
            "tmdbId": row.get("tmdb_id"),
            "type": row.get("type"),
            "title": row.get("title"),
            "releaseYear": row.get("release_year"),
            "poster": row.get("poster"),
            "overview": row.get("overview"),
            "language": row.get("language"),
            "genres": row.get("genres"),
            "providers": row.get("providers"),
            "imdbRating": row.get("imdb_rating"),
            "rtRating": row.get("rt_rating"),
            "cast": row.get("cast"),
            "imdbId": row.get("imdb_id"),
            "lastSyncedAt": row.get("last_synced_at"),
        }
    )


def _raise_for_supabase_error(response: Any, context: str) -> None:
    if hasattr(response, "error") and response.error:
        raise ContentCacheError(f"Supabase error during {context}: {response.error}")


def assert_content_cache_table_exists(db: Client) -> None:
    """
    Fail fast with a clear error if `core.content_cache` is missing in Supabase.
    """

    def is_missing_relation(message: str) -> bool:
        msg = (message or "").casefold()
        return (
            "42p01" in msg
            or "pgrst205" in msg
            or ("relation" in msg and "does not exist" in msg)
            or ("schema cache" in msg and "content_cache" in msg)
        )

    help_message = (
        "Database table `core.content_cache` is missing. "
        "Run `supabase db push` to apply migrations (see `supabase/migrations/0001_content_cache.sql`)."
    )

    try:
        response = db.schema(CONTENT_CACHE_SCHEMA).table(CONTENT_CACHE_TABLE).select("tmdb_id").limit(1).execute()
    except Exception as exc:
        if is_missing_relation(str(exc)):
            raise ContentCacheError(help_message) from exc
        raise ContentCacheError(f"Supabase error during core.content_cache preflight: {exc}") from exc

    error = getattr(response, "error", None)
    if not error:
        return
    if is_missing_relation(str(error)):
        raise ContentCacheError(help_message)
    raise ContentCacheError(f"Supabase error during core.content_cache preflight: {error}")


class SupabaseContentCacheStore(ContentCacheStore):
    """
    Durable store backed by `core.content_cache` (unique on `tmdb_id, type`).

    The Supabase client is synchronous, so calls run in worker threads.
    """

    def __init__(self, db: Client, *, ttl: timedelta = DEFAULT_CONTENT_TTL, clock: Clock = utc_now) -> None:
        super().__init__(ttl=ttl, clock=clock)
        self._db = db

    def _table(self):  # noqa: ANN202
        return self._db.schema(CONTENT_CACHE_SCHEMA).table(CONTENT_CACHE_TABLE)

    def _read_sync(self, key: ContentKey) -> Content | None:
        try:
            response = (
                self._table()
                .select("*")
                .eq("tmdb_id", key.tmdb_id)
                .eq("type", key.type)
                .limit(1)
                .execute()
            )
        except Exception as exc:
            raise ContentCacheError(f"Supabase error reading content {key}: {exc}") from exc
        _raise_for_supabase_error(response, f"reading content {key}")
        data = response.data or []
        if isinstance(data, list) and data:
            return content_from_row(data[0])
        return None

    def _write_sync(self, content: Content) -> None:
        try:
            response = self._table().upsert(content_to_row(content), on_conflict="tmdb_id,type").execute()
        except Exception as exc:
            raise ContentCacheError(f"Supabase error upserting content {content.key}: {exc}") from exc
        _raise_for_supabase_error(response, f"upserting content {content.key}")

    async def _read(self, key: ContentKey) -> Content | None:
        return await asyncio.to_thread(self._read_sync, key)

    async def _write(self, content: Content) -> None:
        await asyncio.to_thread(self._write_sync, content)


def build_content_cache_store(
    *,
    supabase_url: str | None,
    supabase_service_role_key: str | None,
    ttl: timedelta = DEFAULT_CONTENT_TTL,
) -> ContentCacheStore:
    if supabase_url and supabase_service_role_key:
        from catalog_backend.db.supabase import create_supabase_admin_client

        db = create_supabase_admin_client(url=supabase_url, service_role_key=supabase_service_role_key)
        assert_content_cache_table_exists(db)
        logger.info("Content cache backed by Supabase core.content_cache")
        return SupabaseContentCacheStore(db, ttl=ttl)

    logger.warning("SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY not set; content cache is in-memory only")
    return InMemoryContentCacheStore(ttl=ttl)


__all__ = [
    "CachedContent",
    "ContentCacheError",
    "ContentCacheStore",
    "InMemoryContentCacheStore",
    "SupabaseContentCacheStore",
    "assert_content_cache_table_exists",
    "build_content_cache_store",
    "content_from_row",
    "content_to_row",
]
