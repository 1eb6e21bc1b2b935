"""
Repository layer for cached content.
"""

from catalog_backend.repositories.content_cache import (
    CachedContent,
    ContentCacheError,
    ContentCacheStore,
    InMemoryContentCacheStore,
    SupabaseContentCacheStore,
    build_content_cache_store,
)

__all__ = [
    "CachedContent",
    "ContentCacheError",
    "ContentCacheStore",
    "InMemoryContentCacheStore",
    "SupabaseContentCacheStore",
    "build_content_cache_store",
]
