"""
TMDb integration client.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from catalog_backend.integrations.tmdb.client import (
        MEDIA_TYPES,
        fetch_genre_list,
        fetch_listing_page,
        fetch_title_details,
        fetch_watch_providers,
        search_multi,
    )

__all__ = [
    "MEDIA_TYPES",
    "fetch_genre_list",
    "fetch_listing_page",
    "fetch_title_details",
    "fetch_watch_providers",
    "search_multi",
]


def __getattr__(name: str):
    if name in __all__:
        from catalog_backend.integrations.tmdb import client

        return getattr(client, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
