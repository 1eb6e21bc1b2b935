from __future__ import annotations

from typing import Any

from catalog_backend.integrations.fetcher import JsonFetcher

OMDB_API_BASE_URL = "https://www.omdbapi.com/"


def is_not_found(payload: dict[str, Any]) -> bool:
    """
    OMDb reports lookups it cannot satisfy with HTTP 200 and `"Response": "False"`.
    """

    return str(payload.get("Response") or "").strip().casefold() == "false"


async def fetch_title_by_imdb_id(
    fetcher: JsonFetcher,
    imdb_id: str,
    *,
    api_key: str,
) -> dict[str, Any]:
    return await fetcher.fetch_json(OMDB_API_BASE_URL, {"i": imdb_id, "apikey": api_key})
