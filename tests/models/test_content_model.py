from __future__ import annotations

from datetime import UTC, datetime

from catalog_backend.models.content import Content, ContentKey


def test_from_dict_tolerates_missing_keys() -> None:
    content = Content.from_dict({"tmdbId": "603", "title": "The Matrix"})

    assert content.key == ContentKey("603", "movie")
    assert content.release_year == 0
    assert content.providers is None
    assert content.imdb_rating is None
    assert content.cast == ()
    assert content.last_synced_at is None


def test_to_dict_uses_camel_case_and_utc_z_suffix() -> None:
    content = Content(
        tmdb_id="1399",
        type="tv",
        title="Game of Thrones",
        providers=(),
        rt_rating=89,
        last_synced_at=datetime(2025, 6, 1, 2, 30, tzinfo=UTC),
    )

    data = content.to_dict()

    assert data["tmdbId"] == "1399"
    assert data["providers"] == []
    assert data["rtRating"] == 89
    assert data["lastSyncedAt"] == "2025-06-01T02:30:00Z"
    assert Content.from_dict(data) == content


def test_ratings_are_never_coerced_to_zero() -> None:
    content = Content.from_dict({"tmdbId": "1", "type": "movie", "imdbRating": "N/A", "rtRating": None})

    assert content.imdb_rating is None
    assert content.rt_rating is None


def test_content_key_normalizes_inputs() -> None:
    key = ContentKey.of(603, " Movie ")

    assert key == ContentKey("603", "movie")
    assert str(key) == "movie:603"
