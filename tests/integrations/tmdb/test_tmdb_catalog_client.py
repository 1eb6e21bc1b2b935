from __future__ import annotations

import pytest

from catalog_backend.integrations.fetcher import TerminalFetchError
from catalog_backend.integrations.tmdb.client import (
    fetch_genre_list,
    fetch_listing_page,
    fetch_title_details,
    require_media_type,
    results_of,
    search_multi,
)


def test_movie_details_request_appends_credits(fake_fetcher, payloads, run) -> None:  # noqa: ANN001
    fake_fetcher.add("movie/603", payloads.movie(603, "The Matrix"))

    payload = run(fetch_title_details(fake_fetcher, 603, "movie", api_key="k", language="en-US"))

    assert payload["title"] == "The Matrix"
    [params] = fake_fetcher.params_for("movie/603")
    assert params == {"api_key": "k", "language": "en-US", "append_to_response": "credits"}


def test_series_details_request_appends_external_ids_and_aggregate_credits(fake_fetcher, payloads, run) -> None:  # noqa: ANN001
    fake_fetcher.add("tv/1399", payloads.series(1399, "Game of Thrones"))

    run(fetch_title_details(fake_fetcher, "1399", "TV", api_key="k"))

    [params] = fake_fetcher.params_for("tv/1399")
    assert params["append_to_response"] == "external_ids,aggregate_credits"
    assert "language" not in params


def test_details_without_id_is_terminal(fake_fetcher, run) -> None:  # noqa: ANN001
    fake_fetcher.add("movie/1", {"success": False})

    with pytest.raises(TerminalFetchError):
        run(fetch_title_details(fake_fetcher, 1, "movie", api_key="k"))


def test_require_media_type_rejects_people() -> None:
    assert require_media_type(" Movie ") == "movie"
    with pytest.raises(ValueError):
        require_media_type("person")


def test_listing_page_merges_extra_params(fake_fetcher, payloads, run) -> None:  # noqa: ANN001
    fake_fetcher.add("discover/movie", payloads.listing([1, 2]))

    payload = run(
        fetch_listing_page(
            fake_fetcher,
            "/discover/movie",
            api_key="k",
            page=0,
            params={"with_genres": "28,12", "primary_release_date.gte": None},
        )
    )

    assert [r["id"] for r in results_of(payload)] == [1, 2]
    [params] = fake_fetcher.params_for("discover/movie")
    assert params == {"api_key": "k", "page": 1, "with_genres": "28,12"}


def test_results_of_skips_entries_without_id() -> None:
    assert results_of({"results": [{"id": 1}, {"name": "x"}, "junk"]}) == [{"id": 1}]
    assert results_of({"results": None}) == []


def test_genre_list_maps_ids_to_names(fake_fetcher, payloads, run) -> None:  # noqa: ANN001
    body = payloads.genre_list({28: "Action", 35: "Comedy"})
    body["genres"].append({"id": "x", "name": "Broken"})
    fake_fetcher.add("genre/movie/list", body)

    assert run(fetch_genre_list(fake_fetcher, "movie", api_key="k")) == {28: "Action", 35: "Comedy"}


def test_search_multi_keeps_only_movies_and_series(fake_fetcher, run) -> None:  # noqa: ANN001
    fake_fetcher.add(
        "search/multi",
        {
            "results": [
                {"id": 603, "media_type": "movie", "title": "The Matrix"},
                {"id": 6384, "media_type": "person", "name": "Keanu Reeves"},
                {"id": 1399, "media_type": "tv", "name": "Game of Thrones"},
            ]
        },
    )

    results = run(search_multi(fake_fetcher, "matrix", api_key="k"))

    assert [(r["media_type"], r["id"]) for r in results] == [("movie", 603), ("tv", 1399)]
    assert fake_fetcher.params_for("search/multi")[0]["query"] == "matrix"
