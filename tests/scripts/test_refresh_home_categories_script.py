from __future__ import annotations

import json

import pytest

from catalog_backend.engine import CatalogEngine
from catalog_backend.ingestion.home_refresh import HomeCategory
from catalog_backend.repositories.content_cache import ContentCacheError, InMemoryContentCacheStore
from scripts import refresh_home_categories as script


@pytest.fixture(autouse=True)
def _api_keys(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(script, "load_env", lambda: None)
    monkeypatch.setenv("TMDB_API_KEY", "tmdb")
    monkeypatch.setenv("OMDB_API_KEY", "omdb")
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_SERVICE_ROLE_KEY", raising=False)


def _patch_engine(monkeypatch: pytest.MonkeyPatch, fetcher) -> None:  # noqa: ANN001
    monkeypatch.setattr(
        script,
        "CatalogEngine",
        lambda settings: CatalogEngine(settings, fetcher=fetcher, store=InMemoryContentCacheStore()),
    )


def test_refresh_writes_snapshot_and_prints_summary(
    monkeypatch: pytest.MonkeyPatch, tmp_path, fake_fetcher, payloads, capsys
) -> None:  # noqa: ANN001
    for offset, category in enumerate(HomeCategory):
        tmdb_id = 100 + offset
        fake_fetcher.add(category.endpoint, payloads.listing([tmdb_id]))
        detail = payloads.movie(tmdb_id) if category.media_type == "movie" else payloads.series(tmdb_id)
        fake_fetcher.add(f"{category.media_type}/{tmdb_id}", detail)
    _patch_engine(monkeypatch, fake_fetcher)
    snapshot = tmp_path / "snap.json"

    code = script.main(["--snapshot", str(snapshot), "--json"])

    assert code == 0
    report = json.loads(capsys.readouterr().out)
    assert report["failed"] == []
    assert report["committed"]["trending_series"] == 1
    assert set(json.loads(snapshot.read_text(encoding="utf-8"))) == {c.value for c in HomeCategory}


def test_failed_categories_give_non_zero_exit(monkeypatch: pytest.MonkeyPatch, tmp_path, fake_fetcher, capsys) -> None:  # noqa: ANN001
    _patch_engine(monkeypatch, fake_fetcher)

    code = script.main(["--snapshot", str(tmp_path / "snap.json")])

    assert code == 1
    assert "failed=" in capsys.readouterr().out


def test_missing_api_key_exits_with_configuration_error(monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    monkeypatch.delenv("OMDB_API_KEY")

    assert script.main([]) == 2
    assert "OMDB_API_KEY" in capsys.readouterr().err


def test_missing_cache_table_exits_with_configuration_error(monkeypatch: pytest.MonkeyPatch, capsys) -> None:  # noqa: ANN001
    def missing_table(settings):  # noqa: ANN001, ANN202
        raise ContentCacheError("Supabase table core.content_cache is missing.")

    monkeypatch.setattr(script, "CatalogEngine", missing_table)

    assert script.main([]) == 2
    assert "core.content_cache" in capsys.readouterr().err
