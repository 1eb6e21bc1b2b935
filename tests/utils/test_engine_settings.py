from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from catalog_backend.config import ConfigurationError, EngineSettings
from catalog_backend.utils.retry import RetryPolicy

_ENV_VARS = (
    "TMDB_API_KEY",
    "OMDB_API_KEY",
    "TMDB_LANGUAGE",
    "WATCH_PROVIDER_REGION",
    "CONTENT_CACHE_TTL_HOURS",
    "FETCH_MAX_IN_FLIGHT",
    "FETCH_TIMEOUT_SECONDS",
    "HOME_LIST_SIZE",
    "HOME_REFRESH_HOUR_UTC",
    "HOME_SNAPSHOT_PATH",
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TMDB_API_KEY", "tmdb")
    monkeypatch.setenv("OMDB_API_KEY", "omdb")

    settings = EngineSettings.from_env()

    assert settings.tmdb_api_key == "tmdb"
    assert settings.watch_region == "AT"
    assert settings.content_ttl == timedelta(hours=24)
    assert settings.fetch_max_in_flight == 5
    assert settings.fetch_timeout_seconds == 5.0
    assert settings.home_list_size == 20
    assert settings.home_refresh_hour_utc == 2
    assert settings.snapshot_path == Path("home_snapshot.json")
    assert settings.uses_supabase_cache is False


def test_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TMDB_API_KEY", "tmdb")
    monkeypatch.setenv("OMDB_API_KEY", "omdb")
    monkeypatch.setenv("WATCH_PROVIDER_REGION", "de")
    monkeypatch.setenv("CONTENT_CACHE_TTL_HOURS", "6")
    monkeypatch.setenv("FETCH_MAX_IN_FLIGHT", "8")
    monkeypatch.setenv("HOME_SNAPSHOT_PATH", "/tmp/home.json")
    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service")

    settings = EngineSettings.from_env()

    assert settings.watch_region == "DE"
    assert settings.content_ttl == timedelta(hours=6)
    assert settings.fetch_max_in_flight == 8
    assert settings.snapshot_path == Path("/tmp/home.json")
    assert settings.uses_supabase_cache is True


@pytest.mark.parametrize("missing", ["TMDB_API_KEY", "OMDB_API_KEY"])
def test_missing_api_key_is_fatal(monkeypatch: pytest.MonkeyPatch, missing: str) -> None:
    monkeypatch.setenv("TMDB_API_KEY", "tmdb")
    monkeypatch.setenv("OMDB_API_KEY", "omdb")
    monkeypatch.delenv(missing)

    with pytest.raises(ConfigurationError, match=missing):
        EngineSettings.from_env()


@pytest.mark.parametrize(
    ("name", "value"),
    [("FETCH_MAX_IN_FLIGHT", "many"), ("FETCH_MAX_IN_FLIGHT", "0"), ("HOME_REFRESH_HOUR_UTC", "24")],
)
def test_invalid_numbers_are_fatal(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    monkeypatch.setenv("TMDB_API_KEY", "tmdb")
    monkeypatch.setenv("OMDB_API_KEY", "omdb")
    monkeypatch.setenv(name, value)

    with pytest.raises(ConfigurationError, match=name):
        EngineSettings.from_env()


def test_retry_policy_delay_is_linear() -> None:
    policy = RetryPolicy(max_attempts=3, base_delay=0.3)

    assert [policy.delay_for(n) for n in (1, 2, 3)] == pytest.approx([0.3, 0.6, 0.9])


def test_retry_policy_propagates_unlisted_errors(run) -> None:  # noqa: ANN001
    calls: list[int] = []

    async def boom() -> None:
        calls.append(1)
        raise KeyError("not retryable")

    policy = RetryPolicy(max_attempts=3, base_delay=0.0, retry_on=(ValueError,))

    with pytest.raises(KeyError):
        run(policy.run(boom))
    assert calls == [1]
