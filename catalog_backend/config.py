"""
Engine configuration resolved from environment variables.

Required:
- TMDB_API_KEY: primary catalog/discovery provider
- OMDB_API_KEY: secondary ratings provider

Everything else has a default; see `EngineSettings.from_env`.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from catalog_backend.utils.env import EnvValueError, env_float, env_int, env_str

DEFAULT_SNAPSHOT_PATH = "home_snapshot.json"


class ConfigurationError(RuntimeError):
    """Fatal misconfiguration; surfaced at startup and never degraded."""


def _require(name: str, value: str | None) -> str:
    resolved = (value or env_str(name) or "").strip()
    if not resolved:
        raise ConfigurationError(f"{name} is not set.")
    return resolved


@dataclass(frozen=True)
class EngineSettings:
    tmdb_api_key: str
    omdb_api_key: str
    tmdb_language: str = "en-US"
    watch_region: str = "AT"
    content_ttl: timedelta = timedelta(hours=24)
    fetch_max_in_flight: int = 5
    fetch_timeout_seconds: float = 5.0
    home_list_size: int = 20
    home_refresh_hour_utc: int = 2
    snapshot_path: Path = Path(DEFAULT_SNAPSHOT_PATH)
    supabase_url: str | None = None
    supabase_service_role_key: str | None = None

    @property
    def uses_supabase_cache(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_role_key)

    @classmethod
    def from_env(
        cls,
        *,
        tmdb_api_key: str | None = None,
        omdb_api_key: str | None = None,
    ) -> "EngineSettings":
        try:
            refresh_hour = env_int("HOME_REFRESH_HOUR_UTC", 2, minimum=0)
            if refresh_hour > 23:
                raise EnvValueError(f"HOME_REFRESH_HOUR_UTC must be <= 23 (got {refresh_hour}).")
            return cls(
                tmdb_api_key=_require("TMDB_API_KEY", tmdb_api_key),
                omdb_api_key=_require("OMDB_API_KEY", omdb_api_key),
                tmdb_language=env_str("TMDB_LANGUAGE", "en-US") or "en-US",
                watch_region=(env_str("WATCH_PROVIDER_REGION", "AT") or "AT").upper(),
                content_ttl=timedelta(hours=env_float("CONTENT_CACHE_TTL_HOURS", 24.0, minimum=0.0)),
                fetch_max_in_flight=env_int("FETCH_MAX_IN_FLIGHT", 5, minimum=1),
                fetch_timeout_seconds=env_float("FETCH_TIMEOUT_SECONDS", 5.0, minimum=0.1),
                home_list_size=env_int("HOME_LIST_SIZE", 20, minimum=1),
                home_refresh_hour_utc=refresh_hour,
                snapshot_path=Path(env_str("HOME_SNAPSHOT_PATH", DEFAULT_SNAPSHOT_PATH) or DEFAULT_SNAPSHOT_PATH),
                supabase_url=env_str("SUPABASE_URL"),
                supabase_service_role_key=env_str("SUPABASE_SERVICE_ROLE_KEY"),
            )
        except EnvValueError as exc:
            raise ConfigurationError(str(exc)) from exc
