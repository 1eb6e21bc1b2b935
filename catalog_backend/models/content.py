from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Mapping

MediaType = str  # "movie" | "tv"


@dataclass(frozen=True)
class ContentKey:
    """Natural key of a cached title."""

    tmdb_id: str
    type: MediaType

    @classmethod
    def of(cls, tmdb_id: str | int, media_type: str) -> "ContentKey":
        return cls(tmdb_id=str(tmdb_id).strip(), type=str(media_type).strip().lower())

    def __str__(self) -> str:
        return f"{self.type}:{self.tmdb_id}"


@dataclass(frozen=True)
class CastMember:
    external_id: int | None
    name: str
    character: str
    profile_path_url: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "externalId": self.external_id,
            "name": self.name,
            "character": self.character,
            "profilePathUrl": self.profile_path_url,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CastMember":
        external_id = data.get("externalId")
        return cls(
            external_id=external_id if isinstance(external_id, int) else None,
            name=str(data.get("name") or ""),
            character=str(data.get("character") or ""),
            profile_path_url=str(data.get("profilePathUrl") or ""),
        )


def _parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def _format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


@dataclass(frozen=True, eq=False)
class Content:
    """
    Canonical representation of one title (maps to `core.content_cache`).

    Notes:
    - `providers is None` means "no provider data", `()` means "none available".
    - `imdb_rating` / `rt_rating` are None when enrichment failed or had no data.
    - Equality ignores the display order of `genres` and `providers`.
    """

    tmdb_id: str
    type: MediaType
    title: str
    release_year: int = 0
    poster: str = ""
    overview: str = ""
    language: str = "en"
    genres: tuple[str, ...] = ()
    providers: tuple[str, ...] | None = None
    imdb_rating: float | None = None
    rt_rating: int | None = None
    cast: tuple[CastMember, ...] = ()
    imdb_id: str | None = None
    last_synced_at: datetime | None = field(default=None)

    @property
    def key(self) -> ContentKey:
        return ContentKey(tmdb_id=self.tmdb_id, type=self.type)

    def _identity(self) -> tuple[Any, ...]:
        return (
            self.tmdb_id,
            self.type,
            self.title,
            self.release_year,
            self.poster,
            self.overview,
            self.language,
            frozenset(self.genres),
            None if self.providers is None else frozenset(self.providers),
            self.imdb_rating,
            self.rt_rating,
            self.cast,
            self.imdb_id,
            self.last_synced_at,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Content):
            return NotImplemented
        return self._identity() == other._identity()

    def __hash__(self) -> int:
        return hash(self._identity())

    def same_data(self, other: "Content") -> bool:
        """Equality ignoring `last_synced_at`."""
        return self._identity()[:-1] == other._identity()[:-1]

    def to_dict(self) -> dict[str, Any]:
        return {
            "tmdbId": self.tmdb_id,
            "type": self.type,
            "title": self.title,
            "releaseYear": self.release_year,
            "poster": self.poster,
            "overview": self.overview,
            "language": self.language,
            "genres": list(self.genres),
            "providers": None if self.providers is None else list(self.providers),
            "imdbRating": self.imdb_rating,
            "rtRating": self.rt_rating,
            "cast": [member.to_dict() for member in self.cast],
            "imdbId": self.imdb_id,
            "lastSyncedAt": _format_timestamp(self.last_synced_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Content":
        """
        Build a Content from its camelCase wire shape.

        Missing keys fall back to defaults; a missing `lastSyncedAt` yields a stale record.
        """

        providers = data.get("providers")
        cast = data.get("cast")
        release_year = _as_int(data.get("releaseYear"))
        return cls(
            tmdb_id=str(data.get("tmdbId") or ""),
            type=str(data.get("type") or "movie"),
            title=str(data.get("title") or ""),
            release_year=release_year if release_year is not None else 0,
            poster=str(data.get("poster") or ""),
            overview=str(data.get("overview") or ""),
            language=str(data.get("language") or "en"),
            genres=tuple(str(g) for g in (data.get("genres") or []) if g),
            providers=None if not isinstance(providers, list) else tuple(str(p) for p in providers if p),
            imdb_rating=_as_float(data.get("imdbRating")),
            rt_rating=_as_int(data.get("rtRating")),
            cast=tuple(CastMember.from_dict(c) for c in cast if isinstance(c, Mapping))
            if isinstance(cast, list)
            else (),
            imdb_id=data.get("imdbId") if isinstance(data.get("imdbId"), str) else None,
            last_synced_at=_parse_timestamp(data.get("lastSyncedAt")),
        )
