"""Interface for the upstream content database."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from ..models import DiscoverPage, Episode, Movie


@dataclass(slots=True)
class SeasonSummary:
    """Season stub listed on a show's metadata."""

    season_number: int
    name: str
    overview: str = ""
    episode_count: int = 0
    air_date: str = ""


@dataclass(slots=True)
class ShowMetadata:
    """Normalized show metadata as returned by the source."""

    id: int
    name: str
    overview: str = ""
    status: str = ""
    tagline: str = ""
    poster_path: str | None = None
    genres: list[str] = field(default_factory=list)
    number_of_seasons: int = 0
    number_of_episodes: int = 0
    seasons: list[SeasonSummary] = field(default_factory=list)


@dataclass(slots=True)
class SeasonEpisodes:
    """Episodes of a single season."""

    season_number: int
    name: str = ""
    overview: str = ""
    air_date: str = ""
    episodes: list[Episode] = field(default_factory=list)


class CatalogSource(Protocol):
    """Capability fetching catalog metadata from an external database.

    Implementations raise ``SourceUnavailableError`` on transport failures or
    non-success responses and ``ConfigurationError`` when credentials are
    missing. Season 0 is already filtered out of ``ShowMetadata.seasons``.
    """

    async def fetch_show(self, show_id: int) -> ShowMetadata: ...

    async def fetch_season(self, show_id: int, season_number: int) -> SeasonEpisodes: ...

    async def fetch_movie(self, movie_id: int) -> Movie: ...

    async def discover(self, content_type: str, *, page: int = 1) -> DiscoverPage: ...
