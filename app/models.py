"""Pydantic models describing catalog, watch-state and derived views."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Literal

from pydantic import BaseModel, ConfigDict, Field

SyncStatus = Literal["updated", "unchanged", "error"]
ActivityKind = Literal["episode", "movie"]


class Episode(BaseModel):
    """A catalog episode."""

    model_config = ConfigDict(from_attributes=True)

    episode_number: int
    name: str = ""
    overview: str = ""
    runtime: int = 0


class Season(BaseModel):
    """A catalog season with its ordered episodes."""

    model_config = ConfigDict(from_attributes=True)

    season_number: int
    name: str = ""
    overview: str = ""
    episode_count: int = 0
    air_date: str = ""
    episodes: list[Episode] = Field(default_factory=list)

    def episode(self, episode_number: int) -> Episode | None:
        for episode in self.episodes:
            if episode.episode_number == episode_number:
                return episode
        return None

    def episode_numbers(self) -> list[int]:
        return [episode.episode_number for episode in self.episodes]


class Show(BaseModel):
    """Catalog entry for a show as known at the last fetch or sync."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    overview: str = ""
    status: str = ""
    tagline: str = ""
    poster_path: str | None = None
    genres: list[str] = Field(default_factory=list)
    number_of_seasons: int = 0
    number_of_episodes: int = 0
    seasons: list[Season] = Field(default_factory=list)

    def season(self, season_number: int) -> Season | None:
        for season in self.seasons:
            if season.season_number == season_number:
                return season
        return None

    def episode(self, season_number: int, episode_number: int) -> Episode | None:
        season = self.season(season_number)
        if season is None:
            return None
        return season.episode(episode_number)

    def ordered_episodes(self) -> Iterable[tuple[Season, Episode]]:
        """Yield catalog episodes in season/episode order."""

        for season in sorted(self.seasons, key=lambda item: item.season_number):
            for episode in sorted(season.episodes, key=lambda item: item.episode_number):
                yield season, episode

    def seasons_document(self) -> list[dict[str, Any]]:
        """Return the JSON document stored for the season structure."""

        return [season.model_dump(mode="json") for season in self.seasons]


class WatchedEpisode(BaseModel):
    """A watched episode. A missing timestamp counts as not watched."""

    episode_number: int
    watched_at: datetime | None = None


class WatchedSeason(BaseModel):
    season_number: int
    episodes: list[WatchedEpisode] = Field(default_factory=list)

    def episode(self, episode_number: int) -> WatchedEpisode | None:
        for episode in self.episodes:
            if episode.episode_number == episode_number:
                return episode
        return None


class WatchedShow(BaseModel):
    """One user's watch history for one show."""

    user_id: str
    show_id: int
    seasons: list[WatchedSeason] = Field(default_factory=list)

    @classmethod
    def from_rows(cls, user_id: str, show_id: int, rows: Iterable[Any]) -> "WatchedShow":
        """Group flat watched-episode rows into seasons, preserving row order."""

        seasons: dict[int, WatchedSeason] = {}
        for row in rows:
            season = seasons.get(row.season_number)
            if season is None:
                season = WatchedSeason(season_number=row.season_number)
                seasons[row.season_number] = season
            season.episodes.append(
                WatchedEpisode(episode_number=row.episode_number, watched_at=row.watched_at)
            )
        ordered = [seasons[number] for number in sorted(seasons)]
        return cls(user_id=user_id, show_id=show_id, seasons=ordered)

    def season(self, season_number: int) -> WatchedSeason | None:
        for season in self.seasons:
            if season.season_number == season_number:
                return season
        return None

    def has_episode(self, season_number: int, episode_number: int) -> bool:
        season = self.season(season_number)
        return season is not None and season.episode(episode_number) is not None

    def watched_keys(self) -> set[tuple[int, int]]:
        """Return ``(season, episode)`` pairs carrying a watch timestamp."""

        return {
            (season.season_number, episode.episode_number)
            for season in self.seasons
            for episode in season.episodes
            if episode.watched_at is not None
        }

    def is_empty(self) -> bool:
        return not any(season.episodes for season in self.seasons)


class NextEpisode(BaseModel):
    season_number: int
    episode_number: int
    episode_name: str = ""


class ShowProgress(BaseModel):
    """Derived viewing progress for one show."""

    show_id: int
    show_name: str
    poster_path: str | None = None
    status: str = ""
    total_episodes: int
    watched_episodes: int
    next_episode: NextEpisode | None = None
    is_completed: bool

    @property
    def progress_ratio(self) -> float:
        if self.total_episodes <= 0:
            return 0.0
        return self.watched_episodes / self.total_episodes


class EpisodeDetail(Episode):
    watched: bool = False


class SeasonDetail(Season):
    episodes: list[EpisodeDetail] = Field(default_factory=list)  # type: ignore[assignment]


class ShowDetail(Show):
    """Catalog entry annotated with a user's watched flags."""

    seasons: list[SeasonDetail] = Field(default_factory=list)  # type: ignore[assignment]


class Movie(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    overview: str = ""
    genres: list[str] = Field(default_factory=list)
    release_date: str = ""
    poster_path: str | None = None
    runtime: int = 0
    status: str = ""
    tagline: str = ""


class WatchedMovie(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    movie_id: int
    watched_at: datetime


class WatchedMovieView(BaseModel):
    movie_id: int
    title: str
    overview: str = ""
    genres: list[str] = Field(default_factory=list)
    release_date: str = ""
    poster_path: str | None = None
    runtime: int = 0
    watched_at: datetime


class RecentEpisode(BaseModel):
    show_id: int
    show_name: str
    poster_path: str | None = None
    season_number: int
    episode_number: int
    episode_name: str
    watched_at: datetime


class RecentMovie(BaseModel):
    id: int
    title: str
    poster_path: str | None = None
    runtime: int = 0
    watched_at: datetime


class ActivityItem(BaseModel):
    """A merged entry of the recent activity feed."""

    kind: ActivityKind
    id: int
    title: str
    season_number: int | None = None
    episode_number: int | None = None
    episode_name: str | None = None
    poster_path: str | None = None
    watched_at: datetime


class UserStats(BaseModel):
    movies_watched: int = 0
    shows_watched: int = 0
    episodes_watched: int = 0
    total_movie_minutes: int = 0
    total_show_minutes: int = 0
    recent_movies: list[RecentMovie] = Field(default_factory=list)
    recent_episodes: list[RecentEpisode] = Field(default_factory=list)
    recent_activity: list[ActivityItem] = Field(default_factory=list)


class SyncResult(BaseModel):
    show_id: int
    show_name: str
    status: SyncStatus
    previous_seasons: int
    current_seasons: int
    previous_episodes: int
    current_episodes: int
    error: str | None = None


class SyncSummary(BaseModel):
    total: int = 0
    updated: int = 0
    unchanged: int = 0
    errors: int = 0
    results: list[SyncResult] = Field(default_factory=list)

    def record(self, result: SyncResult) -> None:
        self.results.append(result)
        self.total += 1
        if result.status == "updated":
            self.updated += 1
        elif result.status == "unchanged":
            self.unchanged += 1
        else:
            self.errors += 1


class BackfillSummary(BaseModel):
    shows_created: int = 0
    movies_created: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)


class DiscoverPage(BaseModel):
    """A page of popular titles passed straight through from the source."""

    page: int = 1
    total_pages: int = 0
    total_results: int = 0
    results: list[dict[str, Any]] = Field(default_factory=list)
