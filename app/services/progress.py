"""Progress, statistics and timelines derived from catalog and watch state."""

from __future__ import annotations

import logging
from typing import Iterable

from ..models import (
    ActivityItem,
    EpisodeDetail,
    NextEpisode,
    RecentEpisode,
    RecentMovie,
    SeasonDetail,
    Show,
    ShowDetail,
    ShowProgress,
    UserStats,
    WatchedMovieView,
    WatchedShow,
)
from ..repositories import (
    CatalogRepository,
    MovieRepository,
    UserRepository,
    WatchStateRepository,
)
from .catalog import CatalogMaterializer

logger = logging.getLogger(__name__)


def build_show_progress(show: Show, watched: WatchedShow) -> ShowProgress:
    """Join one show's catalog with a user's watch state.

    Watched episodes count even when the catalog no longer lists them, so a
    shrinking re-sync can push the count past the nominal total. Shows with no
    known episodes are never completed.
    """

    watched_keys = watched.watched_keys()
    watched_count = sum(
        1
        for season in watched.seasons
        for episode in season.episodes
        if episode.watched_at is not None
    )

    next_episode: NextEpisode | None = None
    for season, episode in show.ordered_episodes():
        if (season.season_number, episode.episode_number) not in watched_keys:
            next_episode = NextEpisode(
                season_number=season.season_number,
                episode_number=episode.episode_number,
                episode_name=episode.name,
            )
            break

    total = show.number_of_episodes
    return ShowProgress(
        show_id=show.id,
        show_name=show.name,
        poster_path=show.poster_path,
        status=show.status,
        total_episodes=total,
        watched_episodes=watched_count,
        next_episode=next_episode,
        is_completed=total > 0 and watched_count >= total,
    )


def _progress_sort_key(progress: ShowProgress) -> tuple[object, ...]:
    if progress.is_completed:
        return (1, 0.0, False, progress.show_name.casefold())
    return (0, -progress.progress_ratio, progress.total_episodes <= 0, "")


def sort_progress(items: Iterable[ShowProgress]) -> list[ShowProgress]:
    """In-progress shows by descending completion, then completed shows by name."""

    return sorted(items, key=_progress_sort_key)


def annotate_show(show: Show, watched: WatchedShow | None) -> ShowDetail:
    """Return the catalog entry with a ``watched`` flag on every episode."""

    watched_keys = watched.watched_keys() if watched is not None else set()
    seasons = [
        SeasonDetail(
            **season.model_dump(exclude={"episodes"}),
            episodes=[
                EpisodeDetail(
                    **episode.model_dump(),
                    watched=(season.season_number, episode.episode_number) in watched_keys,
                )
                for episode in season.episodes
            ],
        )
        for season in show.seasons
    ]
    return ShowDetail(**show.model_dump(exclude={"seasons"}), seasons=seasons)


def collect_recent_episodes(
    watched_shows: Iterable[WatchedShow],
    shows: dict[int, Show],
    *,
    include_orphans: bool,
) -> list[RecentEpisode]:
    """Flatten timestamped watch records of catalogued shows, newest first."""

    entries: list[RecentEpisode] = []
    for watched in watched_shows:
        show = shows.get(watched.show_id)
        if show is None:
            continue
        for watched_season in watched.seasons:
            for watched_episode in watched_season.episodes:
                if watched_episode.watched_at is None:
                    continue
                episode = show.episode(
                    watched_season.season_number, watched_episode.episode_number
                )
                if episode is None and not include_orphans:
                    continue
                entries.append(
                    RecentEpisode(
                        show_id=show.id,
                        show_name=show.name,
                        poster_path=show.poster_path,
                        season_number=watched_season.season_number,
                        episode_number=watched_episode.episode_number,
                        episode_name=(
                            episode.name
                            if episode is not None and episode.name
                            else f"Episode {watched_episode.episode_number}"
                        ),
                        watched_at=watched_episode.watched_at,
                    )
                )
    entries.sort(key=lambda entry: entry.watched_at, reverse=True)
    return entries


class ProgressService:
    """Read-only views joining the catalog with users' watch state."""

    def __init__(
        self,
        catalog: CatalogRepository,
        watch_state: WatchStateRepository,
        movies: MovieRepository,
        users: UserRepository,
        materializer: CatalogMaterializer,
        *,
        recent_limit: int = 10,
    ):
        self._catalog = catalog
        self._watch_state = watch_state
        self._movies = movies
        self._users = users
        self._materializer = materializer
        self._recent_limit = recent_limit

    async def compute_progress(self, user_id: str) -> list[ShowProgress]:
        watched_shows = await self._watch_state.list_for_user(user_id)
        shows = await self._catalog.get_many(watched.show_id for watched in watched_shows)

        results: list[ShowProgress] = []
        for watched in watched_shows:
            show = shows.get(watched.show_id)
            if show is None:
                logger.debug(
                    "Skipping show %s for user %s: not in catalog", watched.show_id, user_id
                )
                continue
            results.append(build_show_progress(show, watched))
        return sort_progress(results)

    async def list_watched_episodes(self, user_id: str) -> list[RecentEpisode]:
        watched_shows = await self._watch_state.list_for_user(user_id)
        shows = await self._catalog.get_many(watched.show_id for watched in watched_shows)
        return collect_recent_episodes(watched_shows, shows, include_orphans=True)

    async def list_watched_movies(self, user_id: str) -> list[WatchedMovieView]:
        watched_movies = await self._movies.list_watched(user_id)
        movies = await self._movies.get_many(entry.movie_id for entry in watched_movies)
        views: list[WatchedMovieView] = []
        for entry in watched_movies:
            movie = movies.get(entry.movie_id)
            if movie is None:
                continue
            views.append(
                WatchedMovieView(
                    movie_id=movie.id,
                    title=movie.title,
                    overview=movie.overview,
                    genres=movie.genres,
                    release_date=movie.release_date,
                    poster_path=movie.poster_path,
                    runtime=movie.runtime,
                    watched_at=entry.watched_at,
                )
            )
        return views

    async def compute_stats(self, user_id: str) -> UserStats:
        watched_shows = await self._watch_state.list_for_user(user_id)
        shows = await self._catalog.get_many(watched.show_id for watched in watched_shows)
        watched_movies = await self._movies.list_watched(user_id)
        movies = await self._movies.get_many(entry.movie_id for entry in watched_movies)

        episodes_watched = 0
        show_minutes = 0
        for watched in watched_shows:
            show = shows.get(watched.show_id)
            for watched_season in watched.seasons:
                for watched_episode in watched_season.episodes:
                    if watched_episode.watched_at is None:
                        continue
                    episodes_watched += 1
                    if show is None:
                        continue
                    episode = show.episode(
                        watched_season.season_number, watched_episode.episode_number
                    )
                    if episode is not None:
                        show_minutes += episode.runtime

        movie_minutes = sum(
            movies[entry.movie_id].runtime for entry in watched_movies if entry.movie_id in movies
        )

        limit = self._recent_limit
        recent_episodes = collect_recent_episodes(watched_shows, shows, include_orphans=False)
        recent_movies = []
        for entry in watched_movies:
            movie = movies.get(entry.movie_id)
            recent_movies.append(
                RecentMovie(
                    id=entry.movie_id,
                    title=movie.title if movie is not None else "Unknown Movie",
                    poster_path=movie.poster_path if movie is not None else None,
                    runtime=movie.runtime if movie is not None else 0,
                    watched_at=entry.watched_at,
                )
            )

        activity = [
            ActivityItem(
                kind="episode",
                id=entry.show_id,
                title=entry.show_name,
                season_number=entry.season_number,
                episode_number=entry.episode_number,
                episode_name=entry.episode_name,
                poster_path=entry.poster_path,
                watched_at=entry.watched_at,
            )
            for entry in recent_episodes[:limit]
        ] + [
            ActivityItem(
                kind="movie",
                id=entry.id,
                title=entry.title,
                poster_path=entry.poster_path,
                watched_at=entry.watched_at,
            )
            for entry in recent_movies[:limit]
        ]
        activity.sort(key=lambda item: item.watched_at, reverse=True)

        return UserStats(
            movies_watched=len(watched_movies),
            shows_watched=len(watched_shows),
            episodes_watched=episodes_watched,
            total_movie_minutes=movie_minutes,
            total_show_minutes=show_minutes,
            recent_movies=recent_movies[:limit],
            recent_episodes=recent_episodes[:limit],
            recent_activity=activity[:limit],
        )

    async def show_detail(self, show_id: int, username: str | None = None) -> ShowDetail:
        show = await self._materializer.ensure_show(show_id)
        watched: WatchedShow | None = None
        if username:
            user = await self._users.get_by_username(username)
            if user is not None:
                watched = await self._watch_state.get(user.user_id, show_id)
        return annotate_show(show, watched)
