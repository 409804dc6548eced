"""Recording and removing watch marks for episodes, seasons and movies."""

from __future__ import annotations

import logging

from ..errors import (
    AlreadyWatchedError,
    ConflictError,
    NothingToMarkError,
    NotFoundError,
    SeasonNotFoundError,
)
from ..models import WatchedMovie, WatchedShow
from ..repositories import MovieRepository, WatchStateRepository
from ..utils import utcnow
from .catalog import CatalogMaterializer

logger = logging.getLogger(__name__)


class WatchService:
    """Applies watch marks against the Watch-State Store.

    Duplicate marks are rejected rather than ignored so a retrying caller can
    tell that an earlier attempt already landed.
    """

    _BATCH_ATTEMPTS = 3

    def __init__(
        self,
        materializer: CatalogMaterializer,
        watch_state: WatchStateRepository,
        movies: MovieRepository,
    ):
        self._materializer = materializer
        self._watch_state = watch_state
        self._movies = movies

    async def mark_episode(
        self,
        user_id: str,
        show_id: int,
        season_number: int,
        episode_number: int,
    ) -> WatchedShow:
        await self._materializer.ensure_show(show_id)

        existing = await self._watch_state.get(user_id, show_id)
        if existing is not None and existing.has_episode(season_number, episode_number):
            raise AlreadyWatchedError(
                f"Episode S{season_number}E{episode_number} of show {show_id} already marked as watched"
            )

        try:
            await self._watch_state.add_episodes(
                user_id, show_id, season_number, [episode_number], utcnow()
            )
        except ConflictError as exc:
            raise AlreadyWatchedError(
                f"Episode S{season_number}E{episode_number} of show {show_id} already marked as watched"
            ) from exc

        logger.info(
            "User %s watched show %s S%sE%s", user_id, show_id, season_number, episode_number
        )
        return await self._require_state(user_id, show_id)

    async def mark_season(
        self, user_id: str, show_id: int, season_number: int
    ) -> WatchedShow:
        """Mark every catalog episode of a season not yet watched, with one timestamp."""

        show = await self._materializer.ensure_show(show_id)
        season = show.season(season_number)
        if season is None:
            raise SeasonNotFoundError(show_id, season_number)
        catalog_numbers = season.episode_numbers()

        for attempt in range(1, self._BATCH_ATTEMPTS + 1):
            state = await self._watch_state.get(user_id, show_id)
            watched_season = state.season(season_number) if state is not None else None
            already = (
                {episode.episode_number for episode in watched_season.episodes}
                if watched_season is not None
                else set()
            )
            missing = [number for number in catalog_numbers if number not in already]
            if not missing:
                raise NothingToMarkError(
                    f"All episodes in season {season_number} of show {show_id} are already watched"
                )
            try:
                await self._watch_state.add_episodes(
                    user_id, show_id, season_number, missing, utcnow()
                )
            except ConflictError:
                # A concurrent mark landed on one of these episodes; recompute.
                logger.info(
                    "Concurrent watch mark on show %s season %s (attempt %d)",
                    show_id,
                    season_number,
                    attempt,
                )
                continue
            logger.info(
                "User %s watched %d episodes of show %s season %s",
                user_id,
                len(missing),
                show_id,
                season_number,
            )
            return await self._require_state(user_id, show_id)

        raise AlreadyWatchedError(
            f"Season {season_number} of show {show_id} kept changing while marking"
        )

    async def unmark_episode(
        self,
        user_id: str,
        show_id: int,
        season_number: int,
        episode_number: int,
    ) -> WatchedShow | None:
        """Remove one watched episode; returns ``None`` once nothing remains for the show."""

        removed = await self._watch_state.remove_episode(
            user_id, show_id, season_number, episode_number
        )
        if not removed:
            raise NotFoundError("Watched episode", show_id, season_number, episode_number)
        logger.info(
            "User %s unwatched show %s S%sE%s", user_id, show_id, season_number, episode_number
        )
        return await self._watch_state.get(user_id, show_id)

    async def unmark_show(self, user_id: str, show_id: int) -> int:
        removed = await self._watch_state.remove_show(user_id, show_id)
        if not removed:
            raise NotFoundError("Watched show", show_id)
        logger.info("User %s cleared %d watched episodes of show %s", user_id, removed, show_id)
        return removed

    async def mark_movie(self, user_id: str, movie_id: int) -> WatchedMovie:
        await self._materializer.ensure_movie(movie_id)
        try:
            return await self._movies.add_watched(user_id, movie_id, utcnow())
        except ConflictError as exc:
            raise AlreadyWatchedError(f"Movie {movie_id} already marked as watched") from exc

    async def unmark_movie(self, user_id: str, movie_id: int) -> None:
        if not await self._movies.remove_watched(user_id, movie_id):
            raise NotFoundError("Watched movie", movie_id)

    async def _require_state(self, user_id: str, show_id: int) -> WatchedShow:
        state = await self._watch_state.get(user_id, show_id)
        if state is None:
            # Cleared by a concurrent unwatch between the write and this read.
            return WatchedShow(user_id=user_id, show_id=show_id)
        return state
