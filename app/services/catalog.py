"""Lazy materialization of catalog entries from the content source."""

from __future__ import annotations

import asyncio
import logging

from ..errors import ConflictError, NotFoundError
from ..models import Movie, Season, Show
from ..repositories import CatalogRepository, MovieRepository
from .source import CatalogSource, SeasonSummary, ShowMetadata

logger = logging.getLogger(__name__)


async def fetch_show_catalog(
    source: CatalogSource,
    show_id: int,
    *,
    tolerate_season_errors: bool = True,
    season_delay: float = 0.0,
) -> Show:
    """Fetch show metadata plus every regular season from the source.

    With ``tolerate_season_errors`` a season that cannot be fetched is kept
    with no episodes and its declared episode count, and seasons are fetched
    concurrently. Otherwise seasons are fetched one at a time, sleeping
    ``season_delay`` between requests, and the first failure propagates.
    """

    metadata = await source.fetch_show(show_id)

    if tolerate_season_errors:
        seasons = await asyncio.gather(
            *(
                _fetch_season_best_effort(source, metadata.id, summary)
                for summary in metadata.seasons
            )
        )
    else:
        seasons = []
        for index, summary in enumerate(metadata.seasons):
            if index and season_delay:
                await asyncio.sleep(season_delay)
            seasons.append(await _fetch_season(source, metadata.id, summary))

    return _build_show(metadata, list(seasons))


async def _fetch_season(
    source: CatalogSource, show_id: int, summary: SeasonSummary
) -> Season:
    payload = await source.fetch_season(show_id, summary.season_number)
    return Season(
        season_number=summary.season_number,
        name=summary.name or payload.name,
        overview=summary.overview or payload.overview,
        episode_count=len(payload.episodes) or summary.episode_count,
        air_date=summary.air_date or payload.air_date,
        episodes=sorted(payload.episodes, key=lambda episode: episode.episode_number),
    )


async def _fetch_season_best_effort(
    source: CatalogSource, show_id: int, summary: SeasonSummary
) -> Season:
    try:
        return await _fetch_season(source, show_id, summary)
    except Exception as exc:
        logger.warning(
            "Season %s of show %s could not be fetched, storing it without episodes: %s",
            summary.season_number,
            show_id,
            exc,
        )
        return Season(
            season_number=summary.season_number,
            name=summary.name,
            overview=summary.overview,
            episode_count=summary.episode_count,
            air_date=summary.air_date,
            episodes=[],
        )


def _build_show(metadata: ShowMetadata, seasons: list[Season]) -> Show:
    return Show(
        id=metadata.id,
        name=metadata.name,
        overview=metadata.overview,
        status=metadata.status,
        tagline=metadata.tagline,
        poster_path=metadata.poster_path,
        genres=list(metadata.genres),
        number_of_seasons=metadata.number_of_seasons,
        number_of_episodes=metadata.number_of_episodes,
        seasons=sorted(seasons, key=lambda season: season.season_number),
    )


class CatalogMaterializer:
    """Ensures shows and movies exist in the catalog, creating them at most once.

    The unique key of each catalog table arbitrates concurrent first access:
    every caller may fetch from the source, one insert wins, and the others
    re-read the stored row.
    """

    def __init__(
        self,
        catalog: CatalogRepository,
        movies: MovieRepository,
        source: CatalogSource,
    ):
        self._catalog = catalog
        self._movies = movies
        self._source = source

    async def get_show(self, show_id: int) -> Show | None:
        """Return the stored show without touching the source."""

        return await self._catalog.get(show_id)

    async def ensure_show(self, show_id: int) -> Show:
        existing = await self._catalog.get(show_id)
        if existing is not None:
            return existing

        show = await fetch_show_catalog(self._source, show_id)
        if show.id != show_id:
            # The catalog key must match the identifier the caller asked for.
            show = show.model_copy(update={"id": show_id})
        try:
            await self._catalog.insert(show)
        except ConflictError:
            logger.info("Show %s was materialized concurrently, re-reading", show_id)
            stored = await self._catalog.get(show_id)
            if stored is None:
                raise NotFoundError("Show", show_id)
            return stored

        logger.info(
            "Materialized show %s (%s) with %d seasons",
            show_id,
            show.name,
            len(show.seasons),
        )
        return show

    async def ensure_movie(self, movie_id: int) -> Movie:
        existing = await self._movies.get(movie_id)
        if existing is not None:
            return existing

        movie = await self._source.fetch_movie(movie_id)
        if movie.id != movie_id:
            movie = movie.model_copy(update={"id": movie_id})
        try:
            await self._movies.insert(movie)
        except ConflictError:
            logger.info("Movie %s was materialized concurrently, re-reading", movie_id)
            stored = await self._movies.get(movie_id)
            if stored is None:
                raise NotFoundError("Movie", movie_id)
            return stored

        logger.info("Materialized movie %s (%s)", movie_id, movie.title)
        return movie
