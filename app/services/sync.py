"""Scheduled re-synchronization of catalog entries with the content source."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from datetime import timedelta

from ..config import Settings
from ..errors import NotFoundError
from ..models import BackfillSummary, Show, SyncResult, SyncSummary
from ..repositories import CatalogRepository, MovieRepository, WatchStateRepository
from ..utils import utcnow
from .catalog import CatalogMaterializer, fetch_show_catalog
from .source import CatalogSource

logger = logging.getLogger(__name__)


def has_structural_changes(stored: Show, fresh: Show) -> bool:
    """Return whether the fresh catalog differs in shape or status from the stored one.

    Besides the show-level counters, a season whose episode list no longer
    matches the fresh fetch counts as changed. This is how a season stored
    without episodes after a failed fetch gets repaired once the source
    serves it again.
    """

    if (
        fresh.number_of_seasons != stored.number_of_seasons
        or fresh.number_of_episodes != stored.number_of_episodes
        or fresh.status != stored.status
        or len(fresh.seasons) != len(stored.seasons)
    ):
        return True

    for season in stored.seasons:
        fresh_season = fresh.season(season.season_number)
        if fresh_season is None:
            return True
        if fresh_season.episode_numbers() != season.episode_numbers():
            return True
    return False


class CatalogSync:
    """Refreshes stored shows from the source without touching watch state.

    A changed show has its catalog entry replaced wholesale. Watch state lives
    in its own table keyed by season and episode numbers, so it survives the
    overwrite untouched.
    """

    def __init__(
        self,
        settings: Settings,
        catalog: CatalogRepository,
        source: CatalogSource,
        *,
        materializer: CatalogMaterializer | None = None,
        watch_state: WatchStateRepository | None = None,
        movies: MovieRepository | None = None,
    ):
        self._settings = settings
        self._catalog = catalog
        self._source = source
        self._materializer = materializer
        self._watch_state = watch_state
        self._movies = movies
        self._task: asyncio.Task[None] | None = None
        self._run_lock = asyncio.Lock()

    async def start(self) -> None:
        """Launch the background loop syncing stale shows."""

        if self._task is None:
            self._task = asyncio.create_task(self._sync_loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def sync_show(self, show_id: int) -> SyncResult:
        """Re-fetch one show and overwrite its catalog entry when its structure changed."""

        stored = await self._catalog.get(show_id)
        if stored is None:
            raise NotFoundError("Show", show_id)
        return await self._refresh(stored)

    async def _refresh(self, stored: Show) -> SyncResult:
        show_id = stored.id
        fresh = await fetch_show_catalog(
            self._source,
            show_id,
            tolerate_season_errors=False,
            season_delay=self._settings.sync_season_delay_seconds,
        )
        if fresh.id != show_id:
            fresh = fresh.model_copy(update={"id": show_id})

        now = utcnow()
        if has_structural_changes(stored, fresh):
            await self._catalog.replace(fresh, synced_at=now)
            status = "updated"
            logger.info(
                "Synced show %s (%s): %d -> %d seasons, %d -> %d episodes",
                show_id,
                fresh.name,
                stored.number_of_seasons,
                fresh.number_of_seasons,
                stored.number_of_episodes,
                fresh.number_of_episodes,
            )
        else:
            await self._catalog.mark_synced(show_id, now)
            status = "unchanged"
            logger.debug("Show %s unchanged", show_id)

        return SyncResult(
            show_id=show_id,
            show_name=stored.name,
            status=status,
            previous_seasons=stored.number_of_seasons,
            current_seasons=fresh.number_of_seasons,
            previous_episodes=stored.number_of_episodes,
            current_episodes=fresh.number_of_episodes,
        )

    async def sync_all(self, *, stale_only: bool = False) -> SyncSummary:
        """Sync every stored show, recording failures per show instead of aborting."""

        synced_before = None
        if stale_only:
            synced_before = utcnow() - timedelta(seconds=self._settings.sync_stale_seconds)

        async with self._run_lock:
            show_ids = await self._catalog.list_ids(synced_before=synced_before)
            summary = SyncSummary()
            for index, show_id in enumerate(show_ids):
                if index and self._settings.sync_show_delay_seconds:
                    await asyncio.sleep(self._settings.sync_show_delay_seconds)
                summary.record(await self._sync_show_safely(show_id))

        logger.info(
            "Catalog sync finished: %d shows, %d updated, %d unchanged, %d errors",
            summary.total,
            summary.updated,
            summary.unchanged,
            summary.errors,
        )
        return summary

    async def backfill(self) -> BackfillSummary:
        """Materialize catalog rows for watched shows and movies missing from the catalog."""

        if self._materializer is None or self._watch_state is None or self._movies is None:
            raise RuntimeError("Backfill requires the materializer and watch-state stores")

        summary = BackfillSummary()
        delay = self._settings.sync_show_delay_seconds

        missing_shows = await self._catalog.missing_ids(
            await self._watch_state.distinct_show_ids()
        )
        for index, show_id in enumerate(missing_shows):
            if index and delay:
                await asyncio.sleep(delay)
            try:
                await self._materializer.ensure_show(show_id)
            except Exception as exc:
                logger.warning("Backfill of show %s failed: %s", show_id, exc)
                summary.failed += 1
                summary.errors.append(f"Show {show_id}: {exc}")
                continue
            summary.shows_created += 1

        watched_movie_ids = await self._movies.distinct_watched_ids()
        stored_movies = await self._movies.get_many(watched_movie_ids)
        missing_movies = [movie_id for movie_id in watched_movie_ids if movie_id not in stored_movies]
        for index, movie_id in enumerate(missing_movies):
            if (index or missing_shows) and delay:
                await asyncio.sleep(delay)
            try:
                await self._materializer.ensure_movie(movie_id)
            except Exception as exc:
                logger.warning("Backfill of movie %s failed: %s", movie_id, exc)
                summary.failed += 1
                summary.errors.append(f"Movie {movie_id}: {exc}")
                continue
            summary.movies_created += 1

        logger.info(
            "Catalog backfill finished: %d shows, %d movies, %d failed",
            summary.shows_created,
            summary.movies_created,
            summary.failed,
        )
        return summary

    async def _sync_show_safely(self, show_id: int) -> SyncResult:
        stored: Show | None = None
        try:
            stored = await self._catalog.get(show_id)
            if stored is None:
                raise NotFoundError("Show", show_id)
            return await self._refresh(stored)
        except Exception as exc:
            logger.warning("Sync of show %s failed: %s", show_id, exc)
            seasons = stored.number_of_seasons if stored is not None else 0
            episodes = stored.number_of_episodes if stored is not None else 0
            return SyncResult(
                show_id=show_id,
                show_name=stored.name if stored is not None else "",
                status="error",
                previous_seasons=seasons,
                current_seasons=seasons,
                previous_episodes=episodes,
                current_episodes=episodes,
                error=str(exc) or exc.__class__.__name__,
            )

    async def _sync_loop(self) -> None:
        while True:
            await asyncio.sleep(self._settings.sync_interval_seconds)
            try:
                await self.sync_all(stale_only=True)
            except Exception as exc:  # pragma: no cover - background safety net
                logger.exception("Scheduled catalog sync failed: %s", exc)
