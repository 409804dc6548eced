"""Per-entity store interfaces sharing one session factory."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Iterable, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .db_models import (
    MovieRecord,
    ShowRecord,
    User,
    WatchedEpisodeRecord,
    WatchedMovieRecord,
)
from .errors import ConflictError, NotFoundError
from .models import Movie, Show, WatchedMovie, WatchedShow

logger = logging.getLogger(__name__)


class UserRepository:
    """Resolves usernames to opaque user identifiers."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_by_username(self, username: str) -> User | None:
        async with self._session_factory() as session:
            result = await session.execute(select(User).where(User.username == username))
            return result.scalar_one_or_none()

    async def create(self, username: str) -> User:
        """Create a user, returning the existing one when the name is taken."""

        user = User(user_id=uuid.uuid4().hex, username=username)
        async with self._session_factory() as session:
            session.add(user)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                existing = await self.get_by_username(username)
                if existing is None:
                    raise
                return existing
        return user

    async def resolve(self, username: str) -> str:
        user = await self.get_by_username(username)
        if user is None:
            raise NotFoundError("User", username)
        return user.user_id


class CatalogRepository:
    """Catalog Store for shows, unique by show id."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, show_id: int) -> Show | None:
        async with self._session_factory() as session:
            record = await session.get(ShowRecord, show_id)
            if record is None:
                return None
            return Show.model_validate(record)

    async def get_many(self, show_ids: Iterable[int]) -> dict[int, Show]:
        ids = list(set(show_ids))
        if not ids:
            return {}
        async with self._session_factory() as session:
            result = await session.execute(select(ShowRecord).where(ShowRecord.id.in_(ids)))
            return {record.id: Show.model_validate(record) for record in result.scalars()}

    async def insert(self, show: Show) -> None:
        """Insert a new catalog entry; ``ConflictError`` if the id is already stored."""

        record = ShowRecord(
            id=show.id,
            name=show.name,
            overview=show.overview,
            status=show.status,
            tagline=show.tagline,
            poster_path=show.poster_path,
            genres=list(show.genres),
            number_of_seasons=show.number_of_seasons,
            number_of_episodes=show.number_of_episodes,
            seasons=show.seasons_document(),
        )
        async with self._session_factory() as session:
            session.add(record)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConflictError(f"Show {show.id} already stored") from exc

    async def replace(self, show: Show, *, synced_at: datetime) -> None:
        """Overwrite the stored metadata and season structure of a show."""

        async with self._session_factory() as session:
            result = await session.execute(
                update(ShowRecord)
                .where(ShowRecord.id == show.id)
                .values(
                    name=show.name,
                    overview=show.overview,
                    status=show.status,
                    tagline=show.tagline,
                    poster_path=show.poster_path,
                    genres=list(show.genres),
                    number_of_seasons=show.number_of_seasons,
                    number_of_episodes=show.number_of_episodes,
                    seasons=show.seasons_document(),
                    synced_at=synced_at,
                    updated_at=synced_at,
                )
            )
            await session.commit()
            if result.rowcount == 0:
                raise NotFoundError("Show", show.id)

    async def mark_synced(self, show_id: int, synced_at: datetime) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(ShowRecord)
                .where(ShowRecord.id == show_id)
                .values(synced_at=synced_at)
            )
            await session.commit()

    async def list_ids(self, *, synced_before: datetime | None = None) -> list[int]:
        """Return stored show ids, optionally only those not synced since a cutoff."""

        stmt = select(ShowRecord.id).order_by(ShowRecord.id)
        if synced_before is not None:
            stmt = stmt.where(
                (ShowRecord.synced_at.is_(None)) | (ShowRecord.synced_at < synced_before)
            )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [row[0] for row in result.all()]

    async def missing_ids(self, show_ids: Iterable[int]) -> list[int]:
        ids = sorted(set(show_ids))
        if not ids:
            return []
        async with self._session_factory() as session:
            result = await session.execute(select(ShowRecord.id).where(ShowRecord.id.in_(ids)))
            present = {row[0] for row in result.all()}
        return [show_id for show_id in ids if show_id not in present]


class WatchStateRepository:
    """Watch-State Store with one row per watched episode."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, user_id: str, show_id: int) -> WatchedShow | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(WatchedEpisodeRecord)
                .where(
                    WatchedEpisodeRecord.user_id == user_id,
                    WatchedEpisodeRecord.show_id == show_id,
                )
                .order_by(WatchedEpisodeRecord.id)
            )
            rows = list(result.scalars())
        if not rows:
            return None
        return WatchedShow.from_rows(user_id, show_id, rows)

    async def list_for_user(self, user_id: str) -> list[WatchedShow]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(WatchedEpisodeRecord)
                .where(WatchedEpisodeRecord.user_id == user_id)
                .order_by(WatchedEpisodeRecord.show_id, WatchedEpisodeRecord.id)
            )
            rows = list(result.scalars())

        grouped: dict[int, list[WatchedEpisodeRecord]] = {}
        for row in rows:
            grouped.setdefault(row.show_id, []).append(row)
        return [
            WatchedShow.from_rows(user_id, show_id, show_rows)
            for show_id, show_rows in grouped.items()
        ]

    async def add_episodes(
        self,
        user_id: str,
        show_id: int,
        season_number: int,
        episode_numbers: Sequence[int],
        watched_at: datetime,
    ) -> None:
        """Insert watched episodes in one transaction.

        Raises ``ConflictError`` when any of the episodes is already stored; no
        row of the batch is written in that case.
        """

        async with self._session_factory() as session:
            session.add_all(
                [
                    WatchedEpisodeRecord(
                        user_id=user_id,
                        show_id=show_id,
                        season_number=season_number,
                        episode_number=episode_number,
                        watched_at=watched_at,
                    )
                    for episode_number in episode_numbers
                ]
            )
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                logger.debug(
                    "Rejected batch of %d watched episodes for show %s season %s",
                    len(episode_numbers),
                    show_id,
                    season_number,
                )
                raise ConflictError(
                    f"Episode already watched for user {user_id}, show {show_id}"
                ) from exc

    async def remove_episode(
        self, user_id: str, show_id: int, season_number: int, episode_number: int
    ) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(WatchedEpisodeRecord).where(
                    WatchedEpisodeRecord.user_id == user_id,
                    WatchedEpisodeRecord.show_id == show_id,
                    WatchedEpisodeRecord.season_number == season_number,
                    WatchedEpisodeRecord.episode_number == episode_number,
                )
            )
            await session.commit()
            return result.rowcount > 0

    async def remove_show(self, user_id: str, show_id: int) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(WatchedEpisodeRecord).where(
                    WatchedEpisodeRecord.user_id == user_id,
                    WatchedEpisodeRecord.show_id == show_id,
                )
            )
            await session.commit()
            return result.rowcount

    async def distinct_show_ids(self) -> list[int]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(WatchedEpisodeRecord.show_id).distinct().order_by(WatchedEpisodeRecord.show_id)
            )
            return [row[0] for row in result.all()]


class MovieRepository:
    """Catalog and watch records for movies."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, movie_id: int) -> Movie | None:
        async with self._session_factory() as session:
            record = await session.get(MovieRecord, movie_id)
            if record is None:
                return None
            return Movie.model_validate(record)

    async def get_many(self, movie_ids: Iterable[int]) -> dict[int, Movie]:
        ids = list(set(movie_ids))
        if not ids:
            return {}
        async with self._session_factory() as session:
            result = await session.execute(select(MovieRecord).where(MovieRecord.id.in_(ids)))
            return {record.id: Movie.model_validate(record) for record in result.scalars()}

    async def insert(self, movie: Movie) -> None:
        record = MovieRecord(
            id=movie.id,
            title=movie.title,
            overview=movie.overview,
            genres=list(movie.genres),
            release_date=movie.release_date,
            poster_path=movie.poster_path,
            runtime=movie.runtime,
            status=movie.status,
            tagline=movie.tagline,
        )
        async with self._session_factory() as session:
            session.add(record)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConflictError(f"Movie {movie.id} already stored") from exc

    async def add_watched(self, user_id: str, movie_id: int, watched_at: datetime) -> WatchedMovie:
        record = WatchedMovieRecord(user_id=user_id, movie_id=movie_id, watched_at=watched_at)
        async with self._session_factory() as session:
            session.add(record)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConflictError(
                    f"Movie {movie_id} already watched by user {user_id}"
                ) from exc
        return WatchedMovie.model_validate(record)

    async def remove_watched(self, user_id: str, movie_id: int) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(WatchedMovieRecord).where(
                    WatchedMovieRecord.user_id == user_id,
                    WatchedMovieRecord.movie_id == movie_id,
                )
            )
            await session.commit()
            return result.rowcount > 0

    async def list_watched(self, user_id: str) -> list[WatchedMovie]:
        """Return the user's watched movies, most recent first."""

        async with self._session_factory() as session:
            result = await session.execute(
                select(WatchedMovieRecord)
                .where(WatchedMovieRecord.user_id == user_id)
                .order_by(WatchedMovieRecord.watched_at.desc(), WatchedMovieRecord.id.desc())
            )
            return [WatchedMovie.model_validate(record) for record in result.scalars()]

    async def distinct_watched_ids(self) -> list[int]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(WatchedMovieRecord.movie_id).distinct().order_by(WatchedMovieRecord.movie_id)
            )
            return [row[0] for row in result.all()]
