"""SQLAlchemy ORM models backing the persistent state."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base
from .utils import utcnow


class User(Base):
    """Opaque user identity resolved from a username."""

    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    username: Mapped[str] = mapped_column(String(120), unique=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class ShowRecord(Base):
    """Catalog entry for one show, keyed by the upstream show id.

    Seasons and their episodes are stored as a single JSON document so a sync
    can replace the whole structure in one write.
    """

    __tablename__ = "shows"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(255))
    overview: Mapped[str] = mapped_column(Text, default="")
    status: Mapped[str] = mapped_column(String(64), default="")
    tagline: Mapped[str] = mapped_column(Text, default="")
    poster_path: Mapped[str | None] = mapped_column(String(255), nullable=True)
    genres: Mapped[list[str]] = mapped_column(JSON, default=list)
    number_of_seasons: Mapped[int] = mapped_column(Integer, default=0)
    number_of_episodes: Mapped[int] = mapped_column(Integer, default=0)
    seasons: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )
    synced_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class WatchedEpisodeRecord(Base):
    """A single watched episode for a user.

    The watch state of a show is the set of rows sharing ``(user_id, show_id)``.
    """

    __tablename__ = "watched_episodes"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "show_id",
            "season_number",
            "episode_number",
            name="uq_watched_episode",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    show_id: Mapped[int] = mapped_column(Integer, index=True)
    season_number: Mapped[int] = mapped_column(Integer)
    episode_number: Mapped[int] = mapped_column(Integer)
    watched_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class MovieRecord(Base):
    """Catalog entry for one movie."""

    __tablename__ = "movies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    title: Mapped[str] = mapped_column(String(255))
    overview: Mapped[str] = mapped_column(Text, default="")
    genres: Mapped[list[str]] = mapped_column(JSON, default=list)
    release_date: Mapped[str] = mapped_column(String(16), default="")
    poster_path: Mapped[str | None] = mapped_column(String(255), nullable=True)
    runtime: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(64), default="")
    tagline: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class WatchedMovieRecord(Base):
    """A watched movie for a user."""

    __tablename__ = "watched_movies"
    __table_args__ = (
        UniqueConstraint("user_id", "movie_id", name="uq_watched_movie"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    movie_id: Mapped[int] = mapped_column(Integer, index=True)
    watched_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
