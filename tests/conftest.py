"""Pytest configuration and test helpers."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest


# Ensure the application package is importable when running tests without an
# editable install. This mirrors the expected runtime layout where ``app`` sits
# at the project root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from app.config import Settings  # noqa: E402
from app.errors import SourceUnavailableError  # noqa: E402
from app.models import DiscoverPage, Episode, Movie  # noqa: E402
from app.services.source import SeasonEpisodes, SeasonSummary, ShowMetadata  # noqa: E402


class FakeSource:
    """In-memory catalog source recording every call it serves."""

    def __init__(self) -> None:
        self.shows: dict[int, ShowMetadata] = {}
        self.episodes: dict[tuple[int, int], list[Episode]] = {}
        self.movies: dict[int, Movie] = {}
        self.failing_shows: set[int] = set()
        self.failing_seasons: set[tuple[int, int]] = set()
        self.show_calls: list[int] = []
        self.season_calls: list[tuple[int, int]] = []
        self.movie_calls: list[int] = []

    def add_show(
        self,
        show_id: int,
        name: str,
        seasons: dict[int, int],
        *,
        status: str = "Returning Series",
        runtime: int = 30,
        number_of_episodes: int | None = None,
    ) -> ShowMetadata:
        """Register a show whose seasons map season number to episode count."""

        summaries = []
        for season_number, count in sorted(seasons.items()):
            summaries.append(
                SeasonSummary(
                    season_number=season_number,
                    name=f"Season {season_number}",
                    episode_count=count,
                    air_date="2020-01-01",
                )
            )
            self.episodes[(show_id, season_number)] = [
                Episode(
                    episode_number=number,
                    name=f"{name} S{season_number}E{number}",
                    runtime=runtime,
                )
                for number in range(1, count + 1)
            ]
        metadata = ShowMetadata(
            id=show_id,
            name=name,
            overview=f"About {name}",
            status=status,
            genres=["Drama"],
            number_of_seasons=len(seasons),
            number_of_episodes=(
                number_of_episodes
                if number_of_episodes is not None
                else sum(seasons.values())
            ),
            seasons=summaries,
        )
        self.shows[show_id] = metadata
        return metadata

    def add_movie(self, movie_id: int, title: str, *, runtime: int = 100) -> Movie:
        movie = Movie(id=movie_id, title=title, runtime=runtime, release_date="2020-05-01")
        self.movies[movie_id] = movie
        return movie

    async def fetch_show(self, show_id: int) -> ShowMetadata:
        self.show_calls.append(show_id)
        # Yield so concurrent callers interleave like real network requests.
        await asyncio.sleep(0)
        if show_id in self.failing_shows or show_id not in self.shows:
            raise SourceUnavailableError(f"Show {show_id} unavailable", endpoint=f"/tv/{show_id}")
        return self.shows[show_id]

    async def fetch_season(self, show_id: int, season_number: int) -> SeasonEpisodes:
        self.season_calls.append((show_id, season_number))
        await asyncio.sleep(0)
        key = (show_id, season_number)
        if key in self.failing_seasons or key not in self.episodes:
            raise SourceUnavailableError(
                f"Season {season_number} unavailable",
                endpoint=f"/tv/{show_id}/season/{season_number}",
            )
        return SeasonEpisodes(
            season_number=season_number,
            name=f"Season {season_number}",
            episodes=list(self.episodes[key]),
        )

    async def fetch_movie(self, movie_id: int) -> Movie:
        self.movie_calls.append(movie_id)
        await asyncio.sleep(0)
        if movie_id not in self.movies:
            raise SourceUnavailableError(f"Movie {movie_id} unavailable")
        return self.movies[movie_id]

    async def discover(self, content_type: str, *, page: int = 1) -> DiscoverPage:
        return DiscoverPage(
            page=page,
            total_pages=1,
            total_results=1,
            results=[{"id": 1, "name": "Popular"}],
        )


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def test_settings() -> Settings:
    """Settings without delays so sync runs finish instantly."""

    return Settings(
        _env_file=None,
        TMDB_API_KEY="test-key",
        SYNC_SHOW_DELAY=0,
        SYNC_SEASON_DELAY=0,
        RECENT_ACTIVITY_LIMIT=5,
    )
