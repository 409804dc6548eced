"""Tests for the TMDB catalog source."""

from __future__ import annotations

from typing import Any

import httpx
import pytest

from app.config import Settings
from app.errors import ConfigurationError, SourceUnavailableError
from app.services.tmdb import TMDBClient


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


def build_settings(**overrides: Any) -> Settings:
    """Return a settings object with defaults suitable for tests."""

    base: dict[str, Any] = {"TMDB_API_KEY": "tmdb-key"}
    base.update(overrides)
    return Settings(_env_file=None, **base)  # type: ignore[arg-type]


SHOW_PAYLOAD = {
    "id": 1399,
    "name": "Thrones",
    "overview": "Noble families",
    "status": "Ended",
    "tagline": "Winter is coming",
    "poster_path": "/poster.jpg",
    "genres": [{"id": 18, "name": "Drama"}, {"id": 10765, "name": "Sci-Fi & Fantasy"}],
    "number_of_seasons": 2,
    "number_of_episodes": 20,
    "seasons": [
        {"season_number": 0, "name": "Specials", "episode_count": 12},
        {"season_number": 1, "name": "Season 1", "episode_count": 10, "air_date": "2011-04-17"},
        {"season_number": 2, "name": "Season 2", "episode_count": 10, "air_date": None},
    ],
}


@pytest.mark.anyio("asyncio")
async def test_fetch_show_drops_specials_and_maps_genres() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=SHOW_PAYLOAD)

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://tmdb.example.com/3") as http_client:
        client = TMDBClient(build_settings(), http_client)
        show = await client.fetch_show(1399)

    assert requests[0].url.path == "/3/tv/1399"
    assert requests[0].url.params["api_key"] == "tmdb-key"
    assert show.genres == ["Drama", "Sci-Fi & Fantasy"]
    assert [season.season_number for season in show.seasons] == [1, 2]
    assert show.seasons[1].air_date == ""
    assert show.number_of_episodes == 20
    assert show.tagline == "Winter is coming"


@pytest.mark.anyio("asyncio")
async def test_fetch_season_defaults_missing_runtime() -> None:
    payload = {
        "season_number": 1,
        "name": "Season 1",
        "episodes": [
            {"episode_number": 1, "name": "Pilot", "runtime": 62},
            {"episode_number": 2, "name": "Second", "runtime": None},
            {"name": "Broken entry without a number"},
        ],
    }

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/tv/7/season/1")
        return httpx.Response(200, json=payload)

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://tmdb.example.com/3") as http_client:
        client = TMDBClient(build_settings(), http_client)
        season = await client.fetch_season(7, 1)

    assert [episode.episode_number for episode in season.episodes] == [1, 2]
    assert [episode.runtime for episode in season.episodes] == [62, 0]


@pytest.mark.anyio("asyncio")
async def test_error_status_raises_source_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"status_message": "The resource could not be found."})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://tmdb.example.com/3") as http_client:
        client = TMDBClient(build_settings(), http_client)
        with pytest.raises(SourceUnavailableError) as excinfo:
            await client.fetch_movie(5)

    assert excinfo.value.status_code == 404
    assert excinfo.value.endpoint == "/movie/5"


@pytest.mark.anyio("asyncio")
async def test_transport_failure_raises_source_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://tmdb.example.com/3") as http_client:
        client = TMDBClient(build_settings(), http_client)
        with pytest.raises(SourceUnavailableError):
            await client.fetch_show(1)


@pytest.mark.anyio("asyncio")
async def test_missing_api_key_never_hits_the_network() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://tmdb.example.com/3") as http_client:
        client = TMDBClient(build_settings(TMDB_API_KEY="  "), http_client)
        with pytest.raises(ConfigurationError):
            await client.fetch_show(1)

    assert requests == []


@pytest.mark.anyio("asyncio")
async def test_discover_passes_page_through() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/3/tv/popular"
        assert request.url.params["page"] == "3"
        return httpx.Response(
            200,
            json={
                "page": 3,
                "total_pages": 40,
                "total_results": 800,
                "results": [
                    {"id": 1, "name": "Popular Show", "first_air_date": "2020-01-01", "vote_average": 8.1}
                ],
            },
        )

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://tmdb.example.com/3") as http_client:
        client = TMDBClient(build_settings(), http_client)
        page = await client.discover("shows", page=3)

        with pytest.raises(ValueError):
            await client.discover("podcasts")

    assert page.page == 3
    assert page.total_pages == 40
    assert page.results[0]["name"] == "Popular Show"
