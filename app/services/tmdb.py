"""Catalog source backed by The Movie Database (TMDB)."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..config import Settings
from ..errors import ConfigurationError, SourceUnavailableError
from ..models import DiscoverPage, Episode, Movie
from ..utils import coerce_int, genre_names, regular_seasons
from .source import SeasonEpisodes, SeasonSummary, ShowMetadata

logger = logging.getLogger(__name__)

DISCOVER_ENDPOINTS = {"movies": "/movie/popular", "shows": "/tv/popular"}


class TMDBClient:
    """Client fetching show, season and movie metadata from TMDB."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client

    async def fetch_show(self, show_id: int) -> ShowMetadata:
        """Return show metadata with specials removed from the season list."""

        data = await self._get(f"/tv/{show_id}")
        seasons = [
            SeasonSummary(
                season_number=int(season["season_number"]),
                name=season.get("name") or f"Season {season['season_number']}",
                overview=season.get("overview") or "",
                episode_count=coerce_int(season.get("episode_count"), default=0) or 0,
                air_date=season.get("air_date") or "",
            )
            for season in regular_seasons(data.get("seasons") or [])
        ]
        return ShowMetadata(
            id=coerce_int(data.get("id"), default=show_id) or show_id,
            name=data.get("name") or "",
            overview=data.get("overview") or "",
            status=data.get("status") or "",
            tagline=data.get("tagline") or "",
            poster_path=data.get("poster_path"),
            genres=genre_names(data.get("genres")),
            number_of_seasons=coerce_int(data.get("number_of_seasons"), default=0) or 0,
            number_of_episodes=coerce_int(data.get("number_of_episodes"), default=0) or 0,
            seasons=seasons,
        )

    async def fetch_season(self, show_id: int, season_number: int) -> SeasonEpisodes:
        """Return the episodes of one season."""

        data = await self._get(f"/tv/{show_id}/season/{season_number}")
        episodes: list[Episode] = []
        for entry in data.get("episodes") or []:
            if not isinstance(entry, dict):
                continue
            number = coerce_int(entry.get("episode_number"))
            if number is None:
                continue
            episodes.append(
                Episode(
                    episode_number=number,
                    name=entry.get("name") or "",
                    overview=entry.get("overview") or "",
                    runtime=coerce_int(entry.get("runtime"), default=0) or 0,
                )
            )
        return SeasonEpisodes(
            season_number=coerce_int(data.get("season_number"), default=season_number)
            or season_number,
            name=data.get("name") or "",
            overview=data.get("overview") or "",
            air_date=data.get("air_date") or "",
            episodes=episodes,
        )

    async def fetch_movie(self, movie_id: int) -> Movie:
        data = await self._get(f"/movie/{movie_id}")
        return Movie(
            id=coerce_int(data.get("id"), default=movie_id) or movie_id,
            title=data.get("title") or "",
            overview=data.get("overview") or "",
            genres=genre_names(data.get("genres")),
            release_date=data.get("release_date") or "",
            poster_path=data.get("poster_path"),
            runtime=coerce_int(data.get("runtime"), default=0) or 0,
            status=data.get("status") or "",
            tagline=data.get("tagline") or "",
        )

    async def discover(self, content_type: str, *, page: int = 1) -> DiscoverPage:
        """Return a page of popular movies or shows without persisting anything."""

        endpoint = DISCOVER_ENDPOINTS.get(content_type)
        if endpoint is None:
            raise ValueError(f"Unsupported discover type: {content_type}")
        data = await self._get(endpoint, params={"page": page})
        results: list[dict[str, Any]] = []
        for entry in data.get("results") or []:
            if not isinstance(entry, dict):
                continue
            item = {
                "id": entry.get("id"),
                "overview": entry.get("overview"),
                "poster_path": entry.get("poster_path"),
                "vote_average": entry.get("vote_average"),
                "popularity": entry.get("popularity"),
            }
            if content_type == "movies":
                item["title"] = entry.get("title")
                item["release_date"] = entry.get("release_date")
            else:
                item["name"] = entry.get("name")
                item["first_air_date"] = entry.get("first_air_date")
            results.append(item)
        return DiscoverPage(
            page=coerce_int(data.get("page"), default=page) or page,
            total_pages=coerce_int(data.get("total_pages"), default=0) or 0,
            total_results=coerce_int(data.get("total_results"), default=0) or 0,
            results=results,
        )

    async def _get(
        self, endpoint: str, *, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        api_key = self._settings.tmdb_api_key
        if not api_key:
            raise ConfigurationError("TMDB API key not configured")

        query: dict[str, Any] = {"api_key": api_key}
        if params:
            query.update(params)

        try:
            response = await self._client.get(endpoint, params=query)
        except httpx.HTTPError as exc:
            logger.warning("TMDB request %s failed: %s", endpoint, exc)
            raise SourceUnavailableError(
                f"TMDB request failed: {exc.__class__.__name__}", endpoint=endpoint
            ) from exc

        if response.status_code >= 400:
            logger.warning(
                "TMDB request %s returned %s: %s",
                endpoint,
                response.status_code,
                response.text,
            )
            raise SourceUnavailableError(
                f"TMDB responded with status {response.status_code}",
                endpoint=endpoint,
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise SourceUnavailableError(
                "Unexpected non-JSON TMDB response", endpoint=endpoint
            ) from exc
        if not isinstance(data, dict):
            raise SourceUnavailableError(
                "Unexpected TMDB response structure", endpoint=endpoint
            )
        return data
