"""Entry point for the FastAPI-powered watch progress service."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import Any

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .config import Settings, settings
from .database import Database
from .errors import (
    AlreadyWatchedError,
    ConfigurationError,
    EpisodicError,
    InvalidRequestError,
    NothingToMarkError,
    NotFoundError,
    SourceUnavailableError,
)
from .repositories import (
    CatalogRepository,
    MovieRepository,
    UserRepository,
    WatchStateRepository,
)
from .services.catalog import CatalogMaterializer
from .services.progress import ProgressService
from .services.source import CatalogSource
from .services.sync import CatalogSync
from .services.tmdb import TMDBClient
from .services.watch import WatchService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI


@dataclass
class Services:
    """Components wired once per process and shared by all requests."""

    users: UserRepository
    materializer: CatalogMaterializer
    watch: WatchService
    progress: ProgressService
    sync: CatalogSync
    source: CatalogSource


def build_services(
    app_settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    source: CatalogSource,
) -> Services:
    users = UserRepository(session_factory)
    catalog = CatalogRepository(session_factory)
    watch_state = WatchStateRepository(session_factory)
    movies = MovieRepository(session_factory)
    materializer = CatalogMaterializer(catalog, movies, source)
    return Services(
        users=users,
        materializer=materializer,
        watch=WatchService(materializer, watch_state, movies),
        progress=ProgressService(
            catalog,
            watch_state,
            movies,
            users,
            materializer,
            recent_limit=app_settings.recent_activity_limit,
        ),
        sync=CatalogSync(
            app_settings,
            catalog,
            source,
            materializer=materializer,
            watch_state=watch_state,
            movies=movies,
        ),
        source=source,
    )


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    tmdb_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.tmdb_api_url),
            timeout=httpx.Timeout(settings.tmdb_timeout_seconds, connect=10.0),
            headers={"Accept": "application/json"},
        )
    )
    database = Database(settings.database_url)
    await database.create_all()

    if not settings.tmdb_api_key:
        logger.warning("TMDB_API_KEY is not set; catalog lookups will fail")

    services = build_services(
        settings, database.session_factory, TMDBClient(settings, tmdb_http_client)
    )
    fastapi_app.state.services = services
    fastapi_app.state.database = database
    if settings.sync_enabled:
        await services.sync.start()

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await services.sync.stop()
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Episode watch tracking and progress backed by TMDB",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_services(fastapi_app: FastAPI) -> Services:
    services = getattr(fastapi_app.state, "services", None)
    if not isinstance(services, Services):
        raise RuntimeError("Services not initialised")
    return services


class CreateUserRequest(BaseModel):
    username: str = Field(min_length=1, max_length=120)


class MarkEpisodeRequest(BaseModel):
    season_number: int = Field(ge=1)
    episode_number: int = Field(ge=0)


def _status_for(exc: EpisodicError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, (AlreadyWatchedError, NothingToMarkError)):
        return 409
    if isinstance(exc, SourceUnavailableError):
        return 502
    if isinstance(exc, ConfigurationError):
        return 500
    if isinstance(exc, InvalidRequestError):
        return 400
    return 400


def _ok(data: Any, **extra: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {"success": True, "data": data}
    payload.update(extra)
    return payload


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.exception_handler(EpisodicError)
    async def _episodic_error_handler(_: Request, exc: EpisodicError) -> JSONResponse:
        status_code = _status_for(exc)
        if status_code >= 500:
            logger.error("Request failed: %s", exc)
        return JSONResponse(
            status_code=status_code,
            content={"success": False, "error": exc.__class__.__name__, "detail": str(exc)},
        )

    def services() -> Services:
        return get_services(fastapi_app)

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.post("/api/users", status_code=201)
    async def create_user(body: CreateUserRequest) -> dict[str, Any]:
        user = await services().users.create(body.username.strip())
        return _ok({"user_id": user.user_id, "username": user.username})

    @fastapi_app.get("/api/shows/{show_id}")
    async def show_detail(show_id: int, username: str | None = None) -> dict[str, Any]:
        detail = await services().progress.show_detail(show_id, username)
        return _ok(detail.model_dump(mode="json"))

    @fastapi_app.post("/api/users/{username}/shows/{show_id}/episodes")
    async def mark_episode(
        username: str, show_id: int, body: MarkEpisodeRequest
    ) -> dict[str, Any]:
        container = services()
        user_id = await container.users.resolve(username)
        state = await container.watch.mark_episode(
            user_id, show_id, body.season_number, body.episode_number
        )
        return _ok(state.model_dump(mode="json"), message="Episode marked as watched")

    @fastapi_app.delete(
        "/api/users/{username}/shows/{show_id}/seasons/{season_number}/episodes/{episode_number}"
    )
    async def unmark_episode(
        username: str, show_id: int, season_number: int, episode_number: int
    ) -> dict[str, Any]:
        container = services()
        user_id = await container.users.resolve(username)
        state = await container.watch.unmark_episode(
            user_id, show_id, season_number, episode_number
        )
        data = state.model_dump(mode="json") if state is not None else None
        return _ok(data, message="Episode marked as unwatched")

    @fastapi_app.post("/api/users/{username}/shows/{show_id}/seasons/{season_number}")
    async def mark_season(username: str, show_id: int, season_number: int) -> dict[str, Any]:
        container = services()
        user_id = await container.users.resolve(username)
        state = await container.watch.mark_season(user_id, show_id, season_number)
        return _ok(state.model_dump(mode="json"), message="Season marked as watched")

    @fastapi_app.delete("/api/users/{username}/shows/{show_id}")
    async def unmark_show(username: str, show_id: int) -> dict[str, Any]:
        container = services()
        user_id = await container.users.resolve(username)
        removed = await container.watch.unmark_show(user_id, show_id)
        return _ok({"show_id": show_id, "removed_episodes": removed})

    @fastapi_app.get("/api/users/{username}/shows/progress")
    async def show_progress(username: str) -> dict[str, Any]:
        container = services()
        user_id = await container.users.resolve(username)
        progress = await container.progress.compute_progress(user_id)
        return _ok([item.model_dump(mode="json") for item in progress])

    @fastapi_app.get("/api/users/{username}/watched/shows")
    async def watched_episodes(username: str) -> dict[str, Any]:
        container = services()
        user_id = await container.users.resolve(username)
        episodes = await container.progress.list_watched_episodes(user_id)
        return _ok([item.model_dump(mode="json") for item in episodes])

    @fastapi_app.get("/api/users/{username}/watched/movies")
    async def watched_movies(username: str) -> dict[str, Any]:
        container = services()
        user_id = await container.users.resolve(username)
        movies = await container.progress.list_watched_movies(user_id)
        return _ok([item.model_dump(mode="json") for item in movies])

    @fastapi_app.post("/api/users/{username}/movies/{movie_id}")
    async def mark_movie(username: str, movie_id: int) -> dict[str, Any]:
        container = services()
        user_id = await container.users.resolve(username)
        watched = await container.watch.mark_movie(user_id, movie_id)
        return _ok(watched.model_dump(mode="json"), message="Movie marked as watched")

    @fastapi_app.delete("/api/users/{username}/movies/{movie_id}")
    async def unmark_movie(username: str, movie_id: int) -> dict[str, Any]:
        container = services()
        user_id = await container.users.resolve(username)
        await container.watch.unmark_movie(user_id, movie_id)
        return _ok({"movie_id": movie_id}, message="Movie marked as unwatched")

    @fastapi_app.get("/api/users/{username}/stats")
    async def user_stats(username: str) -> dict[str, Any]:
        container = services()
        user_id = await container.users.resolve(username)
        stats = await container.progress.compute_stats(user_id)
        return _ok(stats.model_dump(mode="json"))

    @fastapi_app.post("/api/sync")
    async def sync_all(stale_only: bool = False) -> dict[str, Any]:
        summary = await services().sync.sync_all(stale_only=stale_only)
        return _ok(summary.model_dump(mode="json"), message="Sync completed")

    @fastapi_app.post("/api/sync/{show_id}")
    async def sync_show(show_id: int) -> dict[str, Any]:
        result = await services().sync.sync_show(show_id)
        return _ok(result.model_dump(mode="json"))

    @fastapi_app.post("/api/backfill")
    async def backfill() -> dict[str, Any]:
        summary = await services().sync.backfill()
        return _ok(summary.model_dump(mode="json"))

    @fastapi_app.get("/api/discover/{content_type}")
    async def discover(content_type: str, page: int = 1) -> dict[str, Any]:
        if content_type not in {"movies", "shows"}:
            raise InvalidRequestError(f"Unsupported content type: {content_type}")
        if page < 1:
            raise InvalidRequestError("Page must be positive")
        result = await services().source.discover(content_type, page=page)
        return _ok(result.model_dump(mode="json"))


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
