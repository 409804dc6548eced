from __future__ import annotations

import asyncio

from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.database import Database
from app.main import build_services, register_routes


def _build_app(tmp_path, settings, source) -> FastAPI:
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}")
    asyncio.run(database.create_all())
    # Pooled connections are tied to the loop that opened them.
    asyncio.run(database.dispose())

    app = FastAPI()
    register_routes(app)
    app.state.services = build_services(settings, database.session_factory, source)
    return app


def test_watch_flow_over_http(tmp_path, test_settings, source) -> None:
    source.add_show(77, "Relay", {1: 2})
    app = _build_app(tmp_path, test_settings, source)

    with TestClient(app) as client:
        created = client.post("/api/users", json={"username": "erin"})
        assert created.status_code == 201
        assert created.json()["data"]["username"] == "erin"

        marked = client.post(
            "/api/users/erin/shows/77/episodes",
            json={"season_number": 1, "episode_number": 1},
        )
        assert marked.status_code == 200
        assert marked.json()["success"] is True

        duplicate = client.post(
            "/api/users/erin/shows/77/episodes",
            json={"season_number": 1, "episode_number": 1},
        )
        assert duplicate.status_code == 409
        assert duplicate.json()["error"] == "AlreadyWatchedError"

        progress = client.get("/api/users/erin/shows/progress").json()["data"]
        assert progress[0]["watched_episodes"] == 1
        assert progress[0]["next_episode"]["episode_number"] == 2

        detail = client.get("/api/shows/77", params={"username": "erin"}).json()["data"]
        assert [episode["watched"] for episode in detail["seasons"][0]["episodes"]] == [True, False]

        removed = client.delete("/api/users/erin/shows/77/seasons/1/episodes/1")
        assert removed.status_code == 200
        assert removed.json()["data"] is None

        missing = client.delete("/api/users/erin/shows/77/seasons/1/episodes/1")
        assert missing.status_code == 404

        assert client.get("/api/users/erin/shows/progress").json()["data"] == []


def test_season_marks_and_stats(tmp_path, test_settings, source) -> None:
    source.add_show(78, "Beacon", {1: 3}, runtime=25)
    source.add_movie(900, "Feature", runtime=95)
    app = _build_app(tmp_path, test_settings, source)

    with TestClient(app) as client:
        client.post("/api/users", json={"username": "finn"})

        assert client.post("/api/users/finn/shows/78/seasons/1").status_code == 200
        again = client.post("/api/users/finn/shows/78/seasons/1")
        assert again.status_code == 409
        assert again.json()["error"] == "NothingToMarkError"
        assert client.post("/api/users/finn/shows/78/seasons/4").status_code == 404

        assert client.post("/api/users/finn/movies/900").status_code == 200

        stats = client.get("/api/users/finn/stats").json()["data"]
        assert stats["episodes_watched"] == 3
        assert stats["total_show_minutes"] == 75
        assert stats["total_movie_minutes"] == 95

        history = client.get("/api/users/finn/watched/shows").json()["data"]
        assert len(history) == 3
        movies = client.get("/api/users/finn/watched/movies").json()["data"]
        assert movies[0]["title"] == "Feature"

        cleared = client.delete("/api/users/finn/shows/78")
        assert cleared.json()["data"]["removed_episodes"] == 3


def test_unknown_user_and_upstream_failures(tmp_path, test_settings, source) -> None:
    app = _build_app(tmp_path, test_settings, source)

    with TestClient(app) as client:
        unknown = client.get("/api/users/nobody/shows/progress")
        assert unknown.status_code == 404
        assert unknown.json()["success"] is False

        client.post("/api/users", json={"username": "gail"})
        upstream = client.post(
            "/api/users/gail/shows/12345/episodes",
            json={"season_number": 1, "episode_number": 1},
        )
        assert upstream.status_code == 502

        invalid = client.post(
            "/api/users/gail/shows/12345/episodes",
            json={"season_number": 0, "episode_number": 1},
        )
        assert invalid.status_code == 422


def test_sync_and_discover_routes(tmp_path, test_settings, source) -> None:
    source.add_show(79, "Drift", {1: 1})
    app = _build_app(tmp_path, test_settings, source)

    with TestClient(app) as client:
        client.post("/api/users", json={"username": "hana"})
        client.post(
            "/api/users/hana/shows/79/episodes",
            json={"season_number": 1, "episode_number": 1},
        )

        summary = client.post("/api/sync").json()["data"]
        assert summary["total"] == 1
        assert summary["unchanged"] == 1

        assert client.post("/api/sync/79").json()["data"]["status"] == "unchanged"
        assert client.post("/api/sync/404").status_code == 404

        assert client.get("/api/discover/shows").json()["data"]["results"][0]["name"] == "Popular"
        unsupported = client.get("/api/discover/podcasts")
        assert unsupported.status_code == 400
        assert unsupported.json() == {
            "success": False,
            "error": "InvalidRequestError",
            "detail": "Unsupported content type: podcasts",
        }
        bad_page = client.get("/api/discover/movies", params={"page": 0})
        assert bad_page.status_code == 400
        assert bad_page.json()["error"] == "InvalidRequestError"

        backfill = client.post("/api/backfill").json()["data"]
        assert backfill["shows_created"] == 0
