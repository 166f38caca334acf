"""HTTP tests for the API surface, with a fake service container."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from config import Delays, Settings
from main import create_app
from models.pydantic_models import SearchIntent
from routes.api import get_developer_queries, get_repository_queries
from services.job_runner import JobRunner


class FakeContainer:
    """Only the attributes the routes touch."""

    def __init__(self, database):
        self.database = database
        self.jobs = JobRunner()
        self.sync = MagicMock()
        for name in ("sync_quick", "sync_comprehensive", "sync_growing", "sync_trending", "sync_gharchive"):
            setattr(self.sync, name, AsyncMock(return_value=0))
        self.workers = MagicMock()
        for name in ("update_contributors", "update_commit_activity", "update_recent_commits",
                     "update_missing_readmes", "hydrate_stubs", "run_all_jobs", "run_repos_one_by_one"):
            setattr(self.workers, name, AsyncMock(return_value=0))
        self.developers = MagicMock()
        self.developers.run_mission = AsyncMock(return_value=0)
        self.developers.fetch_specific_developer = AsyncMock(return_value=True)
        self.embeddings = MagicMock()
        self.embeddings.embed_repositories = AsyncMock(return_value=0)
        self.gemini = MagicMock()
        self.gemini.generate_summary = AsyncMock(return_value="A friendly widget.")
        self.search = MagicMock()
        self.search.search = AsyncMock(return_value=(SearchIntent(semantic_query="widget"), []))
        self.closed = False

    async def aclose(self):
        await self.jobs.shutdown()
        self.closed = True


@pytest.fixture
def container(fake_database):
    return FakeContainer(fake_database)


@pytest.fixture
def repo_queries():
    return MagicMock()


@pytest.fixture
def dev_queries():
    return MagicMock()


@pytest.fixture
def client(settings, container, repo_queries, dev_queries):
    app = create_app(settings, services=container)
    app.dependency_overrides[get_repository_queries] = lambda: repo_queries
    app.dependency_overrides[get_developer_queries] = lambda: dev_queries
    with TestClient(app) as test_client:
        yield test_client
    assert container.closed


class TestJobTriggers:

    @pytest.mark.parametrize("path", [
        "/api/sync/quick",
        "/api/sync/comprehensive",
        "/api/sync/gharchive/weekly",
        "/api/workers/scout?mission=rising_stars",
        "/api/workers/update-contributors?mode=all",
        "/api/workers/update-commit-activity",
        "/api/workers/update-recent-activity",
        "/api/workers/update-readmes",
        "/api/workers/hydrate-stubs",
        "/api/workers/embed",
        "/api/workers/run-all",
        "/api/workers/runByOrder",
        "/fetch-growing",
        "/fetch-trending",
    ])
    def test_returns_202_with_job_id(self, client, path):
        response = client.post(path)
        assert response.status_code == 202
        job_id = response.json()["job_id"]
        assert job_id in [job["id"] for job in client.get("/api/jobs").json()]

    @pytest.mark.parametrize("path", [
        "/api/sync/gharchive/yearly",
        "/api/workers/scout?mission=legends",
        "/api/workers/update-contributors?mode=sometimes",
        "/api/workers/run-all?mode=never",
    ])
    def test_rejects_unknown_arguments(self, client, container, path):
        assert client.post(path).status_code == 400
        assert container.jobs.list() == []

    def test_cancel_unknown_job(self, client):
        assert client.delete("/api/jobs/nope").status_code == 404

    def test_cancel_finished_job(self, client):
        job_id = client.post("/api/sync/quick").json()["job_id"]
        response = client.delete(f"/api/jobs/{job_id}")
        assert response.status_code == 200
        assert response.json()["id"] == job_id


class TestManualDeveloperFetch:

    @pytest.mark.parametrize("body", [{}, {"username": "   "}])
    def test_username_required(self, client, body):
        assert client.post("/api/developers/fetch", json=body).status_code == 400

    def test_runs_inline(self, client, container):
        response = client.post("/api/developers/fetch", json={"username": " ferris "})
        assert response.status_code == 200
        assert response.json() == {"message": "Developer ferris processed", "username": "ferris", "saved": True}
        container.developers.fetch_specific_developer.assert_awaited_once_with("ferris")


class TestReads:

    def test_top_page(self, client, repo_queries):
        repo_queries.top = AsyncMock(return_value=([{"id": 7, "stars_count": 10}], "next", True))
        body = client.get("/api/repos/top?limit=1").json()
        assert body == {"data": [{"id": 7, "stars_count": 10}], "nextCursor": "next", "hasMore": True}
        repo_queries.top.assert_awaited_once_with(1, None, None, None)

    def test_repository_search(self, client, repo_queries):
        repo_queries.by_full_name = AsyncMock(return_value=None)
        assert client.get("/api/repos/search").status_code == 400
        assert client.get("/api/repos/search?full_name=octo/missing").status_code == 404

    def test_filter_rejects_unknown_source(self, client, repo_queries):
        repo_queries.filter = AsyncMock(side_effect=ValueError("Unknown source: nowhere"))
        assert client.get("/api/repos/filter?source=nowhere").status_code == 400

    def test_child_rows_of_unknown_repository(self, client, repo_queries):
        repo_queries.contributors = AsyncMock(return_value=None)
        repo_queries.commits = AsyncMock(return_value=[{"sha": "abc"}])
        assert client.get("/api/repos/99/contributors").status_code == 404
        assert client.get("/api/repos/99/commits").json() == [{"sha": "abc"}]

    def test_database_errors_become_500(self, client, repo_queries):
        repo_queries.by_category = AsyncMock(side_effect=RuntimeError("connection reset"))
        response = client.get("/api/trendings-database")
        assert response.status_code == 500
        assert "connection reset" not in response.text

    def test_stats(self, client, repo_queries):
        repo_queries.stats = AsyncMock(return_value={"totalRepositories": 3, "totalStars": 1200})
        assert client.get("/api/stats").json() == {"totalRepositories": 3, "totalStars": 1200}

    def test_developer_list_and_details(self, client, dev_queries):
        dev_queries.list = AsyncMock(return_value=([{"login": "ferris"}], None, False))
        dev_queries.details = AsyncMock(return_value=None)

        body = client.get("/api/developers?persona=systems_architect").json()
        assert body == {"data": [{"login": "ferris"}], "nextCursor": None, "hasMore": False}
        assert dev_queries.list.await_args.kwargs["persona"] == "systems_architect"
        assert client.get("/api/developers/ghost/details").status_code == 404

    def test_semantic_search(self, client, container):
        assert client.get("/api/repos/semantic-search?q=%20").status_code == 400
        body = client.get("/api/repos/semantic-search?q=widget").json()
        assert body["intent"]["semantic_query"] == "widget"
        assert body["data"] == []


class TestMalformedCursor:

    def test_top_rejects_garbage_cursor(self, settings, container):
        # real query object: the cursor is decoded before any SQL runs
        with TestClient(create_app(settings, services=container)) as client:
            assert client.get("/api/repos/top?cursor=not-a-cursor").status_code == 400


class TestSummary:

    def test_summary(self, client, repo_queries):
        repo_queries.readme = AsyncMock(return_value=(True, "# Widget"))
        assert client.get("/api/repos/5/summary").json() == {"repo_id": 5, "summary": "A friendly widget."}

    @pytest.mark.parametrize("readme", [(False, None), (True, None), (True, "")])
    def test_missing_repository_or_readme(self, client, repo_queries, container, readme):
        repo_queries.readme = AsyncMock(return_value=readme)
        assert client.get("/api/repos/5/summary").status_code == 404
        container.gemini.generate_summary.assert_not_awaited()


class TestHealth:

    def test_ok(self, client):
        assert client.get("/api/health").json()["status"] == "OK"

    def test_database_down(self, client, fake_database):
        fake_database.ping_error = ConnectionError("refused")
        response = client.get("/api/health")
        assert response.status_code == 500
        assert response.json()["status"] == "ERROR"


class TestFrontend:

    @pytest.fixture
    def spa_client(self, tmp_path, container):
        (tmp_path / "assets").mkdir()
        (tmp_path / "assets" / "app.js").write_text("console.log('githop')")
        (tmp_path / "index.html").write_text("<div id=root></div>")
        settings = Settings(github_token="t", static_dir=str(tmp_path), delays=Delays.none())
        with TestClient(create_app(settings, services=container)) as client:
            yield client

    def test_serves_assets(self, spa_client):
        assert "githop" in spa_client.get("/assets/app.js").text

    def test_client_routes_get_index(self, spa_client):
        assert spa_client.get("/developers/ferris").text == "<div id=root></div>"

    def test_unknown_api_path_is_json_404(self, spa_client):
        response = spa_client.get("/api/nothing-here")
        assert response.status_code == 404
        assert response.json() == {"detail": "Not Found"}
