"""Tests for repository sync passes with fake GitHub, GH Archive and store."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from config import Delays
from services import sync_service
from services.exceptions import GithubError, GithubRateLimitError
from services.sync_service import RepoSyncService


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def store(monkeypatch):
    fake = MagicMock()
    fake.clear_category = AsyncMock(return_value=2)
    fake.upsert_repository = AsyncMock()
    fake.replace_languages = AsyncMock()
    fake.upsert_stats = AsyncMock()
    monkeypatch.setattr(sync_service, "RepositoryStore", lambda session: fake)
    return fake


def make_service(database, github=None, gharchive=None):
    return RepoSyncService(database, github or MagicMock(), gharchive or MagicMock(), Delays.none())


class TestTopSync:

    def test_retries_same_cursor_after_rate_limit(self, fake_database, store, repo_node):
        github = MagicMock()
        github.search_top_repositories = AsyncMock(side_effect=[
            GithubRateLimitError("slow down"),
            ([repo_node(name="a", github_id=1), repo_node(name="b", github_id=2)], "c1", True),
            ([repo_node(name="c", github_id=3)], "c2", False),
        ])
        service = make_service(fake_database, github)

        assert run(service.sync_top(5)) == 3
        cursors = [call.args[1] for call in github.search_top_repositories.await_args_list]
        assert cursors == [None, None, "c1"]
        store.clear_category.assert_awaited_once_with("top")
        assert [c.args[1] for c in store.upsert_repository.await_args_list] == ["top"] * 3

    def test_batches_never_exceed_the_limit(self, fake_database, store, repo_node):
        github = MagicMock()
        github.search_top_repositories = AsyncMock(side_effect=[
            ([repo_node(github_id=i) for i in range(20)], "c1", True),
            ([repo_node(github_id=100 + i) for i in range(5)], "c2", True),
        ])
        service = make_service(fake_database, github)

        assert run(service.sync_top(25)) == 25
        assert [call.args[0] for call in github.search_top_repositories.await_args_list] == [20, 5]

    def test_other_errors_save_what_was_collected(self, fake_database, store, repo_node):
        github = MagicMock()
        github.search_top_repositories = AsyncMock(side_effect=[
            ([repo_node(github_id=1)], "c1", True),
            GithubError("bad gateway"),
        ])
        assert run(make_service(fake_database, github).sync_top(300)) == 1

    def test_empty_result_keeps_existing_tags(self, fake_database, store):
        github = MagicMock()
        github.search_top_repositories = AsyncMock(return_value=([], None, False))

        assert run(make_service(fake_database, github).sync_top(300)) == 0
        store.clear_category.assert_not_awaited()
        assert fake_database.transactions == 0


class TestSearchPasses:

    def test_trending_enriches_each_result(self, fake_database, store, repo_node):
        github = MagicMock()
        github.search_repositories = AsyncMock(return_value=[
            {"full_name": "octo/a"}, {"full_name": "octo/gone"}, {"full_name": "octo/b"},
        ])
        github.get_repository = AsyncMock(side_effect=[
            repo_node(name="a", github_id=1), None, repo_node(name="b", github_id=2),
        ])

        assert run(make_service(fake_database, github).sync_trending()) == 2
        query = github.search_repositories.await_args.args[0]
        assert query.startswith("pushed:>") and query.endswith("stars:>1000")
        store.clear_category.assert_awaited_once_with("trending")

    def test_growing_ranks_by_stars_per_day(self, fake_database, store, repo_node):
        github = MagicMock()
        github.search_repositories = AsyncMock(return_value=[
            {"full_name": "octo/old", "stargazers_count": 1000, "created_at": "2000-01-01T00:00:00Z"},
            {"full_name": "octo/new", "stargazers_count": 500, "created_at": "2099-01-01T00:00:00Z"},
        ])
        github.get_repository = AsyncMock(return_value=repo_node())

        run(make_service(fake_database, github).sync_growing())
        owners_names = [call.args for call in github.get_repository.await_args_list]
        assert owners_names == [("octo", "new"), ("octo", "old")]

    def test_failed_row_does_not_abort_the_pass(self, fake_database, store, repo_node):
        from sqlalchemy.exc import SQLAlchemyError

        store.upsert_repository = AsyncMock(side_effect=[SQLAlchemyError("bad row"), None])
        github = MagicMock()
        github.search_repositories = AsyncMock(return_value=[{"full_name": "octo/a"}, {"full_name": "octo/b"}])
        github.get_repository = AsyncMock(side_effect=[repo_node(github_id=1), repo_node(github_id=2)])

        assert run(make_service(fake_database, github).sync_trending()) == 1


class TestGHArchive:

    def test_unknown_period(self, fake_database, store):
        with pytest.raises(ValueError):
            run(make_service(fake_database).sync_gharchive("yearly"))

    def test_weekly_stores_star_events_as_growth(self, fake_database, store, repo_node):
        gharchive = MagicMock()
        gharchive.top_starred = AsyncMock(return_value=[("octo/a", 420), ("octo/b", 99)])
        github = MagicMock()
        github.get_repository = AsyncMock(side_effect=[repo_node(name="a", github_id=1), repo_node(name="b", github_id=2)])

        assert run(make_service(fake_database, github, gharchive).sync_gharchive("weekly")) == 2
        gharchive.top_starred.assert_awaited_once_with(7)
        store.clear_category.assert_awaited_once_with("trending_weekly")
        stats = [call.args[0] for call in store.upsert_stats.await_args_list]
        assert [(s["repo_github_id"], s["stars_growth_7d"]) for s in stats] == [(1, 420), (2, 99)]

    def test_disabled_bigquery_changes_nothing(self, fake_database, store):
        gharchive = MagicMock()
        gharchive.top_starred = AsyncMock(return_value=[])

        assert run(make_service(fake_database, gharchive=gharchive).sync_gharchive("monthly")) == 0
        store.clear_category.assert_not_awaited()
