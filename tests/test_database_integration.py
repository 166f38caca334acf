"""
Store and query tests against a real PostgreSQL with pgvector.
Skipped unless TEST_DATABASE_URL points at a disposable database.
"""

import asyncio
import os

import pytest
from sqlalchemy import text

from db.database import Database
from models.github_models import RepositorySnapshot
from services.query_service import RepositoryQueries
from services.repository_store import RepositoryStore

DATABASE_URL = os.environ.get("TEST_DATABASE_URL")

pytestmark = pytest.mark.skipif(not DATABASE_URL, reason="TEST_DATABASE_URL not set")

TABLES = (
    "developer_top_repos, developers, repository_commits, repository_commit_activity, "
    "repository_contributors, repository_languages, repository_stats, repositories"
)


def run(coro):
    return asyncio.run(coro)


async def fresh_database() -> Database:
    database = Database(DATABASE_URL, pool_size=2)
    await database.init_db()
    async with database.transaction() as session:
        await session.execute(text(f"TRUNCATE {TABLES} RESTART IDENTITY CASCADE"))
    return database


class TestRepositoryStore:

    def test_upsert_is_idempotent_and_keeps_other_tags(self, repo_node):
        async def scenario():
            database = await fresh_database()
            try:
                snapshot = RepositorySnapshot.from_graphql(repo_node(github_id=501, stars=10))
                async with database.transaction() as session:
                    store = RepositoryStore(session)
                    await store.upsert_repository(snapshot, "top")
                    await store.upsert_repository(snapshot, "top")
                    await store.upsert_repository(snapshot, "trending")
                async with database.session() as session:
                    result = await session.execute(
                        text("SELECT count(*), max(categories::text) FROM repositories")
                    )
                    return result.one()
            finally:
                await database.dispose()

        count, categories = run(scenario())
        assert count == 1
        assert categories == "{top,trending}"

    def test_clear_category_then_retag(self, repo_node):
        async def scenario():
            database = await fresh_database()
            try:
                async with database.transaction() as session:
                    store = RepositoryStore(session)
                    for github_id in (1, 2):
                        await store.upsert_repository(
                            RepositorySnapshot.from_graphql(repo_node(name=f"r{github_id}", github_id=github_id)),
                            "growing",
                        )
                async with database.transaction() as session:
                    store = RepositoryStore(session)
                    cleared = await store.clear_category("growing")
                    await store.upsert_repository(
                        RepositorySnapshot.from_graphql(repo_node(name="r2", github_id=2)), "growing",
                    )
                async with database.session() as session:
                    rows = await RepositoryQueries(session).by_category("growing")
                return cleared, [row["full_name"] for row in rows]
            finally:
                await database.dispose()

        cleared, names = run(scenario())
        assert cleared == 2
        assert names == ["octo/r2"]


class TestKeysetPagination:

    def test_pages_do_not_overlap(self, repo_node):
        async def scenario():
            database = await fresh_database()
            try:
                async with database.transaction() as session:
                    store = RepositoryStore(session)
                    for i in range(5):
                        node = repo_node(name=f"r{i}", github_id=100 + i, stars=1000 if i < 3 else 10)
                        await store.upsert_repository(RepositorySnapshot.from_graphql(node), "top")
                seen = []
                cursor = None
                async with database.session() as session:
                    queries = RepositoryQueries(session)
                    while True:
                        rows, cursor, has_more = await queries.top(2, cursor)
                        seen.extend(row["id"] for row in rows)
                        if not has_more:
                            break
                return seen
            finally:
                await database.dispose()

        seen = run(scenario())
        assert len(seen) == 5
        assert len(set(seen)) == 5
