"""
Backfill workers.
Hydrate stub repositories and fill the per-repository child tables
(contributors, weekly commit activity, recent commits, READMEs). Every job
walks its queue sequentially with fixed pauses and commits each repository
in its own transaction.
"""
import asyncio
import logging
from collections import Counter
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from config import Delays
from db.database import Database
from models.github_models import RepositorySnapshot, clean_readme
from services.exceptions import ContributorsUnavailable, GithubError
from services.github_service import GitHubService
from services.repository_store import RepoRef, RepositoryStore
from utils.repo_scoring import build_stats

logger = logging.getLogger(__name__)

HISTORY_MAX_PAGES = 5
TOP_CONTRIBUTORS = 30
COMMIT_ACTIVITY_RETRIES = 3
CONTRIBUTORS_QUEUE_LIMIT = 50
ACTIVITY_QUEUE_LIMIT = 100
COMMITS_QUEUE_LIMIT = 100
README_QUEUE_LIMIT = 50
MODES = ("missing", "all")


class WorkerService:
    """Idempotent backfill jobs over the repositories table."""

    def __init__(self, database: Database, github: GitHubService, delays: Optional[Delays] = None):
        self.database = database
        self.github = github
        self.delays = delays or Delays()

    async def _queue(self, flag: str, mode: str, limit: int, repository_id: Optional[int]) -> List[RepoRef]:
        if mode not in MODES:
            raise ValueError(f"Unknown mode: {mode}")
        async with self.database.session() as session:
            return await RepositoryStore(session).select_work_queue(flag, mode, limit, repository_id)

    # ------------------------------------------------------------------
    # Stub hydration
    # ------------------------------------------------------------------

    async def hydrate_stubs(self) -> int:
        """Promote every stub row to a complete repository."""
        async with self.database.session() as session:
            stubs = await RepositoryStore(session).list_stubs()
        logger.info("Hydrating %d stub repositories", len(stubs))

        hydrated = 0
        for ref in stubs:
            try:
                node = await self.github.get_repository(ref.owner, ref.name)
                if node is None:
                    logger.warning("Stub %s no longer exists on GitHub", ref.full_name)
                else:
                    snapshot = RepositorySnapshot.from_graphql(node)
                    async with self.database.transaction() as session:
                        store = RepositoryStore(session)
                        await store.hydrate(snapshot)
                        await store.replace_languages(snapshot)
                        await store.upsert_stats(build_stats(snapshot))
                    hydrated += 1
            except (GithubError, SQLAlchemyError) as e:
                logger.error("Failed to hydrate %s: %s", ref.full_name, e)
            await asyncio.sleep(self.delays.hydrate)
        return hydrated

    # ------------------------------------------------------------------
    # Contributors
    # ------------------------------------------------------------------

    async def update_contributors(self, mode: str = "missing", repository_id: Optional[int] = None) -> int:
        queue = await self._queue("contributors_fetched", mode, CONTRIBUTORS_QUEUE_LIMIT, repository_id)
        logger.info("Updating contributors for %d repositories (%s)", len(queue), mode)
        done = 0
        for ref in queue:
            try:
                contributors, data_source = await self.fetch_contributors(ref)
                async with self.database.transaction() as session:
                    count = await RepositoryStore(session).replace_contributors(
                        ref.github_id, contributors, data_source,
                    )
                logger.info("Saved %d %s contributors for %s", count, data_source, ref.full_name)
                done += 1
            except (GithubError, SQLAlchemyError) as e:
                logger.error("Contributors failed for %s: %s", ref.full_name, e)
            await asyncio.sleep(self.delays.contributors)
        return done

    async def fetch_contributors(self, ref: RepoRef) -> Tuple[List[Dict], str]:
        """
        Contributor list with its provenance.

        REST all-time list first; when GitHub refuses (204, 403 "too large",
        anything else) fall back to scanning recent history, then upgrade each
        recent count with the Search API all-time count when that is larger.
        """
        try:
            return await self.github.get_contributors(ref.full_name), "all_time"
        except ContributorsUnavailable as e:
            logger.info("REST contributors unavailable for %s (%s); scanning history", ref.full_name, e.status_code)
        except GithubError as e:
            logger.warning("REST contributors failed for %s: %s; scanning history", ref.full_name, e)

        recent = await self.scan_recent_contributors(ref)
        for contributor in recent:
            await asyncio.sleep(self.delays.search_api)
            total = await self.github.count_user_commits(ref.full_name, contributor["login"])
            if total > contributor["contributions"]:
                contributor["contributions"] = total
        return recent, "recent"

    async def scan_recent_contributors(self, ref: RepoRef) -> List[Dict]:
        """Top committers among the most recent default-branch commits."""
        counts: Counter = Counter()
        users: Dict[str, Dict] = {}
        cursor = None

        for _ in range(HISTORY_MAX_PAGES):
            history = await self.github.get_commit_history(ref.owner, ref.name, cursor)
            if not history:
                break
            for node in history.get("nodes") or []:
                user = ((node or {}).get("author") or {}).get("user") or {}
                if not user.get("login") or not user.get("databaseId"):
                    continue
                counts[user["login"]] += 1
                users[user["login"]] = user
            page_info = history.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                break
            cursor = page_info.get("endCursor")

        return [
            {
                "id": users[login]["databaseId"],
                "login": login,
                "avatar_url": users[login].get("avatarUrl"),
                "html_url": users[login].get("url"),
                "contributions": count,
                "type": "User",
            }
            for login, count in counts.most_common(TOP_CONTRIBUTORS)
        ]

    # ------------------------------------------------------------------
    # Commit activity
    # ------------------------------------------------------------------

    async def update_commit_activity(self, mode: str = "missing", repository_id: Optional[int] = None) -> int:
        queue = await self._queue("commit_activity_fetched", mode, ACTIVITY_QUEUE_LIMIT, repository_id)
        logger.info("Updating commit activity for %d repositories (%s)", len(queue), mode)
        done = 0
        for ref in queue:
            try:
                weeks = await self.fetch_commit_activity(ref)
                if weeks is None:
                    logger.info("Commit activity for %s still computing; skipped", ref.full_name)
                else:
                    async with self.database.transaction() as session:
                        await RepositoryStore(session).replace_commit_activity(ref.github_id, weeks)
                    done += 1
            except (GithubError, SQLAlchemyError) as e:
                logger.error("Commit activity failed for %s: %s", ref.full_name, e)
            await asyncio.sleep(self.delays.commit_activity)
        return done

    async def fetch_commit_activity(self, ref: RepoRef) -> Optional[List[Dict]]:
        """Weekly buckets, retrying while GitHub answers 202; None if it never finishes."""
        for attempt in range(COMMIT_ACTIVITY_RETRIES):
            weeks = await self.github.get_commit_activity(ref.full_name)
            if weeks is not None:
                return weeks
            if attempt < COMMIT_ACTIVITY_RETRIES - 1:
                await asyncio.sleep(self.delays.stats_retry)
        return None

    # ------------------------------------------------------------------
    # Recent commits
    # ------------------------------------------------------------------

    async def update_recent_commits(self, mode: str = "missing", repository_id: Optional[int] = None) -> int:
        queue = await self._queue("recent_commits_fetched", mode, COMMITS_QUEUE_LIMIT, repository_id)
        logger.info("Updating recent commits for %d repositories (%s)", len(queue), mode)
        done = 0
        for ref in queue:
            try:
                commits = await self.github.get_recent_commits(ref.full_name)
                if commits is None:
                    logger.warning("Recent commits unavailable for %s", ref.full_name)
                else:
                    async with self.database.transaction() as session:
                        await RepositoryStore(session).replace_commits(ref.github_id, commits)
                    done += 1
            except (GithubError, SQLAlchemyError) as e:
                logger.error("Recent commits failed for %s: %s", ref.full_name, e)
            await asyncio.sleep(self.delays.commits)
        return done

    # ------------------------------------------------------------------
    # READMEs
    # ------------------------------------------------------------------

    async def update_missing_readmes(self, limit: int = README_QUEUE_LIMIT) -> int:
        async with self.database.session() as session:
            queue = await RepositoryStore(session).list_missing_readmes(limit)
        logger.info("Fetching READMEs for %d repositories", len(queue))
        found = 0
        for ref in queue:
            try:
                readme = clean_readme(await self.github.get_readme(ref.owner, ref.name))
                async with self.database.transaction() as session:
                    await RepositoryStore(session).save_readme(ref.github_id, readme)
                if readme:
                    found += 1
            except (GithubError, SQLAlchemyError) as e:
                logger.error("README fetch failed for %s: %s", ref.full_name, e)
            await asyncio.sleep(self.delays.readme)
        return found

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    async def run_all_jobs(self, force_all: bool = False) -> Dict[str, int]:
        """Hydrate stubs, then run every backfill in 'missing' (or 'all') mode."""
        mode = "all" if force_all else "missing"
        results = {"hydrated": await self.hydrate_stubs()}
        results["recent_commits"] = await self.update_recent_commits(mode)
        results["commit_activity"] = await self.update_commit_activity(mode)
        results["contributors"] = await self.update_contributors(mode)
        logger.info("All backfill jobs finished: %s", results)
        return results

    async def run_repos_one_by_one(self) -> int:
        """Refresh contributors for every repository, stubs included, most starred first."""
        async with self.database.session() as session:
            queue = await RepositoryStore(session).list_by_stars()
        logger.info("Refreshing contributors for %d repositories one by one", len(queue))
        done = 0
        for ref in queue:
            done += await self.update_contributors(repository_id=ref.id)
        return done
