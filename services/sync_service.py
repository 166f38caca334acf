"""
Repository sync passes.
Each pass discovers a result set (REST search, GraphQL top-stars search or
GH Archive), enriches it through GraphQL one repository at a time, and
re-tags the category in a single transaction.
"""
import asyncio
import logging
from datetime import date, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError

from config import Delays
from db.database import Database
from models.github_models import RepositorySnapshot, parse_github_datetime
from services.bigquery_service import GHArchiveService
from services.exceptions import GithubError, GithubRateLimitError
from services.github_service import GitHubService
from services.repository_store import RepositoryStore
from utils.repo_scoring import build_stats, build_trend_stats, growth_rate

logger = logging.getLogger(__name__)

TOP_BATCH_SIZE = 20
QUICK_SYNC_LIMIT = 300
COMPREHENSIVE_SYNC_LIMIT = 1000
GROWING_LIMIT = 100

# period -> (window days, category tag, growth column)
GH_ARCHIVE_PERIODS: Dict[str, Tuple[int, str, str]] = {
    "weekly": (7, "trending_weekly", "stars_growth_7d"),
    "monthly": (30, "trending_monthly", "stars_growth_30d"),
    "quarterly": (90, "trending_quarterly", "stars_growth_90d"),
}

StatsBuilder = Callable[[RepositorySnapshot], Dict]


class RepoSyncService:
    """Category sync passes for trending, growing, top and GH Archive trends."""

    def __init__(
        self,
        database: Database,
        github: GitHubService,
        gharchive: GHArchiveService,
        delays: Optional[Delays] = None,
    ):
        self.database = database
        self.github = github
        self.gharchive = gharchive
        self.delays = delays or Delays()

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    async def sync_trending(self) -> int:
        """Popular repositories pushed to during the last week."""
        since = (date.today() - timedelta(days=7)).isoformat()
        items = await self.github.search_repositories(
            f"pushed:>{since} stars:>1000", sort="stars", order="desc", per_page=100,
        )
        logger.info("Trending search returned %d repositories", len(items))
        enriched = await self._enrich([item["full_name"] for item in items])
        return await self._save_category([s for _, s in enriched], "trending")

    async def sync_growing(self) -> int:
        """Young repositories ranked by stars per day of age."""
        since = (date.today() - timedelta(days=30)).isoformat()
        items = await self.github.search_repositories(
            f"created:>{since} stars:>100", sort="stars", order="desc", per_page=50,
        )
        ranked = sorted(
            items,
            key=lambda item: growth_rate(
                item.get("stargazers_count") or 0, parse_github_datetime(item.get("created_at")),
            ),
            reverse=True,
        )[:GROWING_LIMIT]
        logger.info("Growing search returned %d repositories", len(ranked))
        enriched = await self._enrich([item["full_name"] for item in ranked])
        return await self._save_category([s for _, s in enriched], "growing")

    async def sync_quick(self) -> int:
        return await self.sync_top(QUICK_SYNC_LIMIT)

    async def sync_comprehensive(self) -> int:
        return await self.sync_top(COMPREHENSIVE_SYNC_LIMIT)

    async def sync_top(self, total_limit: int) -> int:
        """
        All-time most starred repositories, fetched in cursor-paginated batches.

        A rate-limit error waits and retries the same cursor; any other error
        ends the fetch and whatever was collected is saved.
        """
        snapshots: List[RepositorySnapshot] = []
        cursor: Optional[str] = None

        while len(snapshots) < total_limit:
            batch = min(TOP_BATCH_SIZE, total_limit - len(snapshots))
            try:
                nodes, next_cursor, has_next = await self.github.search_top_repositories(batch, cursor)
            except GithubRateLimitError as e:
                logger.warning(
                    "Rate limited at %d/%d (%s); retrying in %ss",
                    len(snapshots), total_limit, e, self.delays.rate_limit,
                )
                await asyncio.sleep(self.delays.rate_limit)
                continue
            except GithubError as e:
                logger.error("Top sync stopped at %d/%d: %s", len(snapshots), total_limit, e)
                break

            snapshots.extend(RepositorySnapshot.from_graphql(node) for node in nodes)
            logger.info("Fetched %d/%d top repositories", len(snapshots), total_limit)
            if not has_next or not next_cursor or not nodes:
                break
            cursor = next_cursor
            await asyncio.sleep(self.delays.top_batch)

        return await self._save_category(snapshots[:total_limit], "top")

    async def sync_gharchive(self, period: str) -> int:
        """Most-starred repositories over the trailing window, from GH Archive."""
        if period not in GH_ARCHIVE_PERIODS:
            raise ValueError(f"Unknown period: {period}")
        days, category, growth_column = GH_ARCHIVE_PERIODS[period]

        ranked = await self.gharchive.top_starred(days)
        if not ranked:
            logger.warning("GH Archive returned no rows for %s", period)
            return 0

        events = dict(ranked)
        enriched = await self._enrich([full_name for full_name, _ in ranked])
        event_counts = {snapshot.github_id: events[requested] for requested, snapshot in enriched}

        return await self._save_category(
            [snapshot for _, snapshot in enriched],
            category,
            lambda snapshot: build_trend_stats(snapshot, growth_column, event_counts[snapshot.github_id]),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _enrich(self, full_names: Sequence[str]) -> List[Tuple[str, RepositorySnapshot]]:
        """GraphQL details for each repository; failures are logged and skipped."""
        enriched: List[Tuple[str, RepositorySnapshot]] = []
        for full_name in full_names:
            if "/" not in full_name:
                continue
            owner, name = full_name.split("/", 1)
            try:
                node = await self.github.get_repository(owner, name)
                if node:
                    enriched.append((full_name, RepositorySnapshot.from_graphql(node)))
                else:
                    logger.warning("Repository %s not found", full_name)
            except GithubError as e:
                logger.warning("Enrichment skipped for %s: %s", full_name, e)
            await asyncio.sleep(self.delays.graphql_enrichment)
        return enriched

    async def _save_category(
        self,
        snapshots: Sequence[RepositorySnapshot],
        category: str,
        stats_builder: StatsBuilder = build_stats,
    ) -> int:
        """Clear `category` everywhere and re-apply it to `snapshots`, in one transaction."""
        if not snapshots:
            logger.warning("No repositories fetched for '%s'; existing tags kept", category)
            return 0

        saved = 0
        async with self.database.transaction() as session:
            store = RepositoryStore(session)
            cleared = await store.clear_category(category)
            logger.info("Cleared '%s' from %d repositories", category, cleared)
            for snapshot in snapshots:
                try:
                    async with session.begin_nested():
                        await store.upsert_repository(snapshot, category)
                        await store.replace_languages(snapshot)
                        await store.upsert_stats(stats_builder(snapshot))
                except SQLAlchemyError:
                    logger.exception("Failed to save %s", snapshot.full_name)
                    continue
                saved += 1

        logger.info("Saved %d '%s' repositories", saved, category)
        return saved
