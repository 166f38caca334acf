"""
Read-side queries for the HTTP API.
Rows are returned as plain dicts; the embedding column is never selected.
"""
import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import Integer, exists, func, or_, select, tuple_
from sqlalchemy.ext.asyncio import AsyncSession

from models.pydantic_models import PERSONA_KEYS
from models.schemas import (
    Developer, DeveloperTopRepo, Repository, RepositoryCommit, RepositoryCommitActivity,
    RepositoryContributor, RepositoryLanguage, RepositoryStats,
)
from utils.pagination import decode_cursor, next_cursor

logger = logging.getLogger(__name__)

REPOSITORY_COLUMNS = tuple(c for c in Repository.__table__.columns if c.name != "embedding")

LIST_STATS_COLUMNS = (
    RepositoryStats.days_since_last_commit, RepositoryStats.activity_score,
    RepositoryStats.health_score, RepositoryStats.commits_last_year,
    RepositoryStats.latest_release_tag, RepositoryStats.total_releases,
    RepositoryStats.stars_growth_7d, RepositoryStats.stars_growth_30d,
    RepositoryStats.stars_growth_90d,
)

DETAIL_STATS_COLUMNS = LIST_STATS_COLUMNS + (
    RepositoryStats.commits_last_month, RepositoryStats.issues_closed_last_month,
    RepositoryStats.pull_requests_merged_last_month, RepositoryStats.forks_growth_30d,
    RepositoryStats.contributors_count, RepositoryStats.avg_issue_close_time_days,
    RepositoryStats.avg_pr_merge_time_days, RepositoryStats.latest_release_date,
    RepositoryStats.days_since_last_release, RepositoryStats.contributors_data_type,
)

# source parameter -> (category tag, growth column used for ordering)
REPO_SOURCES = {
    "top": ("top", None),
    "tops": ("top", None),
    "growings": ("growing", None),
    "trendings": ("trending", None),
    "trending_weekly": ("trending_weekly", RepositoryStats.stars_growth_7d),
    "trending_monthly": ("trending_monthly", RepositoryStats.stars_growth_30d),
    "trending_quarterly": ("trending_quarterly", RepositoryStats.stars_growth_90d),
}

DEVELOPER_TYPES = {
    "top": Developer.is_hall_of_fame,
    "expert": Developer.is_trending_expert,
    "rising": Developer.is_rising_star,
    "badge": Developer.is_badge_holder,
}

FILTER_LIMIT = 100
DEVELOPERS_DEFAULT_LIMIT = 50
DEVELOPERS_MAX_LIMIT = 500
TOP_DEFAULT_LIMIT = 30
TOP_MAX_LIMIT = 1000
COMMITS_DEFAULT_LIMIT = 15
COMMITS_MAX_LIMIT = 50

Page = Tuple[List[Dict], Optional[str], bool]


def clamp_limit(value: Optional[int], default: int, maximum: int) -> int:
    if not value or value < 1:
        return default
    return min(value, maximum)


def _repository_listing(*stats_columns):
    return (
        select(*REPOSITORY_COLUMNS, *stats_columns)
        .select_from(Repository)
        .outerjoin(RepositoryStats, RepositoryStats.repo_github_id == Repository.github_id)
    )


# ============================================================================
# REPOSITORY QUERIES
# ============================================================================

def build_filter_query(
    q: Optional[str] = None,
    language: Optional[str] = None,
    topic: Optional[str] = None,
    min_stars: int = 0,
    sort_by: Optional[str] = None,
    source: Optional[str] = None,
):
    """Statement behind GET /api/repos/filter."""
    stmt = _repository_listing(*LIST_STATS_COLUMNS).where(Repository.stars_count >= (min_stars or 0))
    if q:
        pattern = f"%{q}%"
        stmt = stmt.where(or_(Repository.name.ilike(pattern), Repository.description.ilike(pattern)))
    if language:
        stmt = stmt.where(Repository.language == language)
    if topic:
        stmt = stmt.where(Repository.topics.any(topic))

    growth_column = None
    if source:
        if source not in REPO_SOURCES:
            raise ValueError(f"Unknown source: {source}")
        category, growth_column = REPO_SOURCES[source]
        stmt = stmt.where(Repository.categories.any(category))

    if growth_column is not None:
        order = [growth_column.desc().nulls_last(), Repository.stars_count.desc()]
    elif sort_by == "newest":
        order = [Repository.created_at.desc().nulls_last(), Repository.stars_count.desc()]
    elif sort_by == "updated":
        order = [Repository.updated_at.desc().nulls_last(), Repository.stars_count.desc()]
    else:
        order = [Repository.stars_count.desc()]
    return stmt.order_by(*order, Repository.id.desc()).limit(FILTER_LIMIT)


def build_top_query(limit: int, after: Optional[Dict[str, int]] = None):
    """Keyset page of the `top` category ordered by (stars, id) descending."""
    stmt = _repository_listing(*LIST_STATS_COLUMNS).where(Repository.categories.any("top"))
    if after is not None:
        stmt = stmt.where(tuple_(Repository.stars_count, Repository.id) < tuple_(after["stars"], after["id"]))
    return stmt.order_by(Repository.stars_count.desc(), Repository.id.desc()).limit(limit + 1)


class RepositoryQueries:
    """Repository reads over one request-scoped session."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _rows(self, stmt) -> List[Dict]:
        result = await self._session.execute(stmt)
        return [dict(row._mapping) for row in result]

    async def _github_id(self, repo_id: int) -> Optional[int]:
        result = await self._session.execute(select(Repository.github_id).where(Repository.id == repo_id))
        return result.scalar_one_or_none()

    async def filter(self, **params) -> List[Dict]:
        return await self._rows(build_filter_query(**params))

    async def top(
        self,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
        last_stars: Optional[int] = None,
        last_id: Optional[int] = None,
    ) -> Page:
        limit = clamp_limit(limit, TOP_DEFAULT_LIMIT, TOP_MAX_LIMIT)
        after = decode_cursor(cursor, ("stars", "id"))
        if after is None and last_stars is not None and last_id is not None:
            after = {"stars": last_stars, "id": last_id}

        rows = await self._rows(build_top_query(limit, after))
        has_more = len(rows) > limit
        rows = rows[:limit]
        return rows, next_cursor(rows, has_more, {"stars": "stars_count", "id": "id"}), has_more

    async def by_category(self, category: str) -> List[Dict]:
        stmt = (
            _repository_listing(*LIST_STATS_COLUMNS)
            .where(Repository.categories.any(category))
            .order_by(Repository.stars_count.desc(), Repository.id.desc())
        )
        return await self._rows(stmt)

    async def by_full_name(self, full_name: str) -> Optional[Dict]:
        stmt = (
            _repository_listing(RepositoryStats.health_score, RepositoryStats.activity_score)
            .where(Repository.full_name == full_name)
            .limit(1)
        )
        rows = await self._rows(stmt)
        return rows[0] if rows else None

    async def details(self, repo_id: int) -> Optional[Dict]:
        rows = await self._rows(_repository_listing(*DETAIL_STATS_COLUMNS).where(Repository.id == repo_id))
        if not rows:
            return None
        repository = rows[0]
        repository["languages"] = await self._rows(
            select(
                RepositoryLanguage.language_name, RepositoryLanguage.bytes_count,
                RepositoryLanguage.percentage,
            )
            .where(RepositoryLanguage.repo_github_id == repository["github_id"])
            .order_by(RepositoryLanguage.percentage.desc())
        )
        return repository

    async def contributors(self, repo_id: int) -> Optional[List[Dict]]:
        github_id = await self._github_id(repo_id)
        if github_id is None:
            return None
        return await self._rows(
            select(
                RepositoryContributor.login, RepositoryContributor.avatar_url,
                RepositoryContributor.html_url, RepositoryContributor.contributions,
                RepositoryContributor.data_source,
            )
            .where(RepositoryContributor.repo_github_id == github_id)
            .order_by(RepositoryContributor.contributions.desc())
        )

    async def commit_activity(self, repo_id: int) -> Optional[List[Dict]]:
        github_id = await self._github_id(repo_id)
        if github_id is None:
            return None
        return await self._rows(
            select(RepositoryCommitActivity.week_date, RepositoryCommitActivity.total_commits)
            .where(RepositoryCommitActivity.repo_github_id == github_id)
            .order_by(RepositoryCommitActivity.week_date.asc())
        )

    async def commits(self, repo_id: int, limit: Optional[int] = None) -> Optional[List[Dict]]:
        github_id = await self._github_id(repo_id)
        if github_id is None:
            return None
        columns = [c for c in RepositoryCommit.__table__.columns if c.name not in ("id", "repo_github_id")]
        return await self._rows(
            select(*columns)
            .where(RepositoryCommit.repo_github_id == github_id)
            .order_by(RepositoryCommit.committer_date.desc().nulls_last())
            .limit(clamp_limit(limit, COMMITS_DEFAULT_LIMIT, COMMITS_MAX_LIMIT))
        )

    async def readme(self, repo_id: int) -> Tuple[bool, Optional[str]]:
        """(exists, readme_snippet) for the summary endpoint."""
        result = await self._session.execute(
            select(Repository.id, Repository.readme_snippet).where(Repository.id == repo_id)
        )
        row = result.first()
        if row is None:
            return False, None
        return True, row.readme_snippet

    async def stats(self) -> Dict[str, int]:
        result = await self._session.execute(
            select(func.count(Repository.id), func.coalesce(func.sum(Repository.stars_count), 0))
        )
        total, stars = result.one()
        return {"totalRepositories": int(total or 0), "totalStars": int(stars or 0)}


# ============================================================================
# DEVELOPER QUERIES
# ============================================================================

DEVELOPER_COLUMNS = tuple(Developer.__table__.columns)


def build_developers_query(
    limit: int,
    type: str = "all",
    language: Optional[str] = None,
    persona: Optional[str] = None,
    badge: Optional[str] = None,
    q: Optional[str] = None,
    after: Optional[Dict[str, int]] = None,
):
    """Keyset page of developers ordered by (followers, id) descending."""
    stmt = select(*DEVELOPER_COLUMNS)
    if type in DEVELOPER_TYPES:
        stmt = stmt.where(DEVELOPER_TYPES[type].is_(True))
    elif type != "all":
        raise ValueError(f"Unknown developer type: {type}")

    if language:
        stmt = stmt.where(Developer.dominant_language == language)
    if persona:
        if persona not in PERSONA_KEYS:
            raise ValueError(f"Unknown persona: {persona}")
        stmt = stmt.where(Developer.personas[persona].astext.cast(Integer) > 0)
    if badge:
        element = func.jsonb_array_elements(Developer.badges).table_valued("value").alias("b")
        stmt = stmt.where(
            exists(
                select(1)
                .select_from(element)
                .where(or_(
                    func.lower(element.c.value.op("->>")("type")) == badge.lower(),
                    func.lower(element.c.value.op("->>")("category")) == badge.lower(),
                ))
            )
        )
    if q:
        pattern = f"%{q}%"
        stmt = stmt.where(or_(
            Developer.login.ilike(pattern), Developer.name.ilike(pattern), Developer.bio.ilike(pattern),
        ))
    if after is not None:
        stmt = stmt.where(
            tuple_(func.coalesce(Developer.followers_count, 0), Developer.id)
            < tuple_(after["followers"], after["id"])
        )
    return stmt.order_by(
        func.coalesce(Developer.followers_count, 0).desc(), Developer.id.desc(),
    ).limit(limit + 1)


class DeveloperQueries:
    """Developer reads over one request-scoped session."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _attach_top_repos(self, developers: List[Dict]) -> None:
        if not developers:
            return
        result = await self._session.execute(
            select(DeveloperTopRepo)
            .where(DeveloperTopRepo.developer_id.in_([d["id"] for d in developers]))
            .order_by(DeveloperTopRepo.stars_count.desc())
        )
        by_developer: Dict[int, List[Dict]] = {}
        for repo in result.scalars():
            by_developer.setdefault(repo.developer_id, []).append({
                "name": repo.name,
                "url": repo.html_url,
                "description": repo.description,
                "stars": repo.stars_count,
                "language": repo.language,
                "is_primary": repo.is_primary,
            })
        for developer in developers:
            developer["top_repos"] = by_developer.get(developer["id"], [])

    async def list(self, limit: Optional[int] = None, cursor: Optional[str] = None, **filters) -> Page:
        limit = clamp_limit(limit, DEVELOPERS_DEFAULT_LIMIT, DEVELOPERS_MAX_LIMIT)
        after = decode_cursor(cursor, ("followers", "id"))
        result = await self._session.execute(build_developers_query(limit, after=after, **filters))
        rows = [dict(row._mapping) for row in result]

        has_more = len(rows) > limit
        rows = rows[:limit]
        for row in rows:
            row["followers_count"] = row.get("followers_count") or 0
        await self._attach_top_repos(rows)
        return rows, next_cursor(rows, has_more, {"followers": "followers_count", "id": "id"}), has_more

    async def details(self, login: str) -> Optional[Dict]:
        result = await self._session.execute(select(*DEVELOPER_COLUMNS).where(Developer.login == login))
        row = result.first()
        if row is None:
            return None
        developer = dict(row._mapping)
        await self._attach_top_repos([developer])
        return developer
