"""
Repository pattern for repository tables.
All writes use PostgreSQL ON CONFLICT upserts or delete-then-insert on child
tables; transaction boundaries belong to the caller's session.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

from sqlalchemy import Text, delete, func, literal, or_, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from models.github_models import RepositorySnapshot, parse_github_datetime, stub_row
from models.schemas import (
    Repository, RepositoryCommit, RepositoryCommitActivity, RepositoryContributor,
    RepositoryLanguage, RepositoryStats,
)

logger = logging.getLogger(__name__)

WORK_QUEUE_FLAGS = ("contributors_fetched", "commit_activity_fetched", "recent_commits_fetched")

# Columns refreshed by an upsert; identity and bookkeeping columns are handled separately
UPSERT_COLUMNS = (
    "name", "full_name", "owner_login", "owner_avatar_url", "description", "html_url",
    "homepage_url", "stars_count", "forks_count", "watchers_count", "open_issues_count",
    "size_kb", "language", "topics", "license_name", "created_at", "updated_at", "pushed_at",
    "is_fork", "is_archived", "is_disabled", "allow_forking", "is_template", "visibility",
    "has_issues", "has_projects", "has_downloads", "has_wiki", "has_pages", "has_discussions",
    "default_branch", "subscribers_count", "network_count",
)


class RepoRef(NamedTuple):
    """Work-queue entry."""
    id: int
    github_id: int
    full_name: str

    @property
    def owner(self) -> str:
        return self.full_name.split("/", 1)[0]

    @property
    def name(self) -> str:
        return self.full_name.split("/", 1)[1]


def contributor_rows(github_id: int, contributors: Sequence[Dict], data_source: str) -> List[Dict]:
    """Rows for repository_contributors, one per contributor id."""
    rows: Dict[int, Dict] = {}
    for c in contributors:
        contributor_id = c.get("id")
        if not contributor_id or contributor_id in rows:
            continue
        rows[contributor_id] = {
            "repo_github_id": github_id,
            "contributor_github_id": contributor_id,
            "login": c.get("login") or "",
            "avatar_url": c.get("avatar_url"),
            "html_url": c.get("html_url"),
            "contributions": c.get("contributions") or 0,
            "type": c.get("type") or "User",
            "data_source": data_source,
        }
    return list(rows.values())


def commit_rows(github_id: int, commits: Sequence[Dict]) -> List[Dict]:
    """Rows for repository_commits from the REST commit list payload."""
    rows: Dict[str, Dict] = {}
    for c in commits:
        sha = c.get("sha")
        if not sha or sha in rows:
            continue
        detail = c.get("commit") or {}
        author = detail.get("author") or {}
        committer = detail.get("committer") or {}
        account = c.get("author") or {}
        stats = c.get("stats") or {}
        rows[sha] = {
            "repo_github_id": github_id,
            "sha": sha,
            "commit_message": detail.get("message"),
            "author_name": author.get("name"),
            "author_email": author.get("email"),
            "author_login": account.get("login"),
            "author_avatar_url": account.get("avatar_url"),
            "committer_name": committer.get("name"),
            "committer_date": parse_github_datetime(committer.get("date")),
            "additions": stats.get("additions") or 0,
            "deletions": stats.get("deletions") or 0,
            "total_changes": stats.get("total") or 0,
            "files_changed": len(c.get("files") or []),
            "html_url": c.get("html_url"),
        }
    return list(rows.values())


def commit_activity_rows(github_id: int, weeks: Sequence[Dict]) -> List[Dict]:
    rows: Dict[int, Dict] = {}
    for week in weeks:
        timestamp = week.get("week")
        if timestamp is None:
            continue
        rows[timestamp] = {
            "repo_github_id": github_id,
            "week_timestamp": timestamp,
            "week_date": datetime.fromtimestamp(timestamp, tz=timezone.utc).date(),
            "total_commits": week.get("total") or 0,
        }
    return list(rows.values())


class RepositoryStore:
    """Database operations for repositories and their child tables."""

    def __init__(self, session: AsyncSession):
        self._session = session

    # ------------------------------------------------------------------
    # Categories and upserts
    # ------------------------------------------------------------------

    async def clear_category(self, category: str) -> int:
        """Remove a category tag from every repository carrying it."""
        tag = literal(category, Text)
        result = await self._session.execute(
            update(Repository)
            .where(Repository.categories.any(category))
            .values(categories=func.array_remove(Repository.categories, tag))
        )
        return result.rowcount or 0

    async def upsert_repository(self, snapshot: RepositorySnapshot, category: str) -> None:
        """
        Insert or refresh a repository and tag it with `category`.
        Other category tags are left alone; a stub is promoted to complete.
        """
        tag = literal(category, Text)
        now = func.clock_timestamp()
        stmt = insert(Repository).values(
            **snapshot.to_row(),
            categories=[category],
            sync_status="complete",
            last_fetched=now,
        )
        set_ = {column: stmt.excluded[column] for column in UPSERT_COLUMNS}
        set_.update({
            "readme_snippet": func.coalesce(stmt.excluded.readme_snippet, Repository.readme_snippet),
            "categories": func.array_append(
                func.array_remove(func.array_remove(Repository.categories, literal("stub", Text)), tag),
                tag,
            ),
            "sync_status": "complete",
            "last_fetched": now,
        })
        await self._session.execute(
            stmt.on_conflict_do_update(index_elements=["github_id"], set_=set_)
        )

    async def hydrate(self, snapshot: RepositorySnapshot) -> None:
        """Fill a stub row with full metadata and mark it complete."""
        row = snapshot.to_row()
        row.pop("github_id")
        if row["readme_snippet"] is None:
            row.pop("readme_snippet")
        await self._session.execute(
            update(Repository)
            .where(Repository.github_id == snapshot.github_id)
            .values(
                **row,
                sync_status="complete",
                categories=func.array_remove(Repository.categories, literal("stub", Text)),
                last_fetched=func.clock_timestamp(),
            )
        )

    async def replace_languages(self, snapshot: RepositorySnapshot) -> None:
        shares = snapshot.language_shares()
        if not shares:
            return
        await self._session.execute(
            delete(RepositoryLanguage).where(RepositoryLanguage.repo_github_id == snapshot.github_id)
        )
        await self._session.execute(
            insert(RepositoryLanguage),
            [
                {
                    "repo_github_id": snapshot.github_id,
                    "language_name": name,
                    "bytes_count": size,
                    "percentage": percentage,
                }
                for name, size, percentage in shares
            ],
        )

    async def upsert_stats(self, stats: Dict) -> None:
        """Insert or update the stats row; work-queue flags are not touched."""
        values = dict(stats)
        stmt = insert(RepositoryStats).values(**values, calculated_at=func.now())
        set_ = {key: stmt.excluded[key] for key in values if key != "repo_github_id"}
        set_["calculated_at"] = func.now()
        await self._session.execute(
            stmt.on_conflict_do_update(index_elements=["repo_github_id"], set_=set_)
        )

    async def mark_fetched(self, github_id: int, flag: str, **extra) -> None:
        """Set a work-queue flag (creating the stats row if needed)."""
        if flag not in WORK_QUEUE_FLAGS:
            raise ValueError(f"Unknown work-queue flag: {flag}")
        values = {flag: True, **extra}
        stmt = insert(RepositoryStats).values(repo_github_id=github_id, **values)
        await self._session.execute(
            stmt.on_conflict_do_update(
                index_elements=["repo_github_id"],
                set_={key: stmt.excluded[key] for key in values},
            )
        )

    # ------------------------------------------------------------------
    # Stubs
    # ------------------------------------------------------------------

    async def find_repository_id(self, full_name: str) -> Optional[int]:
        result = await self._session.execute(
            select(Repository.id).where(Repository.full_name == full_name).limit(1)
        )
        return result.scalar_one_or_none()

    async def ensure_repository(self, node: Dict) -> Optional[int]:
        """
        Internal id for a repository seen in a developer profile.
        Unknown repositories are inserted as stubs pending hydration.
        """
        owner = (node.get("owner") or {}).get("login", "")
        existing = await self.find_repository_id(f"{owner}/{node.get('name')}")
        if existing is not None or not node.get("databaseId"):
            return existing

        result = await self._session.execute(
            insert(Repository)
            .values(**stub_row(node), last_fetched=func.now())
            .on_conflict_do_nothing()
            .returning(Repository.id)
        )
        inserted = result.scalar_one_or_none()
        if inserted is not None:
            return inserted
        result = await self._session.execute(
            select(Repository.id).where(Repository.github_id == node["databaseId"])
        )
        return result.scalar_one_or_none()

    async def list_stubs(self) -> List[RepoRef]:
        result = await self._session.execute(
            select(Repository.id, Repository.github_id, Repository.full_name)
            .where(Repository.sync_status == "stub")
            .order_by(Repository.id)
        )
        return [RepoRef(*row) for row in result.all()]

    async def list_by_stars(self) -> List[RepoRef]:
        """Every repository regardless of sync status, most starred first."""
        result = await self._session.execute(
            select(Repository.id, Repository.github_id, Repository.full_name)
            .order_by(Repository.stars_count.desc(), Repository.id.desc())
        )
        return [RepoRef(*row) for row in result.all()]

    # ------------------------------------------------------------------
    # Work queues
    # ------------------------------------------------------------------

    async def select_work_queue(
        self, flag: str, mode: str = "missing", limit: int = 50, repository_id: Optional[int] = None,
    ) -> List[RepoRef]:
        """
        Repositories to process for one backfill job.

        "missing" picks complete rows whose flag is false or whose stats row is
        absent; "all" picks the top rows by stars regardless of the flag.
        """
        if flag not in WORK_QUEUE_FLAGS:
            raise ValueError(f"Unknown work-queue flag: {flag}")
        stmt = select(Repository.id, Repository.github_id, Repository.full_name)

        if repository_id is not None:
            stmt = stmt.where(Repository.id == repository_id)
        else:
            stmt = stmt.where(Repository.sync_status == "complete")
            if mode == "missing":
                flag_column = getattr(RepositoryStats, flag)
                stmt = stmt.outerjoin(
                    RepositoryStats, RepositoryStats.repo_github_id == Repository.github_id,
                ).where(or_(flag_column.is_(None), flag_column.is_(False)))
            stmt = stmt.order_by(Repository.stars_count.desc(), Repository.id.desc())
            if limit:
                stmt = stmt.limit(limit)

        result = await self._session.execute(stmt)
        return [RepoRef(*row) for row in result.all()]

    async def replace_contributors(self, github_id: int, contributors: Sequence[Dict], data_source: str) -> int:
        rows = contributor_rows(github_id, contributors, data_source)
        await self.mark_fetched(
            github_id, "contributors_fetched",
            contributors_data_type=data_source, contributors_count=len(rows),
        )
        await self._session.execute(
            delete(RepositoryContributor).where(RepositoryContributor.repo_github_id == github_id)
        )
        if rows:
            await self._session.execute(insert(RepositoryContributor), rows)
        return len(rows)

    async def replace_commit_activity(self, github_id: int, weeks: Sequence[Dict]) -> int:
        rows = commit_activity_rows(github_id, weeks)
        await self.mark_fetched(github_id, "commit_activity_fetched")
        await self._session.execute(
            delete(RepositoryCommitActivity).where(RepositoryCommitActivity.repo_github_id == github_id)
        )
        if rows:
            await self._session.execute(insert(RepositoryCommitActivity), rows)
        return len(rows)

    async def replace_commits(self, github_id: int, commits: Sequence[Dict]) -> int:
        rows = commit_rows(github_id, commits)
        await self.mark_fetched(github_id, "recent_commits_fetched")
        await self._session.execute(
            delete(RepositoryCommit).where(RepositoryCommit.repo_github_id == github_id)
        )
        if rows:
            await self._session.execute(insert(RepositoryCommit), rows)
        return len(rows)

    # ------------------------------------------------------------------
    # README queue
    # ------------------------------------------------------------------

    async def list_missing_readmes(self, limit: int = 50) -> List[RepoRef]:
        result = await self._session.execute(
            select(Repository.id, Repository.github_id, Repository.full_name)
            .where(Repository.sync_status == "complete")
            .where(or_(Repository.readme_snippet.is_(None), Repository.readme_snippet == ""))
            .order_by(Repository.last_fetched.asc().nulls_first())
            .limit(limit)
        )
        return [RepoRef(*row) for row in result.all()]

    async def save_readme(self, github_id: int, readme: Optional[str]) -> None:
        """Store a README, or only bump last_fetched so the queue rotates."""
        values = {"last_fetched": func.clock_timestamp()}
        if readme:
            values["readme_snippet"] = readme
        await self._session.execute(
            update(Repository).where(Repository.github_id == github_id).values(**values)
        )

    # ------------------------------------------------------------------
    # Embeddings
    # ------------------------------------------------------------------

    async def list_unembedded(self, limit: int = 50, exclude_ids: Sequence[int] = ()) -> List[Tuple]:
        stmt = (
            select(
                Repository.id, Repository.name, Repository.full_name, Repository.description,
                Repository.topics, Repository.readme_snippet,
            )
            .where(Repository.embedding.is_(None))
            .order_by(Repository.stars_count.desc(), Repository.id)
            .limit(limit)
        )
        if exclude_ids:
            stmt = stmt.where(Repository.id.notin_(list(exclude_ids)))
        result = await self._session.execute(stmt)
        return list(result.all())

    async def save_embedding(self, repository_id: int, vector: Sequence[float]) -> None:
        await self._session.execute(
            update(Repository).where(Repository.id == repository_id).values(embedding=list(vector))
        )

    async def count(self) -> int:
        result = await self._session.execute(select(func.count()).select_from(Repository))
        return result.scalar() or 0
