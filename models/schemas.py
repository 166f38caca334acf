"""
SQLAlchemy models for the GitHop PostgreSQL schema.
Repositories and their child tables are keyed by the GitHub numeric id;
developer JSON fields are JSONB and written through models.pydantic_models.
"""
from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    BigInteger, Boolean, Column, Date, DateTime, ForeignKey, Index, Integer,
    Numeric, Text, UniqueConstraint, func, literal_column, text,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB

from db.database import Base

EMBEDDING_DIMENSIONS = 384


class Repository(Base):
    __tablename__ = "repositories"

    id = Column(Integer, primary_key=True)
    github_id = Column(BigInteger, unique=True, nullable=False)
    name = Column(Text, nullable=False)
    full_name = Column(Text, unique=True, nullable=False)
    owner_login = Column(Text, nullable=False)
    owner_avatar_url = Column(Text)
    description = Column(Text)
    html_url = Column(Text)
    homepage_url = Column(Text)

    stars_count = Column(Integer, nullable=False, server_default="0")
    forks_count = Column(Integer, nullable=False, server_default="0")
    watchers_count = Column(Integer, nullable=False, server_default="0")
    open_issues_count = Column(Integer, nullable=False, server_default="0")
    size_kb = Column(Integer, server_default="0")
    subscribers_count = Column(Integer, server_default="0")
    network_count = Column(Integer, server_default="0")

    language = Column(Text)
    topics = Column(ARRAY(Text), server_default=text("'{}'"))
    license_name = Column(Text)
    readme_snippet = Column(Text)
    embedding = Column(Vector(EMBEDDING_DIMENSIONS))

    created_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True))
    pushed_at = Column(DateTime(timezone=True))

    is_fork = Column(Boolean, server_default="false")
    is_archived = Column(Boolean, server_default="false")
    is_disabled = Column(Boolean, server_default="false")
    allow_forking = Column(Boolean, server_default="true")
    is_template = Column(Boolean, server_default="false")
    visibility = Column(Text, server_default="public")
    has_issues = Column(Boolean, server_default="true")
    has_projects = Column(Boolean, server_default="true")
    has_downloads = Column(Boolean, server_default="true")
    has_wiki = Column(Boolean, server_default="true")
    has_pages = Column(Boolean, server_default="false")
    has_discussions = Column(Boolean, server_default="false")
    default_branch = Column(Text, server_default="main")

    last_fetched = Column(DateTime(timezone=True), server_default=func.now())
    last_synced_at = Column(DateTime(timezone=True), server_default=func.now())
    sync_status = Column(Text, nullable=False, server_default="complete")
    categories = Column(ARRAY(Text), nullable=False, server_default=text("'{}'"))

    __table_args__ = (
        Index("idx_repos_stars", "stars_count"),
        Index("idx_repos_language", "language"),
        Index("idx_repos_sync_status", "sync_status"),
        Index("idx_repos_categories", "categories", postgresql_using="gin"),
        Index(
            "idx_repos_embedding",
            "embedding",
            postgresql_using="hnsw",
            postgresql_with={"m": 16, "ef_construction": 64},
            postgresql_ops={"embedding": "vector_cosine_ops"},
        ),
    )


Index(
    "idx_repos_readme_search",
    func.to_tsvector(literal_column("'english'::regconfig"), Repository.readme_snippet),
    postgresql_using="gin",
)


class RepositoryStats(Base):
    __tablename__ = "repository_stats"

    id = Column(Integer, primary_key=True)
    repo_github_id = Column(
        BigInteger, ForeignKey("repositories.github_id", ondelete="CASCADE"),
        unique=True, nullable=False,
    )

    commits_last_month = Column(Integer, server_default="0")
    commits_last_year = Column(Integer, server_default="0")
    issues_closed_last_month = Column(Integer, server_default="0")
    pull_requests_merged_last_month = Column(Integer, server_default="0")

    stars_growth_7d = Column(Integer)
    stars_growth_30d = Column(Integer)
    stars_growth_90d = Column(Integer)
    forks_growth_30d = Column(Integer)
    contributors_count = Column(Integer, server_default="0")

    activity_score = Column(Numeric(10, 2), server_default="0")
    health_score = Column(Numeric(5, 2), server_default="0")
    avg_issue_close_time_days = Column(Numeric(10, 2))
    avg_pr_merge_time_days = Column(Numeric(10, 2))

    days_since_last_commit = Column(Integer)
    days_since_last_release = Column(Integer)
    latest_release_tag = Column(Text)
    latest_release_date = Column(DateTime(timezone=True))
    total_releases = Column(Integer, server_default="0")

    contributors_data_type = Column(Text, server_default="all_time")
    commit_activity_fetched = Column(Boolean, nullable=False, server_default="false")
    recent_commits_fetched = Column(Boolean, nullable=False, server_default="false")
    contributors_fetched = Column(Boolean, nullable=False, server_default="false")

    calculated_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_stats_activity", "activity_score"),
        Index("idx_stats_growth_7d", "stars_growth_7d"),
    )


class RepositoryLanguage(Base):
    __tablename__ = "repository_languages"

    id = Column(Integer, primary_key=True)
    repo_github_id = Column(
        BigInteger, ForeignKey("repositories.github_id", ondelete="CASCADE"), nullable=False,
    )
    language_name = Column(Text, nullable=False)
    bytes_count = Column(BigInteger, nullable=False, server_default="0")
    percentage = Column(Numeric(5, 2))

    __table_args__ = (
        UniqueConstraint("repo_github_id", "language_name", name="uq_repo_language"),
    )


class RepositoryContributor(Base):
    __tablename__ = "repository_contributors"

    id = Column(Integer, primary_key=True)
    repo_github_id = Column(
        BigInteger, ForeignKey("repositories.github_id", ondelete="CASCADE"), nullable=False,
    )
    contributor_github_id = Column(BigInteger, nullable=False)
    login = Column(Text, nullable=False)
    avatar_url = Column(Text)
    html_url = Column(Text)
    contributions = Column(Integer, nullable=False, server_default="0")
    type = Column(Text, server_default="User")
    data_source = Column(Text, server_default="all_time")
    fetched_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("repo_github_id", "contributor_github_id", name="uq_repo_contributor"),
        Index("idx_contributors_repo", "repo_github_id", "contributions"),
    )


class RepositoryCommitActivity(Base):
    __tablename__ = "repository_commit_activity"

    id = Column(Integer, primary_key=True)
    repo_github_id = Column(
        BigInteger, ForeignKey("repositories.github_id", ondelete="CASCADE"), nullable=False,
    )
    week_timestamp = Column(BigInteger, nullable=False)
    week_date = Column(Date, nullable=False)
    total_commits = Column(Integer, nullable=False, server_default="0")

    __table_args__ = (
        UniqueConstraint("repo_github_id", "week_timestamp", name="uq_repo_week"),
    )


class RepositoryCommit(Base):
    __tablename__ = "repository_commits"

    id = Column(Integer, primary_key=True)
    repo_github_id = Column(
        BigInteger, ForeignKey("repositories.github_id", ondelete="CASCADE"), nullable=False,
    )
    sha = Column(Text, nullable=False)
    commit_message = Column(Text)
    author_name = Column(Text)
    author_email = Column(Text)
    author_login = Column(Text)
    author_avatar_url = Column(Text)
    committer_name = Column(Text)
    committer_date = Column(DateTime(timezone=True))
    additions = Column(Integer, server_default="0")
    deletions = Column(Integer, server_default="0")
    total_changes = Column(Integer, server_default="0")
    files_changed = Column(Integer, server_default="0")
    html_url = Column(Text)

    __table_args__ = (
        UniqueConstraint("repo_github_id", "sha", name="uq_repo_commit"),
        Index("idx_commits_repo_date", "repo_github_id", "committer_date"),
    )


class Developer(Base):
    __tablename__ = "developers"

    id = Column(Integer, primary_key=True)
    github_id = Column(BigInteger, unique=True, nullable=False)
    login = Column(Text, unique=True, nullable=False)
    name = Column(Text)
    avatar_url = Column(Text)
    bio = Column(Text)
    company = Column(Text)
    location = Column(Text)
    blog_url = Column(Text)
    twitter_username = Column(Text)

    followers_count = Column(Integer, server_default="0")
    following_count = Column(Integer, server_default="0")
    public_repos_count = Column(Integer, server_default="0")
    created_at = Column(DateTime(timezone=True))
    is_organization = Column(Boolean, server_default="false")

    total_stars_earned = Column(Integer, server_default="0")
    years_active = Column(Integer, server_default="0")
    dominant_language = Column(Text)
    velocity_score = Column(Numeric(12, 2), server_default="0")
    scout_source = Column(Text)

    badges = Column(JSONB, server_default=text("'[]'::jsonb"))
    personas = Column(JSONB, server_default=text("'{}'::jsonb"))
    language_expertise = Column(JSONB, server_default=text("'{}'::jsonb"))
    contributed_repos = Column(JSONB, server_default=text("'[]'::jsonb"))
    current_work = Column(JSONB)
    primary_work = Column(JSONB)

    is_hall_of_fame = Column(Boolean, nullable=False, server_default="false")
    is_trending_expert = Column(Boolean, nullable=False, server_default="false")
    is_rising_star = Column(Boolean, nullable=False, server_default="false")
    is_badge_holder = Column(Boolean, nullable=False, server_default="false")

    last_fetched = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_devs_followers", "followers_count"),
        Index("idx_devs_total_stars", "total_stars_earned"),
        Index("idx_devs_personas", "personas", postgresql_using="gin"),
        Index("idx_devs_badges", "badges", postgresql_using="gin"),
        Index("idx_devs_current_work", "current_work", postgresql_using="gin"),
        Index("idx_devs_primary_work", "primary_work", postgresql_using="gin"),
        Index(
            "idx_devs_login_trgm", "login",
            postgresql_using="gin", postgresql_ops={"login": "gin_trgm_ops"},
        ),
        Index(
            "idx_devs_name_trgm", "name",
            postgresql_using="gin", postgresql_ops={"name": "gin_trgm_ops"},
        ),
    )


class DeveloperTopRepo(Base):
    __tablename__ = "developer_top_repos"

    id = Column(Integer, primary_key=True)
    developer_id = Column(Integer, ForeignKey("developers.id", ondelete="CASCADE"), nullable=False)
    name = Column(Text, nullable=False)
    html_url = Column(Text)
    description = Column(Text)
    stars_count = Column(Integer, server_default="0")
    language = Column(Text)
    is_primary = Column(Boolean, server_default="false")

    __table_args__ = (
        UniqueConstraint("developer_id", "name", name="uq_developer_top_repo"),
    )
