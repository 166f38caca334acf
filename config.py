"""
Application configuration.
All settings come from environment variables (a .env file is loaded by main.py).
"""
import os
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class Delays:
    """Fixed pauses (seconds) between external calls made by background jobs."""

    graphql_enrichment: float = 0.3
    top_batch: float = 1.0
    rate_limit: float = 60.0
    hydrate: float = 1.0
    contributors: float = 1.5
    search_api: float = 2.0
    commit_activity: float = 2.0
    stats_retry: float = 2.0
    commits: float = 1.0
    readme: float = 1.0
    scout_developer: float = 1.2
    scout_page: float = 2.0

    @classmethod
    def none(cls) -> "Delays":
        """All delays set to zero (used by tests)."""
        return cls(**{name: 0.0 for name in cls.__dataclass_fields__})


@dataclass(frozen=True)
class Settings:
    """Immutable configuration for the GitHop backend."""

    # GitHub API
    github_token: str
    github_api_url: str = "https://api.github.com"
    http_timeout: float = 30.0

    # Database
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "githop"
    db_user: str = "postgres"
    db_password: str = "postgres"
    database_url_override: Optional[str] = None

    # Google services
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.0-flash"
    gemini_fallback_model: str = "gemini-1.5-flash"
    gcp_project_id: Optional[str] = None
    google_credentials: Optional[str] = None

    # Embeddings
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"

    # Server
    port: int = 4000
    sync_data_on_startup: bool = False
    static_dir: str = "public"
    log_level: str = "INFO"

    delays: Delays = field(default_factory=Delays)

    @property
    def github_graphql_url(self) -> str:
        return self.github_api_url.rstrip("/") + "/graphql"

    @property
    def database_url(self) -> str:
        """Generate async SQLAlchemy database URL."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @property
    def bigquery_enabled(self) -> bool:
        return bool(self.gcp_project_id or self.google_credentials)


def _as_bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


def _async_url(url: str) -> str:
    # Hosted Postgres providers hand out sync URLs
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        url = "postgresql+asyncpg://" + url[len("postgresql://"):]
    return url


def load_settings() -> Settings:
    """Load configuration from environment variables."""
    token = os.environ.get("GITHUB_TOKEN")
    if not token:
        raise ValueError("GITHUB_TOKEN environment variable is required")

    api_url = os.environ.get("GITHUB_API_URL", "https://api.github.com")
    # Accept a GraphQL endpoint too; REST calls need the base URL
    if api_url.rstrip("/").endswith("/graphql"):
        api_url = api_url.rstrip("/")[: -len("/graphql")]

    database_url = os.environ.get("DATABASE_URL")

    return Settings(
        github_token=token,
        github_api_url=api_url,
        http_timeout=float(os.environ.get("HTTP_TIMEOUT", "30")),
        db_host=os.environ.get("PGHOST", "localhost"),
        db_port=int(os.environ.get("PGPORT", "5432")),
        db_name=os.environ.get("PGDATABASE", "githop"),
        db_user=os.environ.get("PGUSER", "postgres"),
        db_password=os.environ.get("PGPASSWORD", "postgres"),
        database_url_override=_async_url(database_url) if database_url else None,
        gemini_api_key=os.environ.get("GEMINI_API_KEY") or None,
        gemini_model=os.environ.get("GEMINI_MODEL", "gemini-2.0-flash"),
        gemini_fallback_model=os.environ.get("GEMINI_FALLBACK_MODEL", "gemini-1.5-flash"),
        gcp_project_id=os.environ.get("GCP_PROJECT_ID") or None,
        google_credentials=os.environ.get("GOOGLE_APPLICATION_CREDENTIALS") or None,
        embedding_model=os.environ.get("EMBEDDING_MODEL", "sentence-transformers/all-MiniLM-L6-v2"),
        port=int(os.environ.get("PORT", "4000")),
        sync_data_on_startup=_as_bool(os.environ.get("SYNC_DATA_ON_STARTUP")),
        static_dir=os.environ.get("STATIC_DIR", "public"),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    )
