"""
Service container.
Every long-lived resource (database engine, HTTP client, BigQuery client,
embedding model, job runner) is built once here and closed on shutdown.
"""
import logging
from dataclasses import dataclass

from fastapi import Request

from config import Settings
from db.database import Database
from services.bigquery_service import GHArchiveService
from services.developer_service import DeveloperScoutService
from services.embedding_service import EmbeddingService
from services.gemini_service import GeminiService
from services.github_service import GitHubService
from services.job_runner import JobRunner
from services.search_service import SearchService
from services.sync_service import RepoSyncService
from services.worker_service import WorkerService

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    database: Database
    github: GitHubService
    gharchive: GHArchiveService
    gemini: GeminiService
    embeddings: EmbeddingService
    search: SearchService
    sync: RepoSyncService
    workers: WorkerService
    developers: DeveloperScoutService
    jobs: JobRunner

    @classmethod
    def build(cls, settings: Settings) -> "ServiceContainer":
        database = Database(settings.database_url)
        github = GitHubService(settings)
        gharchive = GHArchiveService(settings)
        gemini = GeminiService(settings)
        embeddings = EmbeddingService(settings.embedding_model)
        return cls(
            settings=settings,
            database=database,
            github=github,
            gharchive=gharchive,
            gemini=gemini,
            embeddings=embeddings,
            search=SearchService(gemini, embeddings),
            sync=RepoSyncService(database, github, gharchive, settings.delays),
            workers=WorkerService(database, github, settings.delays),
            developers=DeveloperScoutService(database, github, settings.delays),
            jobs=JobRunner(),
        )

    async def aclose(self) -> None:
        """Stop running jobs first, then release clients and the pool."""
        await self.jobs.shutdown()
        await self.github.aclose()
        self.gharchive.close()
        await self.database.dispose()
        logger.info("Services closed")


def get_services(request: Request) -> ServiceContainer:
    """FastAPI dependency returning the application's container."""
    return request.app.state.services
