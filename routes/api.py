"""
API routes.
Sync and worker triggers start background jobs and return 202 with a job id;
read endpoints query PostgreSQL through request-scoped sessions.
"""
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from models.pydantic_models import (
    FetchDeveloperRequest, JobAcceptedResponse, JobInfo, StatsResponse, SummaryResponse,
)
from services.container import ServiceContainer, get_services
from services.developer_service import MISSIONS
from services.query_service import DeveloperQueries, RepositoryQueries
from services.sync_service import GH_ARCHIVE_PERIODS
from services.worker_service import MODES
from utils.pagination import InvalidCursor

logger = logging.getLogger(__name__)

router = APIRouter()
# Legacy trigger paths served outside the /api prefix
root_router = APIRouter()


def get_repository_queries(db: AsyncSession = Depends(get_db)) -> RepositoryQueries:
    return RepositoryQueries(db)


def get_developer_queries(db: AsyncSession = Depends(get_db)) -> DeveloperQueries:
    return DeveloperQueries(db)


def start_job(services: ServiceContainer, name: str, factory: Callable[[], Awaitable[object]]) -> JobAcceptedResponse:
    job = services.jobs.submit(name, factory)
    return JobAcceptedResponse(message=f"{name} started in background", job_id=job.id)


def _check_mode(mode: str) -> None:
    if mode not in MODES:
        raise HTTPException(status_code=400, detail=f"mode must be one of: {', '.join(MODES)}")


# ============================================================================
# SYNC TRIGGERS
# ============================================================================

@root_router.post("/fetch-growing", status_code=202, response_model=JobAcceptedResponse)
async def fetch_growing(services: ServiceContainer = Depends(get_services)):
    return start_job(services, "growing sync", services.sync.sync_growing)


@root_router.post("/fetch-trending", status_code=202, response_model=JobAcceptedResponse)
async def fetch_trending(services: ServiceContainer = Depends(get_services)):
    return start_job(services, "trending sync", services.sync.sync_trending)


@router.post("/sync/quick", status_code=202, response_model=JobAcceptedResponse)
async def sync_quick(services: ServiceContainer = Depends(get_services)):
    """Top 300 repositories by stars."""
    return start_job(services, "quick sync", services.sync.sync_quick)


@router.post("/sync/comprehensive", status_code=202, response_model=JobAcceptedResponse)
async def sync_comprehensive(services: ServiceContainer = Depends(get_services)):
    """Top 1000 repositories by stars."""
    return start_job(services, "comprehensive sync", services.sync.sync_comprehensive)


@router.post("/sync/gharchive/{period}", status_code=202, response_model=JobAcceptedResponse)
async def sync_gharchive(period: str, services: ServiceContainer = Depends(get_services)):
    """Star-event trends over the last week, month or quarter."""
    if period not in GH_ARCHIVE_PERIODS:
        raise HTTPException(
            status_code=400,
            detail=f"period must be one of: {', '.join(GH_ARCHIVE_PERIODS)}",
        )
    return start_job(services, f"gharchive {period} sync", lambda: services.sync.sync_gharchive(period))


# ============================================================================
# DEVELOPERS & WORKERS
# ============================================================================

@router.post("/developers/fetch")
async def fetch_developer(
    request: FetchDeveloperRequest,
    services: ServiceContainer = Depends(get_services),
):
    """Analyze one developer synchronously."""
    if not request.username or not request.username.strip():
        raise HTTPException(status_code=400, detail="Username is required")
    username = request.username.strip()
    try:
        saved = await services.developers.fetch_specific_developer(username)
        return {"message": f"Developer {username} processed", "username": username, "saved": saved}
    except Exception:
        logger.exception("Manual fetch failed for %s", username)
        raise HTTPException(status_code=500, detail="Failed to fetch developer")


@router.post("/workers/scout", status_code=202, response_model=JobAcceptedResponse)
async def scout_developers(
    mission: Optional[str] = None,
    services: ServiceContainer = Depends(get_services),
):
    if mission is not None and mission not in MISSIONS:
        raise HTTPException(status_code=400, detail=f"mission must be one of: {', '.join(MISSIONS)}")
    name = f"developer scout ({mission or 'all missions'})"
    return start_job(services, name, lambda: services.developers.run_mission(mission))


@router.post("/workers/update-contributors", status_code=202, response_model=JobAcceptedResponse)
async def update_contributors(mode: str = "missing", services: ServiceContainer = Depends(get_services)):
    _check_mode(mode)
    return start_job(services, f"contributors ({mode})", lambda: services.workers.update_contributors(mode))


@router.post("/workers/update-commit-activity", status_code=202, response_model=JobAcceptedResponse)
async def update_commit_activity(mode: str = "missing", services: ServiceContainer = Depends(get_services)):
    _check_mode(mode)
    return start_job(services, f"commit activity ({mode})", lambda: services.workers.update_commit_activity(mode))


@router.post("/workers/update-recent-activity", status_code=202, response_model=JobAcceptedResponse)
async def update_recent_activity(mode: str = "missing", services: ServiceContainer = Depends(get_services)):
    _check_mode(mode)
    return start_job(services, f"recent commits ({mode})", lambda: services.workers.update_recent_commits(mode))


@router.post("/workers/update-readmes", status_code=202, response_model=JobAcceptedResponse)
async def update_readmes(services: ServiceContainer = Depends(get_services)):
    return start_job(services, "readmes", services.workers.update_missing_readmes)


@router.post("/workers/hydrate-stubs", status_code=202, response_model=JobAcceptedResponse)
async def hydrate_stubs(services: ServiceContainer = Depends(get_services)):
    return start_job(services, "stub hydration", services.workers.hydrate_stubs)


@router.post("/workers/embed", status_code=202, response_model=JobAcceptedResponse)
async def embed_repositories(services: ServiceContainer = Depends(get_services)):
    return start_job(services, "embeddings", lambda: services.embeddings.embed_repositories(services.database))


@router.post("/workers/run-all", status_code=202, response_model=JobAcceptedResponse)
async def run_all_workers(mode: str = "missing", services: ServiceContainer = Depends(get_services)):
    """Hydrate stubs, then every backfill job in sequence."""
    _check_mode(mode)
    return start_job(services, f"all workers ({mode})", lambda: services.workers.run_all_jobs(force_all=mode == "all"))


@router.post("/workers/runByOrder", status_code=202, response_model=JobAcceptedResponse)
async def run_by_order(services: ServiceContainer = Depends(get_services)):
    return start_job(services, "contributors by stars", services.workers.run_repos_one_by_one)


# ============================================================================
# JOBS
# ============================================================================

@router.get("/jobs", response_model=List[JobInfo])
async def list_jobs(services: ServiceContainer = Depends(get_services)):
    return [job.to_info() for job in services.jobs.list()]


@router.delete("/jobs/{job_id}")
async def cancel_job(job_id: str, services: ServiceContainer = Depends(get_services)):
    try:
        cancelled = services.jobs.cancel(job_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Job not found")
    return {"id": job_id, "cancelled": cancelled}


# ============================================================================
# DEVELOPER READS
# ============================================================================

@router.get("/developers")
async def list_developers(
    type: str = "all",
    language: Optional[str] = None,
    persona: Optional[str] = None,
    badge: Optional[str] = None,
    q: Optional[str] = None,
    limit: Optional[int] = None,
    cursor: Optional[str] = None,
    queries: DeveloperQueries = Depends(get_developer_queries),
):
    """Developers by followers, keyset-paginated with an opaque cursor."""
    try:
        rows, next_cursor, has_more = await queries.list(
            limit=limit, cursor=cursor, type=type, language=language,
            persona=persona, badge=badge, q=q,
        )
        return {"data": rows, "nextCursor": next_cursor, "hasMore": has_more}
    except (InvalidCursor, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("Error fetching developers")
        raise HTTPException(status_code=500, detail="Failed to fetch developers")


@router.get("/developers/{login}/details")
async def developer_details(login: str, queries: DeveloperQueries = Depends(get_developer_queries)):
    try:
        developer = await queries.details(login)
    except Exception:
        logger.exception("Error fetching developer %s", login)
        raise HTTPException(status_code=500, detail="Failed to fetch developer details")
    if developer is None:
        raise HTTPException(status_code=404, detail="Developer not found")
    return developer


# ============================================================================
# REPOSITORY READS
# ============================================================================

@router.get("/repos/filter")
async def filter_repositories(
    q: Optional[str] = None,
    language: Optional[str] = None,
    topic: Optional[str] = None,
    min_stars: int = Query(0, ge=0),
    sort_by: Optional[str] = None,
    source: Optional[str] = None,
    queries: RepositoryQueries = Depends(get_repository_queries),
):
    try:
        rows = await queries.filter(
            q=q, language=language, topic=topic, min_stars=min_stars, sort_by=sort_by, source=source,
        )
        return {"data": rows}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("Repository filter failed")
        raise HTTPException(status_code=500, detail="Search failed")


@router.get("/repos/top")
async def top_repositories(
    limit: Optional[int] = None,
    cursor: Optional[str] = None,
    lastStars: Optional[int] = None,
    lastId: Optional[int] = None,
    queries: RepositoryQueries = Depends(get_repository_queries),
):
    try:
        rows, next_cursor, has_more = await queries.top(limit, cursor, lastStars, lastId)
        return {"data": rows, "nextCursor": next_cursor, "hasMore": has_more}
    except InvalidCursor as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("Error fetching top repositories")
        raise HTTPException(status_code=500, detail="Failed to fetch repositories")


@router.get("/growings-database")
async def growing_repositories(queries: RepositoryQueries = Depends(get_repository_queries)):
    try:
        return {"data": await queries.by_category("growing")}
    except Exception:
        logger.exception("Error fetching growing repositories")
        raise HTTPException(status_code=500, detail="Failed to fetch repositories")


@router.get("/trendings-database")
async def trending_repositories(queries: RepositoryQueries = Depends(get_repository_queries)):
    try:
        return {"data": await queries.by_category("trending")}
    except Exception:
        logger.exception("Error fetching trending repositories")
        raise HTTPException(status_code=500, detail="Failed to fetch repositories")


@router.get("/repos/search")
async def search_repository(
    full_name: Optional[str] = None,
    queries: RepositoryQueries = Depends(get_repository_queries),
):
    if not full_name:
        raise HTTPException(status_code=400, detail="full_name parameter is required")
    try:
        repository = await queries.by_full_name(full_name)
    except Exception:
        logger.exception("Error searching repository %s", full_name)
        raise HTTPException(status_code=500, detail="Failed to search repository")
    if repository is None:
        raise HTTPException(status_code=404, detail="Repository not found")
    return repository


@router.get("/repos/semantic-search")
async def semantic_search(
    q: Optional[str] = None,
    services: ServiceContainer = Depends(get_services),
    db: AsyncSession = Depends(get_db),
):
    """Natural-language search: Gemini intent + vector similarity."""
    if not q or not q.strip():
        raise HTTPException(status_code=400, detail="q parameter is required")
    try:
        intent, rows = await services.search.search(db, q.strip())
        return {"intent": intent.model_dump(), "data": rows}
    except Exception:
        logger.exception("Semantic search failed for %r", q)
        raise HTTPException(status_code=500, detail="Semantic search failed")


@router.get("/repos/{repo_id}/details")
async def repository_details(repo_id: int, queries: RepositoryQueries = Depends(get_repository_queries)):
    try:
        repository = await queries.details(repo_id)
    except Exception:
        logger.exception("Error fetching repository %s", repo_id)
        raise HTTPException(status_code=500, detail="Failed to fetch repository details")
    if repository is None:
        raise HTTPException(status_code=404, detail="Repository not found")
    return repository


async def _child_rows(name: str, repo_id: int, fetch: Callable[[], Awaitable[Optional[List[Dict]]]]):
    try:
        rows = await fetch()
    except Exception:
        logger.exception("Error fetching %s for repository %s", name, repo_id)
        raise HTTPException(status_code=500, detail=f"Failed to fetch {name}")
    if rows is None:
        raise HTTPException(status_code=404, detail="Repository not found")
    return rows


@router.get("/repos/{repo_id}/contributors")
async def repository_contributors(repo_id: int, queries: RepositoryQueries = Depends(get_repository_queries)):
    return await _child_rows("contributors", repo_id, lambda: queries.contributors(repo_id))


@router.get("/repos/{repo_id}/commit-activity")
async def repository_commit_activity(repo_id: int, queries: RepositoryQueries = Depends(get_repository_queries)):
    return await _child_rows("commit activity", repo_id, lambda: queries.commit_activity(repo_id))


@router.get("/repos/{repo_id}/commits")
async def repository_commits(
    repo_id: int,
    limit: Optional[int] = None,
    queries: RepositoryQueries = Depends(get_repository_queries),
):
    return await _child_rows("commits", repo_id, lambda: queries.commits(repo_id, limit))


@router.get("/repos/{repo_id}/summary", response_model=SummaryResponse)
async def repository_summary(
    repo_id: int,
    services: ServiceContainer = Depends(get_services),
    queries: RepositoryQueries = Depends(get_repository_queries),
):
    """One-sentence Gemini summary of the stored README."""
    try:
        found, readme = await queries.readme(repo_id)
        if not found:
            raise HTTPException(status_code=404, detail="Repository not found")
        if not readme:
            raise HTTPException(status_code=404, detail="No README available for this repository")
        summary = await services.gemini.generate_summary(readme)
        return SummaryResponse(repo_id=repo_id, summary=summary)
    except HTTPException:
        raise
    except Exception:
        logger.exception("Summary failed for repository %s", repo_id)
        raise HTTPException(status_code=500, detail="Failed to generate summary")


# ============================================================================
# STATUS
# ============================================================================

@router.get("/stats", response_model=StatsResponse)
async def stats(queries: RepositoryQueries = Depends(get_repository_queries)):
    try:
        return StatsResponse(**await queries.stats())
    except Exception:
        logger.exception("Failed to fetch stats")
        raise HTTPException(status_code=500, detail="Failed to fetch stats")


@router.get("/health")
async def health_check(services: ServiceContainer = Depends(get_services)):
    try:
        await services.database.ping()
        return {"status": "OK", "message": "Database connected"}
    except Exception:
        logger.exception("Health check failed")
        return JSONResponse(status_code=500, content={"status": "ERROR", "message": "Database disconnected"})
