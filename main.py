"""
Main FastAPI application.
Entry point for the GitHop backend: API routes, background jobs and the
single-page frontend bundle.
"""
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse

from config import Settings, load_settings
from routes.api import root_router, router
from services.container import ServiceContainer
from services.repository_store import RepositoryStore

# Load environment variables
load_dotenv()

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

logger = logging.getLogger("githop")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def sync_if_empty(services: ServiceContainer) -> None:
    """Quick sync on startup when the repositories table is empty."""
    async with services.database.session() as session:
        count = await RepositoryStore(session).count()
    if count == 0:
        logger.info("Database is empty; starting quick sync")
        services.jobs.submit("startup quick sync", services.sync.sync_quick)
    else:
        logger.info("Database holds %d repositories; skipping startup sync", count)


def create_app(settings: Optional[Settings] = None, services: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the application.

    Tests pass a prebuilt (fake) container; otherwise settings are loaded from
    the environment and the container is built and initialized at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        container = services
        if container is None:
            app_settings = settings or load_settings()
            container = ServiceContainer.build(app_settings)
            await container.database.init_db()
            logger.info("Gemini %s", "configured" if container.gemini.enabled else "disabled (no GEMINI_API_KEY)")
            logger.info("BigQuery %s", "configured" if container.gharchive.enabled else "disabled")
            if app_settings.sync_data_on_startup:
                await sync_if_empty(container)
        app.state.services = container
        logger.info("Application started")

        yield

        logger.info("Application shutting down")
        await container.aclose()

    app = FastAPI(
        title="GitHop",
        description="GitHub repository and developer discovery service",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api", tags=["api"])
    app.include_router(root_router, tags=["sync"])

    static_dir = Path(settings.static_dir if settings else "public")

    @app.get("/{full_path:path}", include_in_schema=False)
    async def spa(full_path: str):
        """Static assets, falling back to index.html for client-side routes."""
        if full_path.startswith("api/"):
            return JSONResponse(status_code=404, content={"detail": "Not Found"})
        root = static_dir.resolve()
        candidate = (root / full_path).resolve()
        if full_path and candidate.is_file() and root in candidate.parents:
            return FileResponse(candidate)
        index = root / "index.html"
        if index.is_file():
            return FileResponse(index)
        return JSONResponse(status_code=404, content={"detail": "Frontend bundle not found"})

    return app


settings = load_settings()
configure_logging(settings.log_level)
app = create_app(settings)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
