"""
Async database setup for PostgreSQL.
Owns the engine and session factory; one instance lives on the service container.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

logger = logging.getLogger(__name__)

Base = declarative_base()

REQUIRED_EXTENSIONS = ("vector", "pg_trgm")


class Database:
    """Engine + session factory wrapper."""

    def __init__(self, database_url: str, echo: bool = False, pool_size: int = 10):
        self.engine = create_async_engine(
            database_url,
            echo=echo,
            pool_pre_ping=True,
            pool_size=pool_size,
        )
        self.session_maker = async_sessionmaker(self.engine, expire_on_commit=False)

    async def init_db(self) -> None:
        """Create extensions, tables and indexes if they do not exist."""
        # Table metadata is registered on import
        import models.schemas  # noqa: F401

        async with self.engine.begin() as conn:
            for extension in REQUIRED_EXTENSIONS:
                await conn.execute(text(f"CREATE EXTENSION IF NOT EXISTS {extension}"))
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema ready")

    def session(self) -> AsyncSession:
        return self.session_maker()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """
        Session inside an explicit transaction.
        Commits on normal exit, rolls back if the block raises.
        """
        async with self.session_maker() as session:
            async with session.begin():
                yield session

    async def ping(self) -> None:
        async with self.session_maker() as session:
            await session.execute(text("SELECT 1"))

    async def dispose(self) -> None:
        await self.engine.dispose()


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a request-scoped session."""
    database: Database = request.app.state.services.database
    async with database.session() as session:
        yield session
