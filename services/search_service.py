"""
Semantic repository search.
Gemini turns the query into an intent, the local model embeds its semantic
part, and pgvector ranks repositories by cosine similarity.
"""
import logging
from typing import Dict, List, Tuple

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.pydantic_models import SearchIntent
from models.schemas import Repository
from services.embedding_service import EmbeddingService
from services.gemini_service import GeminiService

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 30

RESULT_COLUMNS = (
    Repository.id, Repository.github_id, Repository.name, Repository.full_name,
    Repository.owner_login, Repository.owner_avatar_url, Repository.description,
    Repository.html_url, Repository.stars_count, Repository.forks_count,
    Repository.language, Repository.topics, Repository.updated_at,
)


def build_search_query(vector: List[float], intent: SearchIntent) -> Select:
    """Similarity-ranked select with the intent's metadata filters applied."""
    similarity = (1 - Repository.embedding.cosine_distance(vector)).label("similarity")
    stmt = (
        select(*RESULT_COLUMNS, similarity)
        .where(Repository.embedding.is_not(None))
    )
    filters = intent.filters
    if filters.language:
        stmt = stmt.where(Repository.language.ilike(filters.language))
    if filters.is_fork is not None:
        stmt = stmt.where(Repository.is_fork == filters.is_fork)
    if filters.min_stars:
        stmt = stmt.where(Repository.stars_count >= filters.min_stars)
    return stmt.order_by(similarity.desc()).limit(SEARCH_LIMIT)


class SearchService:
    """Natural-language search over embedded repositories."""

    def __init__(self, gemini: GeminiService, embeddings: EmbeddingService):
        self.gemini = gemini
        self.embeddings = embeddings

    async def search(self, session: AsyncSession, query: str) -> Tuple[SearchIntent, List[Dict]]:
        intent = await self.gemini.parse_search_intent(query)
        vector = await self.embeddings.embed(intent.semantic_query)
        result = await session.execute(build_search_query(vector, intent))
        rows = [dict(row._mapping) for row in result]
        logger.info("Semantic search %r matched %d repositories", intent.semantic_query, len(rows))
        return intent, rows
