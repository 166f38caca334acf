"""
Embedding service.
Local sentence-transformers model producing normalized 384-dimension vectors
for repositories and search queries.
"""
import asyncio
import logging
from typing import List, Optional, Sequence, Set

from sentence_transformers import SentenceTransformer
from sqlalchemy.exc import SQLAlchemyError

from db.database import Database
from services.repository_store import RepositoryStore

logger = logging.getLogger(__name__)

EMBED_BATCH_SIZE = 50
CONTEXT_MAX_CHARS = 8000
README_CONTEXT_CHARS = 1000


def build_context(name: str, description: Optional[str], topics: Optional[Sequence[str]], readme: Optional[str]) -> str:
    """Text a repository is embedded from."""
    lines = [
        f"Name: {name}",
        f"Description: {description or ''}",
        f"Topics: {', '.join(topics or [])}",
        f"Readme: {(readme or '')[:README_CONTEXT_CHARS]}",
    ]
    return "\n".join(lines).strip()[:CONTEXT_MAX_CHARS]


class EmbeddingService:
    """Owns one model instance; it is loaded on first use, off the event loop."""

    def __init__(self, model_name: str, model: Optional[SentenceTransformer] = None):
        self.model_name = model_name
        self._model = model
        self._lock = asyncio.Lock()

    async def _get_model(self) -> SentenceTransformer:
        async with self._lock:
            if self._model is None:
                logger.info("Loading embedding model %s", self.model_name)
                self._model = await asyncio.to_thread(SentenceTransformer, self.model_name)
        return self._model

    async def embed(self, text: str) -> List[float]:
        model = await self._get_model()
        vector = await asyncio.to_thread(model.encode, text, normalize_embeddings=True)
        return [float(x) for x in vector]

    async def embed_repositories(self, database: Database) -> int:
        """
        Embed every repository without a vector, 50 rows at a time.

        Rows that fail are logged and left NULL; they are not retried within
        the same run so the loop always terminates.
        """
        logger.info("Starting embedding backfill")
        failed: Set[int] = set()
        embedded = 0

        while True:
            async with database.session() as session:
                rows = await RepositoryStore(session).list_unembedded(EMBED_BATCH_SIZE, failed)
            if not rows:
                break
            logger.info("Embedding batch of %d repositories", len(rows))

            for repo_id, name, full_name, description, topics, readme in rows:
                try:
                    vector = await self.embed(build_context(name, description, topics, readme))
                    async with database.transaction() as session:
                        await RepositoryStore(session).save_embedding(repo_id, vector)
                    embedded += 1
                except (SQLAlchemyError, RuntimeError, ValueError) as e:
                    logger.error("Failed to embed %s: %s", full_name, e)
                    failed.add(repo_id)
            await asyncio.sleep(0.1)

        logger.info("Embedding backfill done: %d embedded, %d failed", embedded, len(failed))
        return embedded
