"""
Repository pattern for the developers tables.
Accepts only validated DeveloperRecord values.
"""
import logging

from sqlalchemy import case, delete, func, literal
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from models.pydantic_models import DeveloperRecord
from models.schemas import Developer, DeveloperTopRepo

logger = logging.getLogger(__name__)

REFRESHED_COLUMNS = (
    "login", "name", "avatar_url", "bio", "company", "location", "blog_url", "twitter_username",
    "followers_count", "following_count", "public_repos_count", "created_at", "is_organization",
    "total_stars_earned", "years_active", "dominant_language", "velocity_score",
    "badges", "personas", "language_expertise", "contributed_repos", "current_work",
    "primary_work", "is_rising_star", "is_badge_holder",
)


class DeveloperStore:
    """Database operations for developers and their top repositories."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def upsert(self, record: DeveloperRecord, mission: str) -> int:
        """
        Insert or refresh a developer; returns the internal id.

        Hall-of-fame and trending-expert flags are sticky: a mission can set
        them but never clears them. Rising-star and badge-holder flags are
        recomputed on every run.
        """
        values = record.model_dump(mode="json", exclude={"top_repos"})
        values["created_at"] = record.created_at
        values["is_badge_holder"] = record.is_badge_holder
        values["scout_source"] = mission

        stmt = insert(Developer).values(
            **values,
            is_hall_of_fame=mission == "hall_of_fame",
            is_trending_expert=mission == "trending_expert",
            last_fetched=func.now(),
        )
        set_ = {column: stmt.excluded[column] for column in REFRESHED_COLUMNS}
        set_.update({
            "is_hall_of_fame": case(
                (literal(mission) == "hall_of_fame", True), else_=Developer.is_hall_of_fame,
            ),
            "is_trending_expert": case(
                (literal(mission) == "trending_expert", True), else_=Developer.is_trending_expert,
            ),
            "last_fetched": func.now(),
        })
        result = await self._session.execute(
            stmt.on_conflict_do_update(index_elements=["github_id"], set_=set_)
            .returning(Developer.id)
        )
        developer_id = result.scalar_one()

        if record.top_repos:
            await self._session.execute(
                delete(DeveloperTopRepo).where(DeveloperTopRepo.developer_id == developer_id)
            )
            await self._session.execute(
                insert(DeveloperTopRepo),
                [{"developer_id": developer_id, **repo.model_dump()} for repo in record.top_repos],
            )
        return developer_id
