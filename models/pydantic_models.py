"""
Pydantic models.
Structured value types for the developer JSONB columns (validated before any
write) plus API request/response bodies.
"""
from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# DEVELOPER VALUE TYPES - the only shapes allowed into JSONB columns
# ============================================================================

BadgeType = Literal[
    "GDE", "MVP", "GitHub Star", "AWS Hero", "Docker Captain", "Big Tech Alumni",
    "CKA", "AWS Solutions Architect", "CISSP", "PSM", "CCIE",
]

ExpertiseLevel = Literal["beginner", "intermediate", "advanced", "expert", "master"]

PERSONA_KEYS = (
    "ai_whisperer", "ml_engineer", "data_scientist", "computational_scientist",
    "data_engineer", "chain_architect", "cloud_native", "devops_deamon",
    "frontend_wizard", "ux_engineer", "mobile_maestro", "backend_behemoth",
    "systems_architect", "security_sentinel", "game_guru", "iot_tinkerer",
    "tooling_titan", "algorithm_alchemist", "qa_automator", "enterprise_architect",
)


class DeveloperBadge(BaseModel):
    type: BadgeType
    category: Optional[str] = None
    year: Optional[int] = None


class DeveloperPersonas(BaseModel):
    """Keyword-derived archetype scores, each 0-100."""
    model_config = ConfigDict(extra="forbid")

    ai_whisperer: int = Field(0, ge=0, le=100)
    ml_engineer: int = Field(0, ge=0, le=100)
    data_scientist: int = Field(0, ge=0, le=100)
    computational_scientist: int = Field(0, ge=0, le=100)
    data_engineer: int = Field(0, ge=0, le=100)
    chain_architect: int = Field(0, ge=0, le=100)
    cloud_native: int = Field(0, ge=0, le=100)
    devops_deamon: int = Field(0, ge=0, le=100)
    frontend_wizard: int = Field(0, ge=0, le=100)
    ux_engineer: int = Field(0, ge=0, le=100)
    mobile_maestro: int = Field(0, ge=0, le=100)
    backend_behemoth: int = Field(0, ge=0, le=100)
    systems_architect: int = Field(0, ge=0, le=100)
    security_sentinel: int = Field(0, ge=0, le=100)
    game_guru: int = Field(0, ge=0, le=100)
    iot_tinkerer: int = Field(0, ge=0, le=100)
    tooling_titan: int = Field(0, ge=0, le=100)
    algorithm_alchemist: int = Field(0, ge=0, le=100)
    qa_automator: int = Field(0, ge=0, le=100)
    enterprise_architect: int = Field(0, ge=0, le=100)


class LanguageExpertise(BaseModel):
    language: str
    level: ExpertiseLevel
    score: int = Field(..., ge=0)
    repos_count: int = Field(..., ge=0)
    total_stars: int = Field(..., ge=0)
    largest_project: str
    largest_project_stars: int = Field(..., ge=0)
    total_commits: int = Field(..., ge=0)
    is_primary: bool = False


class LanguageStats(BaseModel):
    expertise: List[LanguageExpertise] = Field(default_factory=list)
    favorites: List[str] = Field(default_factory=list, max_length=3)
    polyglot_score: int = Field(0, ge=0, le=100)


class RepoLink(BaseModel):
    """Reference to a repository shown on a developer profile."""
    name: str
    owner: str
    url: Optional[str] = None
    description: Optional[str] = None
    language: Optional[str] = None
    stars: int = 0
    pulse_score: Optional[float] = None
    effort_score: Optional[float] = None
    last_pushed_at: Optional[datetime] = None
    internal_repo_id: Optional[int] = None
    is_contribution: bool = False


class CurrentWork(BaseModel):
    status: Literal["focused", "multi_tasking", "dormant"]
    repos: List[RepoLink] = Field(default_factory=list, max_length=2)


class PrimaryWork(BaseModel):
    status: Literal["single_masterpiece", "dual_wielding"]
    repos: List[RepoLink] = Field(default_factory=list, max_length=2)


class ContributedRepo(BaseModel):
    name: str
    owner: str
    url: Optional[str] = None
    description: Optional[str] = None
    language: Optional[str] = None
    stars: int = 0
    recent_commits: int = 0


class TopRepo(BaseModel):
    name: str
    html_url: Optional[str] = None
    description: Optional[str] = None
    stars_count: int = 0
    language: Optional[str] = None
    is_primary: bool = False


class DeveloperRecord(BaseModel):
    """Complete developer row, validated before it reaches the database."""
    github_id: int
    login: str
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    company: Optional[str] = None
    location: Optional[str] = None
    blog_url: Optional[str] = None
    twitter_username: Optional[str] = None
    followers_count: int = Field(0, ge=0)
    following_count: int = Field(0, ge=0)
    public_repos_count: int = Field(0, ge=0)
    created_at: Optional[datetime] = None
    is_organization: bool = False
    total_stars_earned: int = Field(0, ge=0)
    years_active: int = Field(0, ge=0)
    dominant_language: Optional[str] = None
    velocity_score: float = Field(0, ge=0)
    badges: List[DeveloperBadge] = Field(default_factory=list)
    personas: DeveloperPersonas = Field(default_factory=DeveloperPersonas)
    language_expertise: LanguageStats = Field(default_factory=LanguageStats)
    contributed_repos: List[ContributedRepo] = Field(default_factory=list, max_length=5)
    current_work: CurrentWork = Field(default_factory=lambda: CurrentWork(status="dormant"))
    primary_work: PrimaryWork = Field(default_factory=lambda: PrimaryWork(status="single_masterpiece"))
    is_rising_star: bool = False
    top_repos: List[TopRepo] = Field(default_factory=list, max_length=3)

    @property
    def is_badge_holder(self) -> bool:
        return len(self.badges) > 0


# ============================================================================
# AI SEARCH
# ============================================================================

class SearchFilters(BaseModel):
    language: Optional[str] = None
    min_stars: Optional[int] = Field(None, ge=0)
    is_fork: Optional[bool] = None


class SearchIntent(BaseModel):
    """Structured reading of a natural-language repository query."""
    # Stripped before min_length applies, so whitespace-only queries are rejected
    model_config = ConfigDict(str_strip_whitespace=True)

    semantic_query: str = Field(..., min_length=1)
    filters: SearchFilters = Field(default_factory=SearchFilters)


# ============================================================================
# API BODIES
# ============================================================================

class FetchDeveloperRequest(BaseModel):
    username: Optional[str] = None


class JobAcceptedResponse(BaseModel):
    message: str
    job_id: str


class JobInfo(BaseModel):
    id: str
    name: str
    status: Literal["running", "completed", "failed", "cancelled"]
    started_at: datetime
    finished_at: Optional[datetime] = None
    error: Optional[str] = None


class StatsResponse(BaseModel):
    totalRepositories: int
    totalStars: int


class SummaryResponse(BaseModel):
    repo_id: int
    summary: str


class SemanticSearchResponse(BaseModel):
    intent: SearchIntent
    data: List[Dict]
