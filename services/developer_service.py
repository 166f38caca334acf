"""
Developer scouting.
Missions search GitHub users, analyze each profile (personas, badges,
language expertise, showcase repositories) and upsert the result.
"""
import asyncio
import logging
from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from config import Delays
from db.database import Database
from models.github_models import parse_github_datetime
from models.pydantic_models import (
    ContributedRepo, CurrentWork, DeveloperRecord, PrimaryWork, TopRepo,
)
from services.developer_store import DeveloperStore
from services.exceptions import GithubError
from services.github_service import GitHubService
from services.repository_store import RepositoryStore
from utils import developer_profile as profile

logger = logging.getLogger(__name__)

HALL_OF_FAME_QUERY = "followers:>500 sort:followers"

BADGE_QUERIES: List[Tuple[str, str]] = [
    ("GDE", "GDE Google Developer Expert followers:>20 sort:followers"),
    ("GitHub Star", "GitHub Star followers:>20 sort:followers"),
    ("MVP", "Microsoft MVP followers:>20 sort:followers"),
    ("AWS Hero", "AWS Hero followers:>20 sort:followers"),
    ("Docker Captain", "Docker Captain followers:>20 sort:followers"),
    ("CKA", "CKA Certified Kubernetes Administrator followers:>10 sort:followers"),
    ("AWS Solutions Architect", '"AWS Certified Solutions Architect" followers:>10 sort:followers'),
    ("CISSP", "CISSP followers:>10 sort:followers"),
    ("PSM", "Professional Scrum Master followers:>10 sort:followers"),
    ("CCIE", "CCIE Cisco Certified Internetwork Expert followers:>10 sort:followers"),
]

# Keyword queries only: language: qualifiers combined with keywords return nothing
ARCHETYPE_QUERIES: List[Tuple[str, str]] = [
    ("AI/ML (Core)", '"machine learning" OR "deep learning" OR "pytorch" OR "tensorflow" OR "jax" OR "keras" followers:>50 sort:followers'),
    ("AI/ML (GenAI)", '"llm" OR "generative ai" OR "huggingface" OR "langchain" OR "llama" OR "transformers" OR "gpt" followers:>50 sort:followers'),
    ("Systems (Modern)", '"rust" OR "ziglang" OR "systems programming" OR "wasm" OR "webassembly" OR "compiler dev" followers:>50 sort:followers'),
    ("Systems (Low Level)", '"c++" OR "cpp" OR "kernel" OR "operating system" OR "embedded" OR "firmware" OR "driver dev" followers:>50 sort:followers'),
    ("Web3 (Core)", '"solidity" OR "smart contract" OR "ethereum" OR "defi" OR "web3" OR "blockchain" followers:>50 sort:followers'),
    ("Web3 (Concepts)", '"zero knowledge" OR "zk-rollup" OR "ipfs" OR "p2p" OR "consensus" OR "solana" followers:>50 sort:followers'),
    ("DevOps (Containers)", '"kubernetes" OR "k8s" OR "docker" OR "cloud native" OR "prometheus" OR "grafana" followers:>50 sort:followers'),
    ("DevOps (Infra)", '"terraform" OR "opentofu" OR "ansible" OR "sre" OR "devops" OR "infrastructure as code" followers:>50 sort:followers'),
    ("Frontend (Frameworks)", '"reactjs" OR "vuejs" OR "svelte" OR "next.js" OR "typescript" OR "tailwind" followers:>100 sort:followers'),
    ("Frontend (Visuals)", '"webgl" OR "three.js" OR "pwa" OR "ui/ux" OR "astro" OR "solidjs" followers:>100 sort:followers'),
    ("Security (Ops)", '"security researcher" OR "pentest" OR "bug bounty" OR "infosec" OR "red team" followers:>50 sort:followers'),
    ("Security (Tech)", '"malware" OR "reverse engineering" OR "cryptography" OR "exploit" OR "zero day" followers:>50 sort:followers'),
    ("Data Eng (Processing)", '"data engineering" OR "apache spark" OR "kafka" OR "airflow" OR "hadoop" OR "flink" followers:>50 sort:followers'),
    ("Data Eng (Storage)", '"dbt" OR "databricks" OR "snowflake" OR "duckdb" OR "clickhouse" OR "big data" followers:>50 sort:followers'),
    ("Mobile (Native)", '"swift" OR "kotlin" OR "ios dev" OR "android dev" OR "mobile dev" followers:>50 sort:followers'),
    ("Mobile (Cross)", '"flutter" OR "react native" OR "xamarin" OR "ionic" OR "expo" followers:>50 sort:followers'),
    ("Game Dev (Engines)", '"unity3d" OR "unreal engine" OR "godot" OR "bevy" OR "game developer" followers:>50 sort:followers'),
    ("Game Dev (Tech)", '"opengl" OR "vulkan" OR "shader" OR "graphics programming" OR "ray tracing" followers:>50 sort:followers'),
]

MISSIONS = ("hall_of_fame", "trending_experts", "badge_holders", "rising_stars")


class DeveloperScoutService:
    """Developer missions and single-profile analysis."""

    def __init__(self, database: Database, github: GitHubService, delays: Optional[Delays] = None):
        self.database = database
        self.github = github
        self.delays = delays or Delays()

    # ==========================================================================
    # MISSIONS
    # ==========================================================================

    async def run_mission(self, mission: Optional[str] = None) -> int:
        """Run one named mission, or the default set when `mission` is None."""
        if mission is None:
            return await self.run_all_missions()
        if mission not in MISSIONS:
            raise ValueError(f"Unknown mission: {mission}")
        return await getattr(self, f"sync_{mission}")()

    async def run_all_missions(self) -> int:
        # Hall of fame is expensive and only runs on request
        logger.info("Starting developer missions")
        total = await self.sync_trending_experts()
        total += await self.sync_badge_holders()
        total += await self.sync_rising_stars()
        logger.info("Developer missions complete: %d profiles", total)
        return total

    async def sync_hall_of_fame(self) -> int:
        return await self.scout_and_process(HALL_OF_FAME_QUERY, "hall_of_fame", 200)

    async def sync_badge_holders(self) -> int:
        total = 0
        for badge, query in BADGE_QUERIES:
            logger.info("Scouting %s", badge)
            total += await self.scout_and_process(query, "badge_holder", 150)
        return total

    async def sync_trending_experts(self) -> int:
        total = 0
        for archetype, query in ARCHETYPE_QUERIES:
            logger.info("Scouting %s", archetype)
            total += await self.scout_and_process(query, "trending_expert", 200)
        return total

    async def sync_rising_stars(self) -> int:
        since = date.today() - timedelta(days=730)
        return await self.scout_and_process(
            f"created:>{since.isoformat()} followers:>50 sort:followers", "rising_star", 100,
        )

    async def fetch_specific_developer(self, username: str) -> bool:
        """Analyze one developer on demand."""
        logger.info("Manual fetch: %s", username)
        return await self.analyze_and_save(username, "manual_fetch")

    async def scout_and_process(self, query: str, mission: str, total_limit: int, per_page: int = 100) -> int:
        """Page through a user search, analyzing each candidate until `total_limit`."""
        processed = 0
        page = 1
        while processed < total_limit:
            try:
                candidates = await self.github.search_users(query, page=page, per_page=per_page)
            except GithubError as e:
                logger.error("User search failed for %s: %s", mission, e)
                break
            if not candidates:
                break

            for candidate in candidates:
                if processed >= total_limit:
                    break
                await self.analyze_and_save(candidate["login"], mission)
                processed += 1
                await asyncio.sleep(self.delays.scout_developer)

            page += 1
            await asyncio.sleep(self.delays.scout_page)
        return processed

    # ==========================================================================
    # ANALYSIS
    # ==========================================================================

    async def analyze_and_save(self, login: str, mission: str) -> bool:
        """Fetch, score and store one developer. Returns False when skipped."""
        try:
            rest_profile = await self.github.get_user(login)
            if rest_profile is None:
                return False
            is_organization = rest_profile.get("type") == "Organization"
            data = await self.github.get_developer_profile(login, is_organization)
            if data is None:
                logger.warning("No GraphQL profile for %s", login)
                return False

            async with self.database.transaction() as session:
                record = await self.build_record(data, rest_profile, RepositoryStore(session))
                await DeveloperStore(session).upsert(record, mission)
        except (GithubError, SQLAlchemyError, ValueError) as e:
            logger.error("Failed to analyze %s: %s", login, e)
            return False

        logger.info("Saved %s (%s)", login, mission)
        return True

    async def build_record(self, data: Dict, rest_profile: Dict, repositories: RepositoryStore) -> DeveloperRecord:
        """Score a GraphQL profile; showcase repositories are linked (or stubbed) through `repositories`."""
        login = data["login"]
        is_organization = rest_profile.get("type") == "Organization"
        owned = (data.get("repositories") or {}).get("nodes") or []
        owned = [r for r in owned if r]
        contributed = [
            {**c["repository"], "recentCommits": (c.get("contributions") or {}).get("totalCount") or 0}
            for c in data.get("contributions") or []
            if c and c.get("repository")
        ]
        contributed = [r for r in contributed if (r.get("owner") or {}).get("login") != login]
        all_repos = owned + contributed

        created_at = parse_github_datetime(data.get("createdAt"))
        years = profile.years_active(created_at)
        total_stars = sum(r.get("stargazerCount") or 0 for r in owned)
        velocity_score = profile.velocity(total_stars, years)
        language_stats = profile.calculate_language_expertise(all_repos, login)

        primary_status, primary_picks = profile.select_primary_work(owned)
        primary_links = []
        for repo, score in primary_picks:
            internal_id = await repositories.ensure_repository(repo)
            primary_links.append(profile.repo_link(repo, login, internal_id, effort_score=round(score, 2)))

        current_status, current_picks = profile.select_current_work(all_repos)
        current_links = []
        for repo, score in current_picks:
            internal_id = await repositories.ensure_repository(repo)
            current_links.append(profile.repo_link(repo, login, internal_id, pulse_score=score))

        return DeveloperRecord(
            github_id=data["databaseId"],
            login=login,
            name=data.get("name") or login,
            avatar_url=data.get("avatarUrl"),
            bio=data.get("bio"),
            company=data.get("company"),
            location=data.get("location"),
            blog_url=data.get("websiteUrl"),
            twitter_username=data.get("twitterUsername"),
            followers_count=rest_profile.get("followers") or 0,
            following_count=rest_profile.get("following") or 0,
            public_repos_count=rest_profile.get("public_repos") or 0,
            created_at=created_at,
            is_organization=is_organization,
            total_stars_earned=total_stars,
            years_active=years,
            dominant_language=profile.dominant_language(language_stats, owned[:3]),
            velocity_score=round(velocity_score, 2),
            badges=profile.identify_badges(data.get("bio"), data.get("company")),
            personas=profile.calculate_personas(data.get("bio"), all_repos),
            language_expertise=language_stats,
            contributed_repos=[
                ContributedRepo(
                    name=r.get("name") or "",
                    owner=(r.get("owner") or {}).get("login", ""),
                    url=r.get("url"),
                    description=r.get("description"),
                    language=(r.get("primaryLanguage") or {}).get("name"),
                    stars=r.get("stargazerCount") or 0,
                    recent_commits=r["recentCommits"],
                )
                for r in contributed[:5]
            ],
            current_work=CurrentWork(status=current_status, repos=current_links),
            primary_work=PrimaryWork(status=primary_status, repos=primary_links),
            is_rising_star=profile.is_rising_star(is_organization, velocity_score, years),
            top_repos=[
                TopRepo(
                    name=r.get("name") or "",
                    html_url=r.get("url"),
                    description=r.get("description"),
                    stars_count=r.get("stargazerCount") or 0,
                    language=(r.get("primaryLanguage") or {}).get("name"),
                    is_primary=index == 0,
                )
                for index, r in enumerate(owned[:3])
            ],
        )
