"""
Developer profile heuristics.
Keyword personas, badge detection, language expertise and showcase-repository
selection. Repository arguments are GraphQL profile nodes (owned repositories
carry a default-branch commit count, contributed ones a `recentCommits` count).
"""
import math
import re
from collections import Counter, defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from models.github_models import parse_github_datetime
from models.pydantic_models import (
    PERSONA_KEYS, DeveloperBadge, DeveloperPersonas, LanguageExpertise,
    LanguageStats, RepoLink,
)

BIO_WEIGHT = 50
CURATION_FACTOR = 0.1
SYSTEM_LANGUAGES = ("C", "C++", "Rust", "Go")
BIG_TECH = ("google", "meta", "facebook", "amazon", "apple", "netflix", "microsoft", "uber", "airbnb")


# (persona, pattern, multiplier)
PERSONA_RULES: List[Tuple[str, re.Pattern, float]] = [
    ("ai_whisperer", re.compile(r"\b(gpt|llm|transformer|neural|generative ai)\b"), 2),
    ("ml_engineer", re.compile(r"\b(pytorch|tensorflow|keras|training|inference|huggingface|model)\b"), 1.5),
    ("data_scientist", re.compile(r"\b(pandas|numpy|jupyter|matplotlib|analysis|visualization|insight)\b"), 1),
    ("computational_scientist", re.compile(
        r"\b(math|mathematics|physics|simulation|scientific|scipy|sympy|julia|fortran|manim|latex|geometry|calculus)\b"), 2),
    ("data_engineer", re.compile(r"\b(etl|pipeline|spark|hadoop|airflow|databricks|warehouse|big data|parquet)\b"), 1.5),
    ("chain_architect", re.compile(r"\b(solidity|smart contract|ethereum|web3|defi|nft|dapp|consensus)\b"), 2),
    ("cloud_native", re.compile(r"\b(kubernetes|k8s|docker|terraform|aws|gcp|azure|serverless|cloud)\b"), 1.5),
    ("devops_deamon", re.compile(r"\b(ci/cd|pipeline|jenkins|github actions|automation|sre|observability)\b"), 1),
    ("frontend_wizard", re.compile(r"\b(react|vue|angular|svelte|nextjs|tailwind|css|html|frontend)\b"), 1),
    ("ux_engineer", re.compile(r"\b(figma|design system|accessibility|ui/ux|interaction|animation|canvas)\b"), 1.5),
    ("backend_behemoth", re.compile(
        r"\b(api|graphql|rest|sql|postgres|redis|kafka|microservices|distributed|node|express)\b"), 1),
    ("systems_architect", re.compile(
        r"\b(kernel|os|operating system|driver|memory|concurrency|compiler|assembly|embedded|low-level)\b"), 2.5),
    ("systems_architect", re.compile(r"\b(rust|c|c\+\+|zig)\b"), 1),
    ("mobile_maestro", re.compile(r"\b(ios|android|swift|kotlin|flutter|react native|mobile app)\b"), 2),
    ("security_sentinel", re.compile(
        r"\b(security|pentest|hacking|cryptography|auth|oauth|owasp|vulnerability|red team)\b"), 2),
    ("game_guru", re.compile(r"\b(unity|unreal|godot|game|graphics|shader|opengl|vulkan|3d)\b"), 2),
    ("iot_tinkerer", re.compile(r"\b(arduino|raspberry|esp32|firmware|robotics|sensor|iot|mqtt)\b"), 2),
    ("tooling_titan", re.compile(
        r"\b(cli|terminal|plugin|package|library|config|linter|bundler|npm|shell|bash|zsh|dotfiles)\b"), 1.5),
    ("algorithm_alchemist", re.compile(r"\b(algorithm|structure|leetcode|interview|competitive|solution)\b"), 2),
    ("qa_automator", re.compile(r"\b(testing|selenium|cypress|playwright|qa|automation|e2e)\b"), 2),
    ("enterprise_architect", re.compile(r"\b(java|spring|c#|dotnet|enterprise|legacy|soap|architecture)\b"), 1),
]

CURATION_NAME = re.compile(r"\b(awesome|list|collection|resources|roadmap|interview)\b")
CURATION_DESCRIPTION = re.compile(r"\b(curated list|collection of)\b")


# ============================================================================
# NODE ACCESSORS
# ============================================================================

def round_half_up(value: float) -> int:
    # Halves round up (42.5 -> 43), unlike round()
    return int(math.floor(value + 0.5))


def _owner(repo: Dict) -> str:
    return (repo.get("owner") or {}).get("login", "")


def _language(repo: Dict) -> Optional[str]:
    return (repo.get("primaryLanguage") or {}).get("name")


def _stars(repo: Dict) -> int:
    return repo.get("stargazerCount") or 0


def _history_commits(repo: Dict) -> int:
    target = (repo.get("defaultBranchRef") or {}).get("target") or {}
    return (target.get("history") or {}).get("totalCount") or 0


def _topics(repo: Dict) -> List[str]:
    return [
        t["topic"]["name"]
        for t in (repo.get("repositoryTopics") or {}).get("nodes") or []
        if t and t.get("topic")
    ]


# ============================================================================
# PERSONAS
# ============================================================================

def is_curation(repo: Dict) -> bool:
    """Awesome-lists and other link collections say little about skills."""
    name = (repo.get("name") or "").lower()
    description = (repo.get("description") or "").lower()
    return bool(CURATION_NAME.search(name) or CURATION_DESCRIPTION.search(description))


def repo_weight(repo: Dict) -> float:
    weight = 10 + math.log10(_stars(repo) + 1) * 5
    if is_curation(repo):
        weight *= CURATION_FACTOR
    return weight


def calculate_personas(bio: Optional[str], repos: List[Dict]) -> DeveloperPersonas:
    scores: Dict[str, float] = {key: 0.0 for key in PERSONA_KEYS}

    def score(text: str, weight: float) -> None:
        for key, pattern, multiplier in PERSONA_RULES:
            if pattern.search(text):
                scores[key] += weight * multiplier

    score((bio or "").lower(), BIO_WEIGHT)

    for repo in repos:
        text = " ".join([
            repo.get("name") or "",
            repo.get("description") or "",
            _language(repo) or "",
            " ".join(_topics(repo)),
        ]).lower()
        score(text, repo_weight(repo))

    return DeveloperPersonas(**{key: min(100, round_half_up(value)) for key, value in scores.items()})


# ============================================================================
# BADGES
# ============================================================================

def _gde_category(text: str) -> str:
    if "android" in text:
        return "Android"
    if "web" in text:
        return "Web"
    if "cloud" in text or "gcp" in text:
        return "Cloud"
    if re.search(r"\bml\b", text) or "machine learning" in text:
        return "Machine Learning"
    if "flutter" in text:
        return "Flutter"
    if "firebase" in text:
        return "Firebase"
    if "angular" in text:
        return "Angular"
    return "General"


def identify_badges(bio: Optional[str], company: Optional[str]) -> List[DeveloperBadge]:
    """Certification and community-programme badges claimed in bio or company."""
    text = f"{bio or ''} {company or ''}".lower()
    company_text = (company or "").lower()
    badges: List[DeveloperBadge] = []

    # Short acronyms need word boundaries ("hackathon" contains "cka")
    if "google developer expert" in text or re.search(r"\bgde\b", text) or "google expert" in text:
        badges.append(DeveloperBadge(type="GDE", category=_gde_category(text)))

    if "microsoft mvp" in text or "microsoft most valuable professional" in text:
        badges.append(DeveloperBadge(type="MVP"))

    if "github star" in text or "githubstar" in text:
        badges.append(DeveloperBadge(type="GitHub Star"))

    if "aws hero" in text or "aws community hero" in text:
        badges.append(DeveloperBadge(type="AWS Hero"))

    if "docker captain" in text:
        badges.append(DeveloperBadge(type="Docker Captain"))

    if company_text and any(name in company_text for name in BIG_TECH):
        badges.append(DeveloperBadge(type="Big Tech Alumni", category=company.strip()))

    if "certified kubernetes administrator" in text or re.search(r"\bcka\b", text):
        badges.append(DeveloperBadge(type="CKA"))

    if "aws certified solutions architect" in text or "solutions architect professional" in text:
        badges.append(DeveloperBadge(type="AWS Solutions Architect"))

    if re.search(r"\bcissp\b", text) or "certified information systems security professional" in text:
        badges.append(DeveloperBadge(type="CISSP"))

    if "professional scrum master" in text or re.search(r"\bpsm i{1,2}\b", text):
        badges.append(DeveloperBadge(type="PSM"))

    if re.search(r"\bccie\b", text) or "cisco certified internetwork expert" in text:
        badges.append(DeveloperBadge(type="CCIE"))

    return badges


# ============================================================================
# LANGUAGE EXPERTISE
# ============================================================================

def expertise_level(score: float) -> str:
    if score >= 90:
        return "master"
    if score >= 75:
        return "expert"
    if score >= 55:
        return "advanced"
    if score >= 35:
        return "intermediate"
    return "beginner"


def calculate_language_expertise(repos: List[Dict], login: str) -> LanguageStats:
    grouped: Dict[str, List[Dict]] = defaultdict(list)
    for repo in repos:
        language = _language(repo)
        if language:
            grouped[language].append(repo)

    expertise: List[LanguageExpertise] = []
    for language, language_repos in grouped.items():
        total_stars = sum(_stars(r) for r in language_repos)
        total_commits = sum(r.get("recentCommits") or _history_commits(r) for r in language_repos)
        largest = max(language_repos, key=_stars)
        is_owner = any(_owner(r) == login for r in language_repos)

        score = min(len(language_repos) * 2.5, 25)
        score += min(math.log10(total_stars + 1) * 5, 30)
        score += min(math.log10(_stars(largest) + 1) * 4, 25)
        score += min(math.log10(total_commits + 1) * 2, 10)
        if is_owner:
            score += 10

        expertise.append(LanguageExpertise(
            language=language,
            level=expertise_level(score),
            score=round_half_up(score),
            repos_count=len(language_repos),
            total_stars=total_stars,
            largest_project=largest.get("name") or "",
            largest_project_stars=_stars(largest),
            total_commits=total_commits,
        ))

    expertise.sort(key=lambda e: e.score, reverse=True)
    if expertise:
        expertise[0].is_primary = True

    count = len(expertise)
    diversity = min(count * 10, 50)
    depth = sum(e.score for e in expertise) / max(count, 1)
    return LanguageStats(
        expertise=expertise,
        favorites=[e.language for e in expertise[:3]],
        polyglot_score=min(100, round_half_up((diversity + depth) / 2)),
    )


def dominant_language(stats: LanguageStats, top_repos: List[Dict]) -> Optional[str]:
    if stats.expertise:
        return stats.expertise[0].language
    counts = Counter(_language(r) for r in top_repos if _language(r))
    return counts.most_common(1)[0][0] if counts else None


# ============================================================================
# SHOWCASE SELECTION
# ============================================================================

def effort_score(repo: Dict) -> float:
    score = _stars(repo) * 0.4 + _history_commits(repo) * 0.6
    if _language(repo) in SYSTEM_LANGUAGES and (repo.get("diskUsage") or 0) > 10000:
        score *= 1.2
    return score


def select_primary_work(owned_repos: List[Dict]) -> Tuple[str, List[Tuple[Dict, float]]]:
    """Magnum opus: the top owned repository, or two when they are within 10%."""
    if not owned_repos:
        return "single_masterpiece", []
    scored = sorted(((r, effort_score(r)) for r in owned_repos), key=lambda item: item[1], reverse=True)
    if len(scored) > 1 and scored[1][1] >= scored[0][1] * 0.9:
        return "dual_wielding", scored[:2]
    return "single_masterpiece", scored[:1]


def pulse_score(repo: Dict, now: Optional[datetime] = None) -> Optional[float]:
    """Recent-commit weight minus staleness; None if not pushed in 90 days."""
    now = now or datetime.now(timezone.utc)
    pushed = parse_github_datetime(repo.get("pushedAt"))
    if pushed is None:
        return None
    days = (now - pushed).total_seconds() / 86400
    if days > 90:
        return None
    return (repo.get("recentCommits") or 1) * 10 - math.floor(days)


def select_current_work(
    repos: List[Dict], now: Optional[datetime] = None,
) -> Tuple[str, List[Tuple[Dict, float]]]:
    """What the developer is pushing to right now."""
    active = []
    for repo in repos:
        score = pulse_score(repo, now)
        if score is not None:
            active.append((repo, score))
    if not active:
        return "dormant", []
    active.sort(key=lambda item: item[1], reverse=True)
    if len(active) > 1 and active[1][1] >= active[0][1] * 0.8:
        return "multi_tasking", active[:2]
    return "focused", active[:1]


def repo_link(repo: Dict, login: str, internal_repo_id: Optional[int] = None, **scores) -> RepoLink:
    return RepoLink(
        name=repo.get("name") or "",
        owner=_owner(repo),
        url=repo.get("url"),
        description=repo.get("description"),
        language=_language(repo),
        stars=_stars(repo),
        last_pushed_at=parse_github_datetime(repo.get("pushedAt")),
        internal_repo_id=internal_repo_id,
        is_contribution=_owner(repo) != login,
        **scores,
    )


# ============================================================================
# DERIVED COUNTERS
# ============================================================================

def years_active(created_at: Optional[datetime], now: Optional[datetime] = None) -> int:
    if created_at is None:
        return 0
    now = now or datetime.now(timezone.utc)
    return max(0, int((now - created_at).total_seconds() // (86400 * 365)))


def velocity(total_stars: int, years: int) -> float:
    """Stars earned per month of activity (minimum one month)."""
    return total_stars / max(1, years * 12)


def is_rising_star(is_organization: bool, velocity_score: float, years: int) -> bool:
    return not is_organization and velocity_score > 10 and years < 2
