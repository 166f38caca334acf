"""
Repository scoring heuristics.
Activity and health scores plus the repository_stats row built from a snapshot.
"""
import math
from datetime import datetime, timezone
from typing import Dict, Optional

from models.github_models import RepositorySnapshot


def days_since(moment: Optional[datetime], now: Optional[datetime] = None) -> Optional[int]:
    """Whole days elapsed since `moment`, or None when unknown."""
    if moment is None:
        return None
    now = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int((now - moment).total_seconds() // 86400)


def activity_score(stars: int, forks: int, open_issues: int, days_since_push: Optional[int]) -> float:
    """Popularity plus recency; rounded to 2 decimals."""
    score = math.log10(stars + 1) * 100
    score += math.log10(forks + 1) * 50

    if days_since_push is not None:
        if days_since_push <= 7:
            score += 200
        elif days_since_push <= 30:
            score += 100
        elif days_since_push <= 90:
            score += 50
        elif days_since_push > 365:
            score *= 0.5

    score += min(open_issues, 100) * 0.5
    return round(score, 2)


def simple_activity_score(stars: int, days_since_push: Optional[int]) -> int:
    """Cheaper variant used for GH Archive trend rows."""
    score = math.log10(stars + 1) * 10
    if days_since_push is not None and days_since_push <= 30:
        score += 50
    return int(round(score))


def health_score(
    days_since_push: Optional[int],
    *,
    is_archived: bool = False,
    is_disabled: bool = False,
    has_issues: bool = False,
    open_issues: int = 0,
    has_discussions: bool = False,
    days_since_release: Optional[int] = None,
) -> int:
    """0-100 maintenance signal; archived or disabled repositories score 0."""
    if is_archived or is_disabled:
        return 0

    score = 50
    if days_since_push is not None:
        if days_since_push <= 7:
            score += 30
        elif days_since_push <= 30:
            score += 20
        elif days_since_push <= 90:
            score += 10
        elif days_since_push > 365:
            score -= 20

    if days_since_release is not None and days_since_release <= 90:
        score += 10
    if has_issues and open_issues > 0:
        score += 10
    if has_discussions:
        score += 5

    return max(0, min(100, score))


def growth_rate(stars: int, created_at: Optional[datetime], now: Optional[datetime] = None) -> float:
    """Stars per day of repository age."""
    age = days_since(created_at, now)
    return stars / max(age if age is not None else 1, 1)


def build_stats(snapshot: RepositorySnapshot, now: Optional[datetime] = None) -> Dict:
    """repository_stats column values derived from a full snapshot."""
    days_push = days_since(snapshot.pushed_at, now)
    days_release = days_since(snapshot.latest_release_date, now)
    return {
        "repo_github_id": snapshot.github_id,
        "commits_last_year": snapshot.commit_count,
        "days_since_last_commit": days_push,
        "days_since_last_release": days_release,
        "latest_release_tag": snapshot.latest_release_tag,
        "latest_release_date": snapshot.latest_release_date,
        "total_releases": snapshot.release_count,
        "activity_score": activity_score(
            snapshot.stars_count, snapshot.forks_count, snapshot.open_issues_count, days_push,
        ),
        "health_score": health_score(
            days_push,
            is_archived=snapshot.is_archived,
            is_disabled=snapshot.is_disabled,
            has_issues=snapshot.has_issues,
            open_issues=snapshot.open_issues_count,
            has_discussions=snapshot.has_discussions,
            days_since_release=days_release,
        ),
    }


def build_trend_stats(
    snapshot: RepositorySnapshot, growth_column: str, star_events: int, now: Optional[datetime] = None,
) -> Dict:
    """Stats row for a GH Archive trend pass: simplified activity plus the period's growth."""
    days_push = days_since(snapshot.pushed_at, now)
    stats = build_stats(snapshot, now)
    stats["activity_score"] = simple_activity_score(snapshot.stars_count, days_push)
    stats[growth_column] = star_events
    return stats
