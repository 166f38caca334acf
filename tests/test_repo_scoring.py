"""Tests for repository activity and health scoring."""

from datetime import datetime, timedelta, timezone

import pytest

from models.github_models import RepositorySnapshot
from utils.repo_scoring import (
    activity_score, build_stats, build_trend_stats, days_since, growth_rate,
    health_score, simple_activity_score,
)

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


class TestHealthScore:

    def test_archived_or_disabled_is_zero(self):
        assert health_score(1, is_archived=True, has_issues=True, open_issues=4) == 0
        assert health_score(1, is_disabled=True, has_discussions=True) == 0

    def test_unknown_push_date_is_baseline(self):
        assert health_score(None) == 50

    @pytest.mark.parametrize("days,expected", [(3, 80), (20, 70), (60, 60), (200, 50), (400, 30)])
    def test_recency_bands(self, days, expected):
        assert health_score(days) == expected

    def test_bonuses_are_capped_at_100(self):
        score = health_score(
            1, has_issues=True, open_issues=12, has_discussions=True, days_since_release=5,
        )
        assert score == 100

    def test_issues_enabled_without_open_issues_gets_no_bonus(self):
        assert health_score(200, has_issues=True, open_issues=0) == 50

    def test_always_within_bounds(self):
        for days in (None, 0, 10, 45, 120, 5000):
            for archived in (False, True):
                score = health_score(days, is_archived=archived, has_issues=True, open_issues=1)
                assert 0 <= score <= 100


class TestActivityScore:

    def test_zero_repository_scores_zero(self):
        assert activity_score(0, 0, 0, None) == 0
        assert simple_activity_score(0, None) == 0

    def test_recent_push_bonus(self):
        assert activity_score(0, 0, 0, 3) == 200
        assert activity_score(0, 0, 0, 20) == 100
        assert activity_score(0, 0, 0, 60) == 50

    def test_stale_repository_is_halved(self):
        fresh = activity_score(999, 0, 0, 200)
        stale = activity_score(999, 0, 0, 400)
        assert stale == pytest.approx(fresh / 2)

    def test_open_issues_contribution_is_capped(self):
        assert activity_score(0, 0, 500, None) == activity_score(0, 0, 100, None) == 50

    def test_simple_variant(self):
        assert simple_activity_score(999, 10) == 80
        assert simple_activity_score(999, 90) == 30


class TestDerivedValues:

    def test_days_since_handles_naive_datetimes(self):
        assert days_since(datetime(2025, 5, 22), NOW) == 10
        assert days_since(None, NOW) is None

    def test_growth_rate_uses_at_least_one_day(self):
        assert growth_rate(500, NOW, NOW) == 500
        assert growth_rate(500, NOW - timedelta(days=10), NOW) == 50

    def test_build_stats_from_snapshot(self):
        snapshot = RepositorySnapshot(
            github_id=7, name="x", full_name="o/x", owner_login="o",
            stars_count=0, forks_count=0, open_issues_count=0,
            pushed_at=None, has_issues=True, commit_count=12, release_count=2,
            latest_release_tag="v2", latest_release_date=NOW - timedelta(days=30),
        )
        stats = build_stats(snapshot, NOW)
        assert stats["repo_github_id"] == 7
        assert stats["commits_last_year"] == 12
        assert stats["activity_score"] == 0
        # baseline 50 + recent release
        assert stats["health_score"] == 60
        assert stats["days_since_last_release"] == 30

    def test_zero_repository_trend_stats(self):
        snapshot = RepositorySnapshot(github_id=8, name="z", full_name="o/z", owner_login="o")
        stats = build_trend_stats(snapshot, "stars_growth_7d", 42, NOW)
        assert stats["activity_score"] == 0
        assert stats["health_score"] == 50
        assert stats["stars_growth_7d"] == 42
