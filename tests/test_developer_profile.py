"""Tests for developer heuristics: personas, badges, language expertise and showcase selection."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from models.pydantic_models import PERSONA_KEYS, DeveloperPersonas, LanguageStats
from utils.developer_profile import (
    calculate_language_expertise, calculate_personas, dominant_language, effort_score,
    expertise_level, identify_badges, is_curation, is_rising_star, pulse_score,
    repo_link, round_half_up, select_current_work, select_primary_work, velocity, years_active,
)

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


def repo(name, owner="dev", language=None, stars=0, description=None, commits=0, pushed_days=None, **extra):
    node = {
        "name": name,
        "owner": {"login": owner},
        "description": description,
        "stargazerCount": stars,
        "primaryLanguage": {"name": language} if language else None,
        "defaultBranchRef": {"target": {"history": {"totalCount": commits}}},
    }
    if pushed_days is not None:
        node["pushedAt"] = (NOW - timedelta(days=pushed_days)).strftime("%Y-%m-%dT%H:%M:%SZ")
    node.update(extra)
    return node


class TestPersonas:

    @pytest.mark.parametrize("value,expected", [(42.5, 43), (2.5, 3), (0.49, 0), (7.0, 7)])
    def test_halves_round_up(self, value, expected):
        assert round_half_up(value) == expected

    def test_half_point_persona_score_rounds_up(self):
        # curated repo weight 10 * 0.1, kernel keyword x2.5
        personas = calculate_personas(None, [repo("awesome-kernel")])
        assert personas.systems_architect == 3

    def test_empty_profile_scores_zero(self):
        personas = calculate_personas(None, [])
        assert all(value == 0 for value in personas.model_dump().values())
        assert set(personas.model_dump()) == set(PERSONA_KEYS)

    def test_bio_keywords(self):
        personas = calculate_personas("I love LLMs and GPT", [])
        assert personas.ai_whisperer > 0
        assert personas.frontend_wizard == 0

    def test_scores_are_capped(self):
        repos = [repo(f"react-thing-{i}", description="react frontend", stars=100000) for i in range(20)]
        personas = calculate_personas("react css html frontend", repos)
        assert personas.frontend_wizard == 100

    def test_curation_repositories_weigh_less(self):
        real = calculate_personas(None, [repo("kernel-tools", description="kernel driver", stars=1000)])
        curated = calculate_personas(None, [repo("awesome-kernel", description="kernel driver", stars=1000)])
        assert curated.systems_architect < real.systems_architect

    def test_is_curation(self):
        assert is_curation(repo("awesome-python"))
        assert is_curation(repo("things", description="A curated list of tools"))
        assert not is_curation(repo("fastapi"))

    def test_unknown_persona_key_is_rejected(self):
        with pytest.raises(ValidationError):
            DeveloperPersonas(wizard=10)
        with pytest.raises(ValidationError):
            DeveloperPersonas(ai_whisperer=150)


class TestBadges:

    def test_no_keywords(self):
        assert identify_badges("Just a person who writes code", "Acme") == []
        assert identify_badges(None, None) == []

    def test_case_insensitive_mvp(self):
        badges = identify_badges("MICROSOFT MVP since 2019", None)
        assert [b.type for b in badges] == ["MVP"]

    def test_gde_category(self):
        badges = identify_badges("Google Developer Expert in Android", None)
        assert badges[0].type == "GDE"
        assert badges[0].category == "Android"

    def test_gde_ml_needs_word_boundary(self):
        assert identify_badges("GDE for ML", None)[0].category == "Machine Learning"
        assert identify_badges("GDE, html enthusiast", None)[0].category == "General"

    def test_short_acronyms_need_word_boundaries(self):
        assert identify_badges("I run hackathons", None) == []
        assert [b.type for b in identify_badges("CKA and CISSP", None)] == ["CKA", "CISSP"]

    def test_big_tech_uses_company(self):
        badges = identify_badges(None, " Google ")
        assert badges[0].type == "Big Tech Alumni"
        assert badges[0].category == "Google"


class TestLanguageExpertise:

    @pytest.mark.parametrize("score,level", [(95, "master"), (80, "expert"), (60, "advanced"), (40, "intermediate"), (10, "beginner")])
    def test_levels(self, score, level):
        assert expertise_level(score) == level

    def test_groups_and_ranks_languages(self):
        repos = [
            repo("a", language="Rust", stars=5000, commits=900),
            repo("b", language="Rust", stars=200, commits=50),
            repo("c", language="Go", stars=3),
            repo("d", owner="other", language="Python", stars=10, recentCommits=4),
            repo("no-language"),
        ]
        stats = calculate_language_expertise(repos, "dev")
        languages = [e.language for e in stats.expertise]
        assert languages[0] == "Rust"
        assert set(languages) == {"Rust", "Go", "Python"}
        assert stats.expertise[0].is_primary
        assert not any(e.is_primary for e in stats.expertise[1:])
        assert stats.expertise[0].largest_project == "a"
        assert stats.favorites == languages[:3]
        assert 0 <= stats.polyglot_score <= 100

    def test_empty(self):
        stats = calculate_language_expertise([], "dev")
        assert stats.expertise == []
        assert stats.polyglot_score == 0

    def test_dominant_language_falls_back_to_top_repos(self):
        assert dominant_language(LanguageStats(), [repo("x", language="Go"), repo("y", language="Go")]) == "Go"
        assert dominant_language(LanguageStats(), []) is None


class TestShowcaseSelection:

    def test_primary_single_masterpiece(self):
        status, picks = select_primary_work([repo("big", stars=1000), repo("small", stars=10)])
        assert status == "single_masterpiece"
        assert [r["name"] for r, _ in picks] == ["big"]

    def test_primary_dual_wielding_within_ten_percent(self):
        status, picks = select_primary_work([repo("a", stars=1000), repo("b", stars=950)])
        assert status == "dual_wielding"
        assert len(picks) == 2

    def test_primary_empty(self):
        assert select_primary_work([]) == ("single_masterpiece", [])

    def test_systems_bonus(self):
        plain = effort_score(repo("x", language="Python", stars=100, diskUsage=20000))
        systems = effort_score(repo("x", language="Rust", stars=100, diskUsage=20000))
        assert systems == pytest.approx(plain * 1.2)

    def test_pulse_ignores_stale_repositories(self):
        assert pulse_score(repo("old", pushed_days=120), NOW) is None
        assert pulse_score(repo("new", pushed_days=2, recentCommits=3), NOW) == 28

    def test_current_work_statuses(self):
        assert select_current_work([repo("old", pushed_days=200)], NOW) == ("dormant", [])

        status, picks = select_current_work(
            [repo("hot", pushed_days=1, recentCommits=10), repo("cold", pushed_days=60)], NOW,
        )
        assert status == "focused"
        assert picks[0][0]["name"] == "hot"

        status, picks = select_current_work(
            [repo("a", pushed_days=1, recentCommits=10), repo("b", pushed_days=2, recentCommits=9)], NOW,
        )
        assert status == "multi_tasking"
        assert len(picks) == 2

    def test_repo_link_marks_contributions(self):
        link = repo_link(repo("lib", owner="someone-else", stars=5), "dev", 12, pulse_score=30)
        assert link.is_contribution
        assert link.internal_repo_id == 12
        assert link.pulse_score == 30


class TestCounters:

    def test_years_active(self):
        assert years_active(NOW - timedelta(days=365 * 3 + 10), NOW) == 3
        assert years_active(None, NOW) == 0

    def test_velocity_has_one_month_floor(self):
        assert velocity(240, 0) == 240
        assert velocity(240, 2) == 10

    def test_rising_star(self):
        assert is_rising_star(False, 11, 1)
        assert not is_rising_star(True, 11, 1)
        assert not is_rising_star(False, 10, 1)
        assert not is_rising_star(False, 50, 2)
