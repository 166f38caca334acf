"""Shared fixtures: settings without delays, GraphQL node builders and in-memory doubles."""

import os

# main.py loads settings at import time
os.environ.setdefault("GITHUB_TOKEN", "test-token")

from datetime import datetime, timedelta, timezone

import pytest

from config import Delays, Settings


def iso(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%dT%H:%M:%SZ")


def days_ago(days: float) -> str:
    return iso(datetime.now(timezone.utc) - timedelta(days=days))


@pytest.fixture
def settings():
    return Settings(github_token="test-token", delays=Delays.none())


@pytest.fixture
def repo_node():
    """Factory for GraphQL repository nodes."""

    def build(name="widget", owner="octo", github_id=1001, stars=100, **overrides):
        node = {
            "databaseId": github_id,
            "name": name,
            "nameWithOwner": f"{owner}/{name}",
            "owner": {"login": owner, "avatarUrl": f"https://avatars.example/{owner}"},
            "description": f"{name} description",
            "url": f"https://github.com/{owner}/{name}",
            "stargazerCount": stars,
            "forkCount": 10,
            "watchers": {"totalCount": 5},
            "issues": {"totalCount": 3},
            "diskUsage": 2048,
            "primaryLanguage": {"name": "Python"},
            "repositoryTopics": {"nodes": [{"topic": {"name": "cli"}}]},
            "languages": {
                "edges": [{"size": 750, "node": {"name": "Python"}}, {"size": 250, "node": {"name": "Shell"}}],
                "totalSize": 1000,
            },
            "licenseInfo": {"name": "MIT License"},
            "createdAt": days_ago(400),
            "updatedAt": days_ago(1),
            "pushedAt": days_ago(2),
            "isFork": False,
            "isArchived": False,
            "isDisabled": False,
            "hasIssuesEnabled": True,
            "hasDiscussionsEnabled": False,
            "defaultBranchRef": {"name": "main", "target": {"history": {"totalCount": 250}}},
            "releases": {"totalCount": 4, "nodes": [{"tagName": "v1.2.0", "publishedAt": days_ago(20)}]},
            "readmeUpper": {"text": "# Widget\nDoes things."},
        }
        node.update(overrides)
        return node

    return build


class FakeSession:
    """Stands in for an AsyncSession and its transaction/savepoint contexts."""

    def __init__(self):
        self.entered = 0

    async def __aenter__(self):
        self.entered += 1
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def begin_nested(self):
        return FakeSession()


class FakeDatabase:
    def __init__(self):
        self.sessions = 0
        self.transactions = 0
        self.ping_error = None

    def session(self):
        self.sessions += 1
        return FakeSession()

    def transaction(self):
        self.transactions += 1
        return FakeSession()

    async def ping(self):
        if self.ping_error is not None:
            raise self.ping_error


@pytest.fixture
def fake_database():
    return FakeDatabase()
