"""
Immutable snapshots of GitHub API payloads.
Anti-corruption layer between GraphQL nodes and the repositories table.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

README_MAX_CHARS = 10000


def parse_github_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def clean_readme(text: Optional[str]) -> Optional[str]:
    """Strip NUL bytes (rejected by PostgreSQL text) and truncate."""
    if not text:
        return None
    cleaned = text.replace("\x00", "")[:README_MAX_CHARS]
    return cleaned or None


@dataclass(frozen=True)
class RepositorySnapshot:
    """Full repository metadata as returned by the GraphQL repository query."""

    github_id: int
    name: str
    full_name: str
    owner_login: str
    owner_avatar_url: Optional[str] = None
    description: Optional[str] = None
    html_url: Optional[str] = None
    homepage_url: Optional[str] = None
    stars_count: int = 0
    forks_count: int = 0
    watchers_count: int = 0
    open_issues_count: int = 0
    size_kb: int = 0
    language: Optional[str] = None
    topics: Tuple[str, ...] = ()
    license_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    pushed_at: Optional[datetime] = None
    is_fork: bool = False
    is_archived: bool = False
    is_disabled: bool = False
    allow_forking: bool = True
    is_template: bool = False
    visibility: str = "public"
    has_issues: bool = True
    has_projects: bool = True
    has_wiki: bool = True
    has_discussions: bool = False
    default_branch: str = "main"
    readme: Optional[str] = None
    languages: Tuple[Tuple[str, int], ...] = field(default_factory=tuple)
    languages_total_size: int = 0
    commit_count: int = 0
    release_count: int = 0
    latest_release_tag: Optional[str] = None
    latest_release_date: Optional[datetime] = None

    @classmethod
    def from_graphql(cls, node: Dict) -> "RepositorySnapshot":
        """Create a snapshot from a GraphQL repository node."""
        owner = node.get("owner") or {}
        branch = node.get("defaultBranchRef") or {}
        history = (branch.get("target") or {}).get("history") or {}
        releases = node.get("releases") or {}
        latest = (releases.get("nodes") or [None])[0] or {}
        languages = node.get("languages") or {}
        topics = tuple(
            t["topic"]["name"]
            for t in (node.get("repositoryTopics") or {}).get("nodes") or []
            if t and t.get("topic")
        )
        readme = None
        for alias in ("readmeUpper", "readmeLower", "readmeTitle", "readmePlain"):
            blob = node.get(alias)
            if blob and blob.get("text"):
                readme = blob["text"]
                break

        return cls(
            github_id=node["databaseId"],
            name=node["name"],
            full_name=node.get("nameWithOwner") or f"{owner.get('login')}/{node['name']}",
            owner_login=owner.get("login", ""),
            owner_avatar_url=owner.get("avatarUrl"),
            description=node.get("description"),
            html_url=node.get("url"),
            homepage_url=node.get("homepageUrl") or None,
            stars_count=node.get("stargazerCount") or 0,
            forks_count=node.get("forkCount") or 0,
            watchers_count=(node.get("watchers") or {}).get("totalCount") or 0,
            open_issues_count=(node.get("issues") or {}).get("totalCount") or 0,
            size_kb=node.get("diskUsage") or 0,
            language=(node.get("primaryLanguage") or {}).get("name"),
            topics=topics,
            license_name=(node.get("licenseInfo") or {}).get("name"),
            created_at=parse_github_datetime(node.get("createdAt")),
            updated_at=parse_github_datetime(node.get("updatedAt")),
            pushed_at=parse_github_datetime(node.get("pushedAt")),
            is_fork=bool(node.get("isFork")),
            is_archived=bool(node.get("isArchived")),
            is_disabled=bool(node.get("isDisabled")),
            allow_forking=bool(node.get("forkingAllowed", True)),
            is_template=bool(node.get("isTemplate")),
            visibility=(node.get("visibility") or "PUBLIC").lower(),
            has_issues=bool(node.get("hasIssuesEnabled", True)),
            has_projects=bool(node.get("hasProjectsEnabled", True)),
            has_wiki=bool(node.get("hasWikiEnabled", True)),
            has_discussions=bool(node.get("hasDiscussionsEnabled")),
            default_branch=branch.get("name") or "main",
            readme=clean_readme(readme),
            languages=tuple(
                (edge["node"]["name"], edge.get("size") or 0)
                for edge in languages.get("edges") or []
                if edge and edge.get("node")
            ),
            languages_total_size=languages.get("totalSize") or 0,
            commit_count=history.get("totalCount") or 0,
            release_count=releases.get("totalCount") or 0,
            latest_release_tag=latest.get("tagName"),
            latest_release_date=parse_github_datetime(latest.get("publishedAt")),
        )

    def to_row(self) -> Dict:
        """Column values for the repositories table."""
        return {
            "github_id": self.github_id,
            "name": self.name,
            "full_name": self.full_name,
            "owner_login": self.owner_login,
            "owner_avatar_url": self.owner_avatar_url,
            "description": self.description,
            "html_url": self.html_url,
            "homepage_url": self.homepage_url,
            "stars_count": self.stars_count,
            "forks_count": self.forks_count,
            "watchers_count": self.watchers_count,
            "open_issues_count": self.open_issues_count,
            "size_kb": self.size_kb,
            "language": self.language,
            "topics": list(self.topics),
            "license_name": self.license_name,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "pushed_at": self.pushed_at,
            "is_fork": self.is_fork,
            "is_archived": self.is_archived,
            "is_disabled": self.is_disabled,
            "allow_forking": self.allow_forking,
            "is_template": self.is_template,
            "visibility": self.visibility,
            "has_issues": self.has_issues,
            "has_projects": self.has_projects,
            "has_downloads": True,
            "has_wiki": self.has_wiki,
            "has_pages": False,
            "has_discussions": self.has_discussions,
            "default_branch": self.default_branch,
            "subscribers_count": self.watchers_count,
            "network_count": self.forks_count,
            "readme_snippet": self.readme,
        }

    def language_shares(self) -> List[Tuple[str, int, float]]:
        """(language, bytes, percentage of the repository's total size)."""
        total = self.languages_total_size
        return [
            (name, size, round(size / total * 100, 2) if total > 0 else 0.0)
            for name, size in self.languages
        ]


def stub_row(node: Dict) -> Dict:
    """Minimal repositories row for a repository seen only in a developer profile."""
    owner = (node.get("owner") or {}).get("login", "")
    return {
        "github_id": node["databaseId"],
        "full_name": f"{owner}/{node['name']}",
        "name": node["name"],
        "owner_login": owner,
        "description": node.get("description") or "",
        "html_url": node.get("url"),
        "stars_count": node.get("stargazerCount") or 0,
        "language": (node.get("primaryLanguage") or {}).get("name"),
        "pushed_at": parse_github_datetime(node.get("pushedAt")),
        "created_at": parse_github_datetime(node.get("createdAt")),
        "updated_at": parse_github_datetime(node.get("updatedAt")),
        "forks_count": node.get("forkCount") or 0,
        "size_kb": node.get("diskUsage") or 0,
        "is_fork": False,
        "is_archived": False,
        "is_disabled": False,
        "visibility": "public",
        "sync_status": "stub",
        "categories": ["stub"],
    }
