"""
GitHub service for fetching repository and developer data.
Wraps the REST search/stats endpoints and the GraphQL API behind one
shared httpx.AsyncClient.
"""
import logging
from typing import Dict, List, Optional, Tuple

import httpx

from config import Settings
from services.exceptions import (
    ContributorsUnavailable, GithubConfigurationError, GithubError,
    GithubGraphQLError, GithubRateLimitError,
)

logger = logging.getLogger(__name__)


# ============================================================================
# GRAPHQL DOCUMENTS
# ============================================================================

REPOSITORY_FIELDS = """
    databaseId
    name
    nameWithOwner
    owner { login avatarUrl }
    description
    url
    homepageUrl
    stargazerCount
    forkCount
    watchers { totalCount }
    issues(states: OPEN) { totalCount }
    diskUsage
    primaryLanguage { name }
    repositoryTopics(first: 10) { nodes { topic { name } } }
    languages(first: 10, orderBy: {field: SIZE, direction: DESC}) {
        edges { size node { name } }
        totalSize
    }
    licenseInfo { name key }
    createdAt
    updatedAt
    pushedAt
    isFork
    isArchived
    isDisabled
    forkingAllowed
    isTemplate
    visibility
    hasIssuesEnabled
    hasProjectsEnabled
    hasWikiEnabled
    hasDiscussionsEnabled
    defaultBranchRef {
        name
        target { ... on Commit { history(first: 1) { totalCount } } }
    }
    releases(first: 1, orderBy: {field: CREATED_AT, direction: DESC}) {
        totalCount
        nodes { tagName publishedAt }
    }
    readmeUpper: object(expression: "HEAD:README.md") { ... on Blob { text } }
    readmeLower: object(expression: "HEAD:readme.md") { ... on Blob { text } }
    readmeTitle: object(expression: "HEAD:Readme.md") { ... on Blob { text } }
    readmePlain: object(expression: "HEAD:README") { ... on Blob { text } }
"""

REPOSITORY_QUERY = """
query FetchRepository($owner: String!, $name: String!) {
    repository(owner: $owner, name: $name) {
        %s
    }
}
""" % REPOSITORY_FIELDS

TOP_REPOSITORIES_QUERY = """
query TopRepositories($limit: Int!, $cursor: String) {
    search(query: "stars:>1 sort:stars-desc", type: REPOSITORY, first: $limit, after: $cursor) {
        pageInfo { endCursor hasNextPage }
        nodes { ... on Repository { %s } }
    }
}
""" % REPOSITORY_FIELDS

COMMIT_HISTORY_QUERY = """
query CommitHistory($owner: String!, $name: String!, $cursor: String) {
    repository(owner: $owner, name: $name) {
        defaultBranchRef {
            target {
                ... on Commit {
                    history(first: 100, after: $cursor) {
                        pageInfo { hasNextPage endCursor }
                        nodes { author { user { login databaseId avatarUrl url } } }
                    }
                }
            }
        }
    }
}
"""

README_VARIANTS = (
    "README.md", "readme.md", "Readme.md", "ReadMe.md", "README.MD",
    "README", "README.rst", "README.txt", "readme",
)

README_QUERY = """
query FetchReadme($owner: String!, $name: String!) {
    repository(owner: $owner, name: $name) {
        %s
    }
}
""" % "\n        ".join(
    f'v{i}: object(expression: "HEAD:{variant}") {{ ... on Blob {{ text }} }}'
    for i, variant in enumerate(README_VARIANTS)
)

PROFILE_REPOSITORY_FIELDS = """
    databaseId name description url stargazerCount pushedAt diskUsage createdAt updatedAt forkCount
    owner { login }
    primaryLanguage { name }
    repositoryTopics(first: 5) { nodes { topic { name } } }
"""

PROFILE_FIELDS = """
    databaseId login name avatarUrl location websiteUrl twitterUsername createdAt url
    repositories(first: 20, orderBy: {field: STARGAZERS, direction: DESC}, isFork: false) {
        nodes {
            %s
            defaultBranchRef { target { ... on Commit { history { totalCount } } } }
        }
    }
""" % PROFILE_REPOSITORY_FIELDS

USER_PROFILE_QUERY = """
query UserProfile($login: String!) {
    user(login: $login) {
        %s
        bio
        company
        contributionsCollection {
            commitContributionsByRepository(maxRepositories: 20) {
                contributions(first: 1) { totalCount }
                repository { %s }
            }
        }
    }
}
""" % (PROFILE_FIELDS, PROFILE_REPOSITORY_FIELDS)

ORGANIZATION_PROFILE_QUERY = """
query OrganizationProfile($login: String!) {
    organization(login: $login) {
        %s
        description
    }
}
""" % PROFILE_FIELDS


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    try:
        return float(value) if value else None
    except ValueError:
        return None


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]
    return data.get("message", "") if isinstance(data, dict) else ""


class GitHubService:
    """Service for interacting with the GitHub REST and GraphQL APIs."""

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        if not settings.github_token:
            raise GithubConfigurationError("GITHUB_TOKEN is not set")
        self.base_url = settings.github_api_url.rstrip("/")
        self.graphql_url = settings.github_graphql_url
        self.headers = {
            "Accept": "application/vnd.github.v3+json",
            "Authorization": f"Bearer {settings.github_token}",
        }
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=settings.http_timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # REST
    # ------------------------------------------------------------------

    async def _get(self, path: str, params: Optional[Dict] = None) -> httpx.Response:
        try:
            return await self._client.get(f"{self.base_url}{path}", headers=self.headers, params=params)
        except httpx.RequestError as e:
            raise GithubError(f"Failed to connect to GitHub: {str(e)}") from e

    async def _get_json(self, path: str, params: Optional[Dict] = None):
        response = await self._get(path, params)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status in (403, 429):
                raise GithubRateLimitError(
                    f"GitHub API rate limit exceeded: {_error_message(e.response)}",
                    retry_after=_retry_after(e.response),
                ) from e
            raise GithubError(f"GitHub API error: {status} {_error_message(e.response)}") from e
        return response.json()

    async def search_repositories(
        self, query: str, sort: str = "stars", order: str = "desc", per_page: int = 100,
    ) -> List[Dict]:
        """Repository search (first page only)."""
        data = await self._get_json(
            "/search/repositories",
            {"q": query, "sort": sort, "order": order, "per_page": min(per_page, 100)},
        )
        return data.get("items", [])

    async def search_users(self, query: str, page: int = 1, per_page: int = 100) -> List[Dict]:
        data = await self._get_json(
            "/search/users", {"q": query, "per_page": min(per_page, 100), "page": page},
        )
        return data.get("items", [])

    async def get_user(self, login: str) -> Optional[Dict]:
        """REST profile, or None when the account does not exist or cannot be read."""
        response = await self._get(f"/users/{login}")
        if response.status_code != 200:
            logger.info("User %s not available (%s)", login, response.status_code)
            return None
        return response.json()

    async def get_contributors(self, full_name: str) -> List[Dict]:
        """
        All-time contributor list (top 30).

        Raises ContributorsUnavailable for anything but a JSON list, including
        204 (empty history) and 403 (history too large to compute).
        """
        response = await self._get(f"/repos/{full_name}/contributors", {"per_page": 30})
        if response.status_code == 200:
            data = response.json()
            if isinstance(data, list):
                return data
            raise ContributorsUnavailable(200, "unexpected payload")
        message = _error_message(response) if response.content else ""
        raise ContributorsUnavailable(response.status_code, message)

    async def get_commit_activity(self, full_name: str) -> Optional[List[Dict]]:
        """
        Weekly commit buckets for the last year.
        Returns None while GitHub is still computing the statistics (HTTP 202).
        """
        response = await self._get(f"/repos/{full_name}/stats/commit_activity")
        if response.status_code == 202:
            return None
        if response.status_code != 200:
            raise GithubError(f"Commit activity failed for {full_name}: {response.status_code}")
        data = response.json()
        return data if isinstance(data, list) else []

    async def get_recent_commits(self, full_name: str, per_page: int = 50) -> Optional[List[Dict]]:
        response = await self._get(f"/repos/{full_name}/commits", {"per_page": per_page})
        if response.status_code != 200:
            return None
        data = response.json()
        return data if isinstance(data, list) else None

    async def count_user_commits(self, full_name: str, login: str) -> int:
        """All-time commit count of one author via the Search API; 0 on any failure."""
        try:
            response = await self._get(
                "/search/commits", {"q": f"repo:{full_name} author:{login}", "per_page": 1},
            )
        except GithubError as e:
            logger.warning("Commit search failed for %s in %s: %s", login, full_name, e)
            return 0
        if response.status_code != 200:
            return 0
        return int(response.json().get("total_count") or 0)

    # ------------------------------------------------------------------
    # GraphQL
    # ------------------------------------------------------------------

    async def graphql(self, query: str, variables: Optional[Dict] = None) -> Dict:
        """Run a GraphQL document and return its `data` object."""
        try:
            response = await self._client.post(
                self.graphql_url,
                headers=self.headers,
                json={"query": query, "variables": variables or {}},
            )
        except httpx.RequestError as e:
            raise GithubError(f"Failed to connect to GitHub: {str(e)}") from e

        if response.status_code in (403, 429):
            raise GithubRateLimitError(
                f"GitHub GraphQL rate limit exceeded ({response.status_code})",
                retry_after=_retry_after(response),
            )
        if response.status_code >= 400:
            raise GithubError(f"GitHub GraphQL error: {response.status_code}")

        payload = response.json()
        errors = payload.get("errors") or []
        if errors:
            message = "; ".join(e.get("message", "") for e in errors)
            if any(e.get("type") == "RATE_LIMITED" for e in errors) or "rate limit" in message.lower():
                raise GithubRateLimitError(message)
            # Missing objects come back as null data plus NOT_FOUND errors
            if not all(e.get("type") == "NOT_FOUND" for e in errors):
                raise GithubGraphQLError(message, errors)
        return payload.get("data") or {}

    async def get_repository(self, owner: str, name: str) -> Optional[Dict]:
        data = await self.graphql(REPOSITORY_QUERY, {"owner": owner, "name": name})
        node = data.get("repository")
        if not node or not node.get("databaseId"):
            return None
        return node

    async def search_top_repositories(
        self, limit: int, cursor: Optional[str] = None,
    ) -> Tuple[List[Dict], Optional[str], bool]:
        """One page of the all-time top-starred search."""
        data = await self.graphql(TOP_REPOSITORIES_QUERY, {"limit": limit, "cursor": cursor})
        search = data.get("search") or {}
        page_info = search.get("pageInfo") or {}
        nodes = [n for n in search.get("nodes") or [] if n and n.get("databaseId")]
        return nodes, page_info.get("endCursor"), bool(page_info.get("hasNextPage"))

    async def get_commit_history(self, owner: str, name: str, cursor: Optional[str] = None) -> Optional[Dict]:
        """One 100-commit page of default-branch history, or None when unavailable."""
        data = await self.graphql(COMMIT_HISTORY_QUERY, {"owner": owner, "name": name, "cursor": cursor})
        repository = data.get("repository") or {}
        target = (repository.get("defaultBranchRef") or {}).get("target") or {}
        return target.get("history")

    async def get_readme(self, owner: str, name: str) -> Optional[str]:
        """First non-empty README among the known casing/extension variants."""
        data = await self.graphql(README_QUERY, {"owner": owner, "name": name})
        repository = data.get("repository") or {}
        for i in range(len(README_VARIANTS)):
            blob = repository.get(f"v{i}")
            if blob and blob.get("text"):
                return blob["text"]
        return None

    async def get_developer_profile(self, login: str, is_organization: bool = False) -> Optional[Dict]:
        """
        Profile plus owned repositories (top 20 by stars) and, for users,
        repositories they committed to during the last year.

        The result always carries `bio` and a `contributions` list.
        """
        if is_organization:
            data = await self.graphql(ORGANIZATION_PROFILE_QUERY, {"login": login})
            profile = data.get("organization")
            if not profile:
                return None
            profile["bio"] = profile.get("description")
            profile["contributions"] = []
            return profile

        data = await self.graphql(USER_PROFILE_QUERY, {"login": login})
        profile = data.get("user")
        if not profile:
            return None
        collection = profile.pop("contributionsCollection", None) or {}
        profile["contributions"] = collection.get("commitContributionsByRepository") or []
        return profile
