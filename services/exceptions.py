"""Exceptions raised by the external source adapters."""

from typing import Optional, Union


class GithubError(Exception):
    """Base exception for GitHub API failures."""


class GithubConfigurationError(GithubError):
    """Raised when required configuration is missing."""


class GithubRateLimitError(GithubError):
    """Raised when GitHub enforces a rate limit (HTTP 403/429 or a GraphQL rate-limit error)."""

    def __init__(self, message: str, retry_after: Optional[Union[int, float]] = None):
        super().__init__(message)
        self.retry_after = retry_after


class GithubGraphQLError(GithubError):
    """Raised when a GraphQL response carries an `errors` array."""

    def __init__(self, message: str, errors: Optional[list] = None):
        super().__init__(message)
        self.errors = errors or []


class ContributorsUnavailable(GithubError):
    """
    Raised when the REST contributors endpoint cannot serve a repository.

    GitHub answers 204 for empty histories and 403 ("list is too large")
    for very large ones; both trigger the history-scan fallback.
    """

    def __init__(self, status_code: int, message: str = ""):
        super().__init__(f"Contributors unavailable ({status_code}): {message}".strip())
        self.status_code = status_code
        self.message = message
