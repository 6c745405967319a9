"""GitHub API exceptions."""

from typing import List, Optional


class GitHubAPIError(Exception):
    """Base exception for GitHub API errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[dict] = None,
    ):
        """Initialize GitHub API error.

        Args:
            message: Error message
            status_code: HTTP status code
            response_data: Response data from API
        """
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data

    @property
    def is_transient(self) -> bool:
        """Whether retrying the same request later may succeed."""
        return self.status_code is None or self.status_code >= 500


class GitHubAuthenticationError(GitHubAPIError):
    """Authentication error with GitHub API."""

    @property
    def is_transient(self) -> bool:
        return False


class GitHubRateLimitError(GitHubAPIError):
    """Rate limit exceeded error."""

    def __init__(self, message: str, retry_after: int = 60, **kwargs):
        """Initialize rate limit error.

        Args:
            message: Error message
            retry_after: Seconds to wait before retry
            **kwargs: Additional arguments for base class
        """
        super().__init__(message, **kwargs)
        self.retry_after = retry_after

    @property
    def is_transient(self) -> bool:
        return True


class GitHubNotFoundError(GitHubAPIError):
    """Resource not found error."""

    @property
    def is_transient(self) -> bool:
        return False


class GitHubGraphQLError(GitHubAPIError):
    """GraphQL request answered with an ``errors`` array."""

    def __init__(self, message: str, errors: Optional[List[dict]] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.errors = errors or []

    @property
    def is_transient(self) -> bool:
        return False
