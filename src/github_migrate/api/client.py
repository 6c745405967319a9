"""GitHub API client implementation."""

import asyncio
import json
from typing import Any, Dict, Optional
from urllib.parse import urljoin

import aiohttp
import requests
from loguru import logger
from pydantic import BaseModel

from ..config.config import GitHubConfig, secret_value
from ..models.migration import MigrationHandle, MigrationState
from .exceptions import (
    GitHubAPIError,
    GitHubAuthenticationError,
    GitHubGraphQLError,
    GitHubNotFoundError,
    GitHubRateLimitError,
)
from .rate_limiter import RateLimiter


USER_AGENT = 'github-migrate/0.1.0'

ADO_SOURCE_NAME = 'Azure DevOps Source'
BBS_SOURCE_NAME = 'Bitbucket Server Source'

GET_ORGANIZATION_ID_QUERY = """
query($login: String!) {
  organization(login: $login) { login, id, name }
}
"""

CREATE_MIGRATION_SOURCE_MUTATION = """
mutation createMigrationSource($name: String!, $url: String!, $ownerId: ID!, $type: MigrationSourceType!) {
  createMigrationSource(input: {name: $name, url: $url, ownerId: $ownerId, type: $type}) {
    migrationSource { id, name, url, type }
  }
}
"""

START_REPOSITORY_MIGRATION_MUTATION = """
mutation startRepositoryMigration(
  $sourceId: ID!,
  $ownerId: ID!,
  $sourceRepositoryUrl: URI!,
  $repositoryName: String!,
  $continueOnError: Boolean!,
  $gitArchiveUrl: String,
  $metadataArchiveUrl: String,
  $accessToken: String!,
  $githubPat: String,
  $skipReleases: Boolean,
  $targetRepoVisibility: String,
  $lockSource: Boolean
) {
  startRepositoryMigration(input: {
    sourceId: $sourceId,
    ownerId: $ownerId,
    sourceRepositoryUrl: $sourceRepositoryUrl,
    repositoryName: $repositoryName,
    continueOnError: $continueOnError,
    gitArchiveUrl: $gitArchiveUrl,
    metadataArchiveUrl: $metadataArchiveUrl,
    accessToken: $accessToken,
    githubPat: $githubPat,
    skipReleases: $skipReleases,
    targetRepoVisibility: $targetRepoVisibility,
    lockSource: $lockSource
  }) {
    repositoryMigration { id, state, failureReason, repositoryName }
  }
}
"""

GET_MIGRATION_QUERY = """
query($id: ID!) {
  node(id: $id) {
    ... on Migration {
      id, sourceUrl, migrationLogUrl, state, failureReason, repositoryName
    }
  }
}
"""


class APIResponse(BaseModel):
    """Standard API response wrapper."""

    status_code: int
    data: Any
    headers: Dict[str, str]
    success: bool


def _raise_for_status(status: int, headers: Dict[str, str], message: str, data=None):
    """Map an HTTP error status to the matching exception."""
    if status == 429 or (status == 403 and headers.get('X-RateLimit-Remaining') == '0'):
        retry_after = int(headers.get('Retry-After', 60))
        raise GitHubRateLimitError(
            f'Rate limit exceeded. Retry after {retry_after} seconds',
            retry_after=retry_after,
            status_code=status,
        )

    if status == 401:
        raise GitHubAuthenticationError('Authentication failed', status_code=status)

    if status == 404:
        raise GitHubNotFoundError('Resource not found', status_code=status)

    raise GitHubAPIError(
        f'API request failed: {message}', status_code=status, response_data=data
    )


class GitHubClient:
    """GitHub REST and GraphQL client with token authentication."""

    def __init__(self, config: GitHubConfig):
        """Initialize GitHub client.

        Args:
            config: GitHub instance configuration

        Raises:
            GitHubAuthenticationError: If no token is configured
        """
        self.config = config
        self.base_url = config.api_url.rstrip('/')

        token = secret_value(config.token)
        if not token:
            raise GitHubAuthenticationError('No GitHub personal access token provided')
        self._token = token

        self.session = requests.Session()
        self.session.headers.update(self._headers())
        self.rate_limiter = RateLimiter(config.rate_limit_per_second)

        logger.info(f'Initialized GitHub client for {config.api_url}')

    def _headers(self) -> Dict[str, str]:
        return {
            'Authorization': f'Bearer {self._token}',
            'Content-Type': 'application/json',
            'User-Agent': USER_AGENT,
            'GraphQL-Features': 'import_api,mannequin_claiming',
        }

    def _build_url(self, endpoint: str) -> str:
        """Build full API URL from endpoint.

        Args:
            endpoint: API endpoint path

        Returns:
            Full API URL
        """
        return urljoin(self.base_url + '/', endpoint.lstrip('/'))

    def _handle_response(self, response: requests.Response) -> APIResponse:
        """Handle API response and convert to standard format.

        Args:
            response: Raw HTTP response

        Returns:
            Standardized API response

        Raises:
            GitHubAPIError: For various API errors
        """
        headers = dict(response.headers)

        if response.status_code >= 400:
            error_data = None
            try:
                error_data = response.json()
                message = error_data.get('message', f'HTTP {response.status_code}')
            except ValueError:
                message = f'HTTP {response.status_code}: {response.text}'
            _raise_for_status(response.status_code, headers, message, error_data)

        try:
            data = response.json() if response.content else None
        except ValueError:
            data = response.text

        return APIResponse(
            status_code=response.status_code,
            data=data,
            headers=headers,
            success=200 <= response.status_code < 300,
        )

    def get(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None, **kwargs
    ) -> APIResponse:
        """Make GET request.

        Args:
            endpoint: API endpoint
            params: Query parameters
            **kwargs: Additional request arguments

        Returns:
            API response
        """
        url = self._build_url(endpoint)

        try:
            response = self.session.get(
                url, params=params, timeout=self.config.timeout, **kwargs
            )
            return self._handle_response(response)
        except requests.RequestException as e:
            logger.error(f'Network error during GET request: {e}')
            raise GitHubAPIError(f'Network error: {e}')

    async def graphql(
        self, query: str, variables: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Run a GraphQL query or mutation.

        Args:
            query: GraphQL document
            variables: Query variables

        Returns:
            The ``data`` member of the response

        Raises:
            GitHubGraphQLError: If the response carries an ``errors`` array
            GitHubAPIError: For HTTP and network errors
        """
        await self.rate_limiter.acquire()

        payload = {'query': query, 'variables': variables or {}}
        timeout = aiohttp.ClientTimeout(total=self.config.timeout)

        async with aiohttp.ClientSession(
            headers=self._headers(), timeout=timeout
        ) as session:
            try:
                async with session.post(self.config.graphql_url, json=payload) as response:
                    response_headers = dict(response.headers)
                    response_text = await response.text()

                    if response.status >= 400:
                        _raise_for_status(
                            response.status,
                            response_headers,
                            f'HTTP {response.status}: {response_text}',
                        )
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.error(f'Network error during GraphQL request: {e}')
                raise GitHubAPIError(f'Network error: {e!r}')

        try:
            body = json.loads(response_text) if response_text else {}
        except json.JSONDecodeError:
            raise GitHubAPIError(
                f'Invalid GraphQL response: {response_text}', status_code=response.status
            )

        errors = body.get('errors')
        if errors:
            raise GitHubGraphQLError(
                errors[0].get('message', 'Unknown GraphQL error'),
                errors=errors,
                status_code=response.status,
                response_data=body,
            )

        return body.get('data') or {}

    async def get_organization_id(self, org: str) -> str:
        """Resolve the GraphQL node id of an organization."""
        data = await self.graphql(GET_ORGANIZATION_ID_QUERY, {'login': org})
        organization = data.get('organization')
        if not organization:
            raise GitHubNotFoundError(f'Organization not found: {org}')
        return organization['id']

    async def create_migration_source(
        self, org_id: str, name: str, url: str, source_type: str
    ) -> str:
        """Create a migration source owned by the organization."""
        data = await self.graphql(
            CREATE_MIGRATION_SOURCE_MUTATION,
            {'name': name, 'url': url, 'ownerId': org_id, 'type': source_type},
        )
        return data['createMigrationSource']['migrationSource']['id']

    async def create_ado_migration_source(
        self, org_id: str, ado_server_url: Optional[str] = None
    ) -> str:
        return await self.create_migration_source(
            org_id,
            ADO_SOURCE_NAME,
            ado_server_url or 'https://dev.azure.com',
            'AZURE_DEVOPS',
        )

    async def create_bbs_migration_source(self, org_id: str) -> str:
        return await self.create_migration_source(
            org_id, BBS_SOURCE_NAME, 'https://not-used', 'BITBUCKET_SERVER'
        )

    async def start_migration(
        self,
        migration_source_id: str,
        source_repo_url: str,
        org_id: str,
        repo: str,
        source_token: Optional[str],
        target_token: str,
        git_archive_url: Optional[str] = None,
        metadata_archive_url: Optional[str] = None,
        skip_releases: bool = False,
        target_repo_visibility: Optional[str] = None,
        lock_source: bool = False,
    ) -> str:
        """Start a repository migration and return its id."""
        variables = {
            'sourceId': migration_source_id,
            'ownerId': org_id,
            'sourceRepositoryUrl': source_repo_url,
            'repositoryName': repo,
            'continueOnError': True,
            'gitArchiveUrl': git_archive_url,
            'metadataArchiveUrl': metadata_archive_url,
            'accessToken': source_token or 'not-used',
            'githubPat': target_token,
            'skipReleases': skip_releases,
            'targetRepoVisibility': target_repo_visibility,
            'lockSource': lock_source,
        }
        data = await self.graphql(START_REPOSITORY_MIGRATION_MUTATION, variables)
        return data['startRepositoryMigration']['repositoryMigration']['id']

    async def get_migration(self, migration_id: str) -> MigrationHandle:
        """Fetch the current state of a repository migration."""
        data = await self.graphql(GET_MIGRATION_QUERY, {'id': migration_id})
        node = data.get('node')
        if not node:
            raise GitHubNotFoundError(f'Migration not found: {migration_id}')

        state = MigrationState.parse(node['state'])
        return MigrationHandle(
            id=node.get('id', migration_id),
            state=state,
            failure_reason=node.get('failureReason') if state.is_failed else None,
            repository_name=node.get('repositoryName'),
            migration_log_url=node.get('migrationLogUrl'),
        )

    def test_connection(self) -> bool:
        """Test connection to GitHub.

        Returns:
            True if connection successful, False otherwise
        """
        try:
            response = self.get('/user')
            return response.success
        except GitHubAPIError as e:
            logger.error(f'Connection test failed: {e}')
            return False

    def close(self):
        """Close the client session."""
        self.session.close()
        logger.debug('GitHub client session closed')

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


class GitHubClientFactory:
    """Factory for creating GitHub API clients."""

    @staticmethod
    def create_client(config: GitHubConfig, token: Optional[str] = None) -> GitHubClient:
        """Create GitHub client from configuration.

        Args:
            config: GitHub instance configuration
            token: Token overriding the configured one (e.g. ``--github-pat``)

        Returns:
            Configured GitHub client

        Raises:
            GitHubAuthenticationError: If no token is available
        """
        if token:
            config = GitHubConfig(**{**config.dict(), 'token': token})

        if not secret_value(config.token):
            raise GitHubAuthenticationError(
                'A GitHub personal access token must be provided via --github-pat or GH_PAT'
            )

        return GitHubClient(config)
