"""Submits repository migrations to the GitHub migration service."""

from typing import Optional

from loguru import logger

from ..api.exceptions import GitHubAPIError
from ..models.migration import (
    Credentials,
    LaunchOptions,
    MigrationHandle,
    MigrationSource,
    MigrationState,
    MigrationTarget,
    SourcePlatform,
)
from .exceptions import AlreadyExistsError, RemoteSubmissionError


class MigrationLauncher:
    """Starts one repository migration per call."""

    def __init__(self, api, ado_base_url: Optional[str] = None):
        """Initialize migration launcher.

        Args:
            api: GitHub API client (see ``GitHubClient``)
            ado_base_url: Azure DevOps URL registered as migration source
        """
        self.api = api
        self.ado_base_url = ado_base_url
        self.logger = logger.bind(component='MigrationLauncher')

    async def launch(
        self,
        source: MigrationSource,
        target: MigrationTarget,
        credentials: Credentials,
        options: Optional[LaunchOptions] = None,
    ) -> MigrationHandle:
        """Submit a migration.

        Args:
            source: Repository to migrate
            target: GitHub repository to create
            credentials: Tokens for source and target
            options: Additional migration options

        Returns:
            Handle in the state reported by the remote service

        Raises:
            AlreadyExistsError: If the target repository already exists
            RemoteSubmissionError: If the migration service rejects the request
        """
        options = options or LaunchOptions()
        self.logger.debug(f'Submitting {source.repository_url} -> {target.full_name}')
        self.logger.debug(credentials.describe())

        try:
            org_id = await self.api.get_organization_id(target.github_org)
            if source.platform == SourcePlatform.BBS:
                source_id = await self.api.create_bbs_migration_source(org_id)
            else:
                source_id = await self.api.create_ado_migration_source(
                    org_id, self.ado_base_url
                )

            migration_id = await self.api.start_migration(
                source_id,
                source.repository_url,
                org_id,
                target.github_repo,
                source_token=credentials.source_token.get_secret_value()
                if credentials.source_token
                else None,
                target_token=credentials.github_token.get_secret_value(),
                git_archive_url=source.git_archive_url,
                metadata_archive_url=source.metadata_archive_url,
                skip_releases=options.skip_releases,
                target_repo_visibility=target.visibility,
                lock_source=options.lock_source,
            )
        except GitHubAPIError as e:
            if str(e) == _already_exists_message(target):
                raise AlreadyExistsError(target.github_org, target.github_repo) from e
            raise RemoteSubmissionError(str(e), status_code=e.status_code) from e

        try:
            return await self.api.get_migration(migration_id)
        except GitHubAPIError as e:
            self.logger.warning(
                f'Migration {migration_id} was queued but its state could not be read: {e}'
            )
            return MigrationHandle(
                id=migration_id,
                state=MigrationState.QUEUED,
                repository_name=target.github_repo,
            )


def _already_exists_message(target: MigrationTarget) -> str:
    return f'A repository called {target.full_name} already exists'
