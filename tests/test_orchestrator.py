"""Tests for the migration launcher and orchestrator."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from github_migrate.api.exceptions import GitHubAPIError, GitHubGraphQLError
from github_migrate.config.config import MigrationConfig
from github_migrate.migration import (
    AlreadyExistsError,
    MigrationFailedError,
    MigrationLauncher,
    MigrationOrchestrator,
    RemoteSubmissionError,
)
from github_migrate.models import (
    Credentials,
    FeatureToggles,
    Inventory,
    LaunchOptions,
    MigrationHandle,
    MigrationSource,
    MigrationState,
    MigrationTarget,
)


def _mock_api(states=None):
    """GitHub client double with the launch calls wired up."""
    api = MagicMock()
    api.get_organization_id = AsyncMock(return_value='O_1')
    api.create_ado_migration_source = AsyncMock(return_value='MS_1')
    api.create_bbs_migration_source = AsyncMock(return_value='MS_2')
    api.start_migration = AsyncMock(return_value='RM_1')
    api.get_migration = AsyncMock(
        side_effect=[
            MigrationHandle(id='RM_1', state=state, repository_name='core-api')
            if not isinstance(state, tuple)
            else MigrationHandle(
                id='RM_1',
                state=state[0],
                failure_reason=state[1],
                repository_name='core-api',
            )
            for state in (states or [MigrationState.QUEUED])
        ]
    )
    return api


class TestMigrationLauncher:
    """Test migration submission."""

    def setup_method(self):
        """Set up test fixtures."""
        self.source = MigrationSource.for_ado('contoso', 'core', 'api')
        self.target = MigrationTarget(github_org='octo', github_repo='core-api')
        self.credentials = Credentials(github_token='gh-token', source_token='ado-token')

    @pytest.mark.asyncio
    async def test_launch_ado(self):
        """Test submitting an Azure DevOps migration."""
        api = _mock_api()
        launcher = MigrationLauncher(api, 'https://dev.azure.com')

        handle = await launcher.launch(self.source, self.target, self.credentials)

        assert handle.id == 'RM_1'
        assert handle.state is MigrationState.QUEUED
        api.get_organization_id.assert_awaited_once_with('octo')
        api.create_ado_migration_source.assert_awaited_once_with(
            'O_1', 'https://dev.azure.com'
        )
        api.create_bbs_migration_source.assert_not_awaited()

        args = api.start_migration.call_args
        assert args.args == (
            'MS_1',
            'https://dev.azure.com/contoso/core/_git/api',
            'O_1',
            'core-api',
        )
        assert args.kwargs['source_token'] == 'ado-token'
        assert args.kwargs['target_token'] == 'gh-token'
        assert args.kwargs['target_repo_visibility'] == 'private'
        assert args.kwargs['lock_source'] is False

    @pytest.mark.asyncio
    async def test_launch_forwards_options(self):
        """Test that launch options reach the remote request."""
        api = _mock_api()
        launcher = MigrationLauncher(api)

        await launcher.launch(
            self.source,
            self.target,
            self.credentials,
            LaunchOptions(skip_releases=True, lock_source=True),
        )

        kwargs = api.start_migration.call_args.kwargs
        assert kwargs['skip_releases'] is True
        assert kwargs['lock_source'] is True

    @pytest.mark.asyncio
    async def test_launch_bbs(self):
        """Test submitting a Bitbucket Server migration."""
        api = _mock_api()
        source = MigrationSource(
            platform='bbs',
            repository_url='https://bitbucket.example.com/projects/CORE/repos/api',
            git_archive_url='https://storage.example.com/git.tar',
        )

        await MigrationLauncher(api).launch(source, self.target, self.credentials)

        api.create_bbs_migration_source.assert_awaited_once_with('O_1')
        kwargs = api.start_migration.call_args.kwargs
        assert kwargs['git_archive_url'] == 'https://storage.example.com/git.tar'

    @pytest.mark.asyncio
    async def test_already_exists(self):
        """Test that an existing target repository is reported distinctly."""
        api = _mock_api()
        api.start_migration.side_effect = GitHubGraphQLError(
            'A repository called octo/core-api already exists'
        )

        with pytest.raises(AlreadyExistsError) as exc_info:
            await MigrationLauncher(api).launch(self.source, self.target, self.credentials)

        assert exc_info.value.github_repo == 'core-api'
        api.get_migration.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_other_errors_are_submission_errors(self):
        """Test that other remote rejections are surfaced."""
        api = _mock_api()
        api.start_migration.side_effect = GitHubAPIError('Forbidden', status_code=403)

        with pytest.raises(RemoteSubmissionError) as exc_info:
            await MigrationLauncher(api).launch(self.source, self.target, self.credentials)

        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_state_read_failure_after_queueing(self):
        """Test that a queued migration is not reported as failed."""
        api = _mock_api()
        api.get_migration = AsyncMock(side_effect=GitHubAPIError('timeout'))

        handle = await MigrationLauncher(api).launch(
            self.source, self.target, self.credentials
        )

        assert handle.id == 'RM_1'
        assert handle.state is MigrationState.QUEUED


class TestMigrationOrchestrator:
    """Test launch-and-wait flows."""

    def setup_method(self):
        """Set up test fixtures."""
        self.source = MigrationSource.for_ado('contoso', 'core', 'api')
        self.target = MigrationTarget(github_org='octo', github_repo='core-api')
        self.credentials = Credentials(github_token='gh-token', source_token='ado-token')
        self.sleep = AsyncMock()

    def _orchestrator(self, api):
        return MigrationOrchestrator(
            api,
            migration_config=MigrationConfig(poll_interval_seconds=1),
            sleep=self.sleep,
        )

    @pytest.mark.asyncio
    async def test_migrate_without_wait(self):
        """Test queueing a migration without waiting."""
        api = _mock_api([MigrationState.QUEUED])

        outcome = await self._orchestrator(api).migrate_repo(
            self.source, self.target, self.credentials
        )

        assert outcome.migration_id == 'RM_1'
        assert outcome.state is MigrationState.QUEUED
        assert not outcome.skipped
        assert api.get_migration.await_count == 1
        self.sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_migrate_and_wait(self):
        """Test waiting for a migration to succeed."""
        api = _mock_api(
            [
                MigrationState.QUEUED,
                MigrationState.QUEUED,
                MigrationState.IN_PROGRESS,
                MigrationState.SUCCEEDED,
            ]
        )

        outcome = await self._orchestrator(api).migrate_repo(
            self.source, self.target, self.credentials, wait=True
        )

        assert outcome.succeeded
        assert outcome.repository == 'octo/core-api'
        assert api.get_migration.await_count == 4

    @pytest.mark.asyncio
    async def test_migrate_and_wait_failure(self):
        """Test that a failed migration raises with its reason."""
        api = _mock_api(
            [MigrationState.QUEUED, (MigrationState.FAILED, 'Git source migration failed')]
        )

        with pytest.raises(MigrationFailedError) as exc_info:
            await self._orchestrator(api).migrate_repo(
                self.source, self.target, self.credentials, wait=True
            )

        assert exc_info.value.migration_id == 'RM_1'
        assert exc_info.value.failure_reason == 'Git source migration failed'

    @pytest.mark.asyncio
    async def test_already_exists_is_not_an_error(self):
        """Test that an existing repository skips the migration."""
        api = _mock_api()
        api.start_migration.side_effect = GitHubGraphQLError(
            'A repository called octo/core-api already exists'
        )

        outcome = await self._orchestrator(api).migrate_repo(
            self.source, self.target, self.credentials, wait=True
        )

        assert outcome.skipped
        assert outcome.migration_id is None
        assert outcome.state is None
        api.get_migration.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_submission_error_propagates(self):
        """Test that rejected submissions are surfaced."""
        api = _mock_api()
        api.start_migration.side_effect = GitHubAPIError('Bad request', status_code=400)

        with pytest.raises(RemoteSubmissionError):
            await self._orchestrator(api).migrate_repo(
                self.source, self.target, self.credentials
            )

    @pytest.mark.asyncio
    async def test_wait_for_migrations(self):
        """Test waiting for several existing migrations."""
        api = MagicMock()
        api.get_migration = AsyncMock(
            side_effect=lambda migration_id: MigrationHandle(
                id=migration_id, state=MigrationState.SUCCEEDED
            )
        )

        outcomes = await self._orchestrator(api).wait_for_migrations(['RM_1', 'RM_2'])

        assert [outcome.migration_id for outcome in outcomes] == ['RM_1', 'RM_2']
        assert all(outcome.succeeded for outcome in outcomes)

    @pytest.mark.asyncio
    async def test_wait_reports_migration_log_url(self):
        """Test that the migration log location is part of the outcome."""
        api = MagicMock()
        api.get_migration = AsyncMock(
            return_value=MigrationHandle(
                id='RM_1',
                state=MigrationState.SUCCEEDED,
                repository_name='core-api',
                migration_log_url='https://example.com/logs/RM_1.log',
            )
        )

        outcome = (await self._orchestrator(api).wait_for_migrations(['RM_1']))[0]

        assert outcome.migration_log_url == 'https://example.com/logs/RM_1.log'
        assert outcome.repository == 'core-api'

    def test_generate_script(self):
        """Test script generation without a remote client."""
        inventory = Inventory(
            github_org='octo',
            organizations=[
                {
                    'name': 'contoso',
                    'projects': [{'name': 'core', 'repositories': [{'name': 'api'}]}],
                }
            ],
        )

        text = MigrationOrchestrator().generate_script(inventory, FeatureToggles())

        assert text.startswith('#!/usr/bin/env bash\n')
        assert 'gh ado2gh migrate-repo' in text
