"""Migration engine - main entry point for migration operations."""

from typing import List, Optional, Sequence

from loguru import logger

from ..api.client import GitHubClient, GitHubClientFactory
from ..config.config import Config, secret_value
from ..models.inventory import ExecutionMode, FeatureToggles, Inventory
from ..models.migration import (
    Credentials,
    MigrationSource,
    MigrationTarget,
)
from ..utils.files import write_script
from ..utils.logging import SecretRedactor
from .exceptions import ConfigurationError
from .orchestrator import MigrationOrchestrator, MigrationOutcome
from .poller import ProgressCallback


class MigrationEngine:
    """Builds clients from configuration and runs migration operations."""

    def __init__(
        self,
        config: Config,
        github_pat: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        redactor: Optional[SecretRedactor] = None,
    ):
        """Initialize migration engine.

        Args:
            config: Tool configuration
            github_pat: Token overriding ``config.github.token``
            on_progress: Receives poll progress notifications
            redactor: Learns every secret the engine handles
        """
        self.config = config
        self.github_pat = github_pat or secret_value(config.github.token)
        self.on_progress = on_progress
        self.logger = logger.bind(component='MigrationEngine')

        self.redactor = redactor or SecretRedactor()
        self.redactor.add(self.github_pat)
        self.redactor.add(secret_value(config.ado.token))
        self.redactor.add(secret_value(config.bbs.password))

    def _create_client(self) -> GitHubClient:
        return GitHubClientFactory.create_client(self.config.github, self.github_pat)

    def _orchestrator(self, client: Optional[GitHubClient] = None) -> MigrationOrchestrator:
        return MigrationOrchestrator(
            client,
            migration_config=self.config.migration,
            script_config=self.config.script,
            ado_base_url=self.config.ado.base_url,
            on_progress=self.on_progress,
        )

    async def migrate_ado_repo(
        self,
        ado_org: str,
        ado_team_project: str,
        ado_repo: str,
        github_org: str,
        github_repo: str,
        target_repo_visibility: Optional[str] = None,
        wait: Optional[bool] = None,
        ado_pat: Optional[str] = None,
    ) -> MigrationOutcome:
        """Migrate one Azure DevOps repository.

        Args:
            ado_org: Azure DevOps organization
            ado_team_project: Team project containing the repository
            ado_repo: Repository name
            github_org: Target organization
            github_repo: Target repository name
            target_repo_visibility: Overrides the configured visibility
            wait: Overrides the configured wait behaviour
            ado_pat: Overrides the configured Azure DevOps token

        Returns:
            Migration outcome
        """
        ado_pat = ado_pat or secret_value(self.config.ado.token)
        if not ado_pat:
            raise ConfigurationError(
                'An Azure DevOps personal access token must be provided via --ado-pat or ADO_PAT'
            )
        self.redactor.add(ado_pat)

        source = MigrationSource.for_ado(
            ado_org, ado_team_project, ado_repo, self.config.ado.base_url
        )
        target = MigrationTarget(
            github_org=github_org,
            github_repo=github_repo,
            visibility=target_repo_visibility
            or self.config.migration.target_repo_visibility,
        )

        client = self._create_client()
        try:
            credentials = Credentials(github_token=self.github_pat, source_token=ado_pat)
            return await self._orchestrator(client).migrate_repo(
                source,
                target,
                credentials,
                wait=self.config.migration.wait if wait is None else wait,
            )
        finally:
            client.close()

    async def wait_for_migrations(
        self, migration_ids: Sequence[str]
    ) -> List[MigrationOutcome]:
        """Wait for existing migrations to reach a terminal state."""
        client = self._create_client()
        try:
            return await self._orchestrator(client).wait_for_migrations(migration_ids)
        finally:
            client.close()

    def generate_script(
        self,
        inventory: Inventory,
        toggles: Optional[FeatureToggles] = None,
        sequential: bool = False,
        output: Optional[str] = None,
    ) -> str:
        """Generate a migration script and write it to ``output``.

        Returns:
            The rendered script
        """
        mode = ExecutionMode.SEQUENTIAL if sequential else ExecutionMode.PARALLEL
        self.logger.info(
            f'Generating {mode.value} migration script for '
            f'{inventory.repository_count()} repositories'
        )

        text = self._orchestrator().generate_script(inventory, toggles, mode)
        write_script(text, output or self.config.script.output)
        return text

    def test_connectivity(self) -> None:
        """Test connectivity to GitHub.

        Raises:
            ConnectionError: If the GitHub API cannot be reached
        """
        self.logger.info('Testing connectivity to GitHub')

        with self._create_client() as client:
            if not client.test_connection():
                raise ConnectionError(f'Cannot connect to {self.config.github.api_url}')

        self.logger.info('Connectivity test passed')
