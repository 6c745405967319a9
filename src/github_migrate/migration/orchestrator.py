"""Migration orchestrator: launch-and-wait flows and script generation."""

from dataclasses import dataclass
from typing import List, Optional, Sequence

from loguru import logger

from ..config.config import MigrationConfig, ScriptConfig
from ..models.inventory import ExecutionMode, FeatureToggles, Inventory
from ..models.migration import (
    Credentials,
    LaunchOptions,
    MigrationSource,
    MigrationState,
    MigrationTarget,
)
from .exceptions import AlreadyExistsError, MigrationFailedError
from .launcher import MigrationLauncher
from .ordering import OrderingEngine
from .poller import MigrationPoller, ProgressCallback, SleepFunction, wait_for_all
from .renderer import ScriptRenderer


@dataclass
class MigrationOutcome:
    """Result of a migrate or wait operation."""

    migration_id: Optional[str]
    state: Optional[MigrationState]
    repository: Optional[str] = None
    skipped: bool = False
    failure_reason: Optional[str] = None
    migration_log_url: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state is not None and self.state.is_succeeded


class MigrationOrchestrator:
    """Coordinates the launcher, the poller and script generation."""

    def __init__(
        self,
        api=None,
        migration_config: Optional[MigrationConfig] = None,
        script_config: Optional[ScriptConfig] = None,
        ado_base_url: Optional[str] = None,
        sleep: Optional[SleepFunction] = None,
        on_progress: Optional[ProgressCallback] = None,
    ):
        """Initialize migration orchestrator.

        Args:
            api: GitHub API client; only needed for remote operations
            migration_config: Poll interval and default visibility
            script_config: Script generation settings
            ado_base_url: Azure DevOps URL registered as migration source
            sleep: Awaitable used by pollers between status checks
            on_progress: Receives a notification for every pending status check
        """
        self.api = api
        self.migration_config = migration_config or MigrationConfig()
        self.script_config = script_config or ScriptConfig()
        self.launcher = MigrationLauncher(api, ado_base_url)
        self._sleep = sleep
        self._on_progress = on_progress
        self.logger = logger.bind(component='MigrationOrchestrator')

    def poller(self, migration_id: str) -> MigrationPoller:
        """Create a poller for one migration."""
        return MigrationPoller(
            self.api,
            migration_id,
            interval=self.migration_config.poll_interval_seconds,
            sleep=self._sleep,
            on_progress=self._on_progress,
        )

    async def migrate_repo(
        self,
        source: MigrationSource,
        target: MigrationTarget,
        credentials: Credentials,
        options: Optional[LaunchOptions] = None,
        wait: bool = False,
    ) -> MigrationOutcome:
        """Launch a migration and optionally wait for it to finish.

        An existing target repository is not an error: a warning is logged
        and nothing else happens.

        Raises:
            RemoteSubmissionError: If the migration could not be started
            MigrationFailedError: If waiting ends in a failed state
        """
        self.logger.info(f'Migrating {source.repository_url} to {target.full_name}')

        try:
            handle = await self.launcher.launch(source, target, credentials, options)
        except AlreadyExistsError:
            self.logger.warning(
                f"The Org '{target.github_org}' already contains a repository with "
                f"the name '{target.github_repo}'. No operation will be performed"
            )
            return MigrationOutcome(
                migration_id=None,
                state=None,
                repository=target.full_name,
                skipped=True,
            )

        if not wait:
            self.logger.info(
                f'A repository migration (ID: {handle.id}) was successfully queued.'
            )
            return MigrationOutcome(
                migration_id=handle.id,
                state=handle.state,
                repository=target.full_name,
            )

        outcome = (await self.wait_for_migrations([handle.id]))[0]
        outcome.repository = target.full_name
        return outcome

    async def wait_for_migrations(
        self, migration_ids: Sequence[str]
    ) -> List[MigrationOutcome]:
        """Wait for existing migrations, polling them concurrently.

        Raises:
            MigrationFailedError: For the first migration that failed, after
                every migration has reached a terminal state
        """
        pollers = [self.poller(migration_id) for migration_id in migration_ids]
        results = await wait_for_all(pollers)

        outcomes = []
        for poller, (state, failure_reason) in zip(pollers, results):
            outcomes.append(
                MigrationOutcome(
                    migration_id=poller.migration_id,
                    state=state,
                    repository=poller.handle.repository_name,
                    failure_reason=failure_reason,
                    migration_log_url=poller.handle.migration_log_url,
                )
            )
            if state.is_failed:
                self.logger.error(
                    f'Migration Failed. Migration ID: {poller.migration_id}'
                )
            else:
                self.logger.success(
                    f'Migration completed (ID: {poller.migration_id})! State: {state.value}'
                )
            if poller.handle.migration_log_url:
                self.logger.info(
                    f'Migration log for {poller.migration_id}: '
                    f'{poller.handle.migration_log_url}'
                )

        for outcome in outcomes:
            if outcome.state.is_failed:
                raise MigrationFailedError(outcome.migration_id, outcome.failure_reason)

        return outcomes

    def generate_script(
        self,
        inventory: Inventory,
        toggles: Optional[FeatureToggles] = None,
        mode: ExecutionMode = ExecutionMode.PARALLEL,
    ) -> str:
        """Order and render the migration script for an inventory.

        Raises:
            ConfigurationError: For invalid toggle, mode or inventory combinations
        """
        script = OrderingEngine(toggles, mode).build(inventory)
        return ScriptRenderer(self.script_config.command_prefix).render(script)
