"""Dependency and ordering engine for generated migration scripts."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from loguru import logger

from ..models.inventory import (
    ExecutionMode,
    FeatureToggles,
    Inventory,
    Organization,
    Project,
    Repository,
)
from ..models.migration import SourcePlatform
from .exceptions import ConfigurationError, EmptyInventoryError, OrderingError
from .steps import (
    AddTeamToRepoStep,
    CreateTeamStep,
    DisableSourceRepoStep,
    DownloadLogsStep,
    IntegrateBoardsStep,
    LinkIdpGroupStep,
    LockSourceRepoStep,
    MigrateRepoStep,
    OrderedScript,
    Rendezvous,
    RewirePipelineStep,
    ScriptEntry,
    Step,
)


# Toggle combinations that cannot be honoured in a given mode. Every entry
# must be rejected rather than silently ignored.
INVALID_COMBINATIONS: Dict[ExecutionMode, List[Tuple[str, ...]]] = {
    ExecutionMode.SEQUENTIAL: [],
    ExecutionMode.PARALLEL: [],
}

ADO_ONLY_TOGGLES = (
    'lock_source_repos',
    'disable_source_repos',
    'integrate_boards',
    'rewire_pipelines',
)


@dataclass
class _RepositoryPlan:
    migrate: MigrateRepoStep
    bindings: List[AddTeamToRepoStep] = field(default_factory=list)
    hardening: List[Step] = field(default_factory=list)
    logs: Optional[DownloadLogsStep] = None


@dataclass
class _ProjectPlan:
    name: str
    team_steps: List[Step] = field(default_factory=list)
    repositories: List[_RepositoryPlan] = field(default_factory=list)


class OrderingEngine:
    """Turns an inventory into an ordered, dependency-respecting script."""

    def __init__(
        self,
        toggles: Optional[FeatureToggles] = None,
        mode: ExecutionMode = ExecutionMode.PARALLEL,
    ):
        """Initialize the ordering engine.

        Args:
            toggles: Optional step kinds to include
            mode: Sequential or parallel execution
        """
        self.toggles = toggles or FeatureToggles()
        self.mode = mode
        self.logger = logger.bind(component='OrderingEngine')

    def build(self, inventory: Inventory) -> OrderedScript:
        """Build the ordered script for an inventory.

        Raises:
            ConfigurationError: For invalid toggle, mode or inventory combinations
            EmptyInventoryError: If the inventory has no repositories
        """
        self._validate(inventory)

        plans = self._plan(inventory)
        if self.mode == ExecutionMode.SEQUENTIAL:
            entries = self._arrange_sequential(plans)
        else:
            entries = self._arrange_parallel(plans)

        self._assign_keys(entries)
        script = OrderedScript(
            mode=self.mode,
            platform=inventory.platform,
            github_org=inventory.github_org,
            entries=entries,
        )

        self.logger.info(
            f'Ordered {len(script.steps)} steps for '
            f'{inventory.repository_count()} repositories ({self.mode.value})'
        )
        return script

    def _validate(self, inventory: Inventory) -> None:
        enabled = set(self.toggles.enabled())

        for combination in INVALID_COMBINATIONS.get(self.mode, []):
            if enabled.issuperset(combination):
                raise ConfigurationError(
                    f'Options {", ".join(combination)} cannot be combined '
                    f'in {self.mode.value} mode'
                )

        if self.toggles.link_idp_groups and not self.toggles.create_teams:
            raise ConfigurationError('Linking IdP groups requires creating teams')

        if inventory.platform == SourcePlatform.BBS:
            unsupported = [name for name in ADO_ONLY_TOGGLES if name in enabled]
            if unsupported:
                raise ConfigurationError(
                    f'Options not supported for Bitbucket Server: {", ".join(unsupported)}'
                )

        if inventory.repository_count() == 0:
            raise EmptyInventoryError('The inventory contains no repositories')

        seen_repos = set()
        seen_targets = set()
        for org, project, repo in inventory.iter_repositories():
            ref = inventory.ref(org, project, repo)
            if ref.key in seen_repos:
                raise ConfigurationError(
                    f'Repository {org.name}/{project.name}/{repo.name} is listed twice'
                )
            if ref.github_repo.lower() in seen_targets:
                raise ConfigurationError(
                    f'Target repository {inventory.github_org}/{ref.github_repo} '
                    'is used by more than one repository'
                )
            seen_repos.add(ref.key)
            seen_targets.add(ref.github_repo.lower())

            if inventory.platform == SourcePlatform.BBS and not org.server_url:
                raise ConfigurationError(
                    f'Organization {org.name} needs a server_url for Bitbucket Server'
                )
            if (
                self.toggles.rewire_pipelines
                and repo.pipelines
                and not org.service_connection_id
            ):
                raise ConfigurationError(
                    f'Organization {org.name} needs a service_connection_id '
                    'to rewire pipelines'
                )

    def _plan(self, inventory: Inventory) -> List[_ProjectPlan]:
        """Create every step, grouped per project, independent of mode."""
        created_teams: Dict[str, CreateTeamStep] = {}
        plans = []

        for org in inventory.organizations:
            for project in org.projects:
                plan = _ProjectPlan(name=project.name)
                plan.team_steps = self._plan_teams(
                    inventory, project, created_teams
                )
                for repo in project.repositories:
                    plan.repositories.append(
                        self._plan_repository(
                            inventory, org, project, repo, created_teams
                        )
                    )
                plans.append(plan)

        return plans

    def _plan_teams(
        self,
        inventory: Inventory,
        project: Project,
        created_teams: Dict[str, CreateTeamStep],
    ) -> List[Step]:
        if not self.toggles.create_teams:
            return []

        creates: List[Step] = []
        links: List[Step] = []
        for repo in project.repositories:
            for binding in repo.teams:
                if binding.team in created_teams:
                    continue

                create = CreateTeamStep(
                    project=project.name,
                    github_org=inventory.github_org,
                    team=binding.team,
                )
                created_teams[binding.team] = create
                creates.append(create)

                if self.toggles.link_idp_groups:
                    links.append(
                        LinkIdpGroupStep(
                            project=project.name,
                            depends_on=[create.step_id],
                            github_org=inventory.github_org,
                            team=binding.team,
                            idp_group=inventory.team(binding.team).idp_group_name,
                        )
                    )

        return creates + links

    def _plan_repository(
        self,
        inventory: Inventory,
        org: Organization,
        project: Project,
        repo: Repository,
        created_teams: Dict[str, CreateTeamStep],
    ) -> _RepositoryPlan:
        ref = inventory.ref(org, project, repo)
        github_org = inventory.github_org
        migrate = MigrateRepoStep(
            project=project.name,
            github_org=github_org,
            repo=ref,
            platform=inventory.platform,
        )
        after_migrate = [migrate.step_id]
        plan = _RepositoryPlan(migrate=migrate)

        if self.toggles.create_teams:
            bound = set()
            for binding in repo.teams:
                if binding.team in bound:
                    raise ConfigurationError(
                        f'Team {binding.team} is bound twice to {repo.name}'
                    )
                bound.add(binding.team)
                plan.bindings.append(
                    AddTeamToRepoStep(
                        project=project.name,
                        depends_on=[created_teams[binding.team].step_id, migrate.step_id],
                        github_org=github_org,
                        repo=ref,
                        team=binding.team,
                        role=binding.role,
                    )
                )

        if self.toggles.lock_source_repos:
            plan.hardening.append(
                LockSourceRepoStep(
                    project=project.name, depends_on=list(after_migrate), repo=ref
                )
            )
        if self.toggles.disable_source_repos:
            plan.hardening.append(
                DisableSourceRepoStep(
                    project=project.name, depends_on=list(after_migrate), repo=ref
                )
            )
        if self.toggles.integrate_boards:
            plan.hardening.append(
                IntegrateBoardsStep(
                    project=project.name,
                    depends_on=list(after_migrate),
                    github_org=github_org,
                    repo=ref,
                )
            )
        if self.toggles.rewire_pipelines:
            for pipeline in dict.fromkeys(repo.pipelines):
                plan.hardening.append(
                    RewirePipelineStep(
                        project=project.name,
                        depends_on=list(after_migrate),
                        github_org=github_org,
                        repo=ref,
                        pipeline=pipeline,
                        service_connection_id=org.service_connection_id,
                    )
                )
        if self.toggles.download_migration_logs:
            plan.logs = DownloadLogsStep(
                project=project.name,
                depends_on=list(after_migrate),
                github_org=github_org,
                repo=ref,
            )

        return plan

    @staticmethod
    def _logs(plans: List[_ProjectPlan]) -> List[ScriptEntry]:
        return [
            repo.logs for plan in plans for repo in plan.repositories if repo.logs
        ]

    def _arrange_sequential(self, plans: List[_ProjectPlan]) -> List[ScriptEntry]:
        entries: List[ScriptEntry] = []
        for plan in plans:
            entries.extend(plan.team_steps)
            for repo in plan.repositories:
                entries.append(repo.migrate)
                entries.extend(repo.bindings)
                entries.extend(repo.hardening)
        entries.extend(self._logs(plans))
        return entries

    def _arrange_parallel(self, plans: List[_ProjectPlan]) -> List[ScriptEntry]:
        batch = 1
        entries: List[ScriptEntry] = []
        for plan in plans:
            entries.extend(plan.team_steps)

        migrations = []
        for plan in plans:
            for repo in plan.repositories:
                repo.migrate.batch = batch
                migrations.append(repo.migrate)
        entries.extend(migrations)
        entries.append(
            Rendezvous(batch=batch, waits_for=[step.step_id for step in migrations])
        )

        for plan in plans:
            for repo in plan.repositories:
                entries.extend(repo.bindings)
                entries.extend(repo.hardening)
        entries.extend(self._logs(plans))
        return entries

    @staticmethod
    def _assign_keys(entries: List[ScriptEntry]) -> None:
        keys: Dict[str, int] = {}
        last_step: Dict[Tuple[str, str, str], Step] = {}
        for key, entry in enumerate(entries, start=1):
            entry.ordering_key = key
            if isinstance(entry, Step):
                if entry.step_id in keys:
                    raise ConfigurationError(f'Duplicate step: {entry.step_id}')
                keys[entry.step_id] = key

                # Steps on one repository follow the kind ranking
                repository = entry.repository
                if repository is not None:
                    previous = last_step.get(repository.key)
                    if previous is not None and entry.kind.priority < previous.kind.priority:
                        raise OrderingError(
                            f'{entry.step_id} is ordered after {previous.step_id}'
                        )
                    last_step[repository.key] = entry

        for entry in entries:
            if not isinstance(entry, Step):
                continue
            for dependency in entry.depends_on:
                if keys.get(dependency, entry.ordering_key) >= entry.ordering_key:
                    raise OrderingError(
                        f'{entry.step_id} is ordered before its dependency {dependency}'
                    )


def build_script(
    inventory: Inventory,
    toggles: Optional[FeatureToggles] = None,
    mode: ExecutionMode = ExecutionMode.PARALLEL,
) -> OrderedScript:
    """Build the ordered script for an inventory."""
    return OrderingEngine(toggles, mode).build(inventory)
